"""Tests for NoticeRouter and LogChannel."""

import logging

import pytest

from daychute.notifications.channels import LogChannel, NoticeChannel
from daychute.notifications.router import NoticeRouter

# -- Helpers -----------------------------------------------------------------


class FakeChannel:
    """Minimal channel implementation for testing."""

    def __init__(self, channel_name: str = "fake") -> None:
        self._name = channel_name
        self.sent: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, message: str) -> bool:
        self.sent.append(message)
        return True


class FailChannel(FakeChannel):
    """Channel that always fails to send."""

    async def send(self, message: str) -> bool:
        return False


# -- Fixtures ----------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_router():
    """Reset the singleton before and after each test."""
    NoticeRouter._reset()
    yield
    NoticeRouter._reset()


# -- Registration ------------------------------------------------------------


def test_register_and_list() -> None:
    router = NoticeRouter.get()
    router.register_channel(FakeChannel("toast"))
    assert router.list_channels() == ["toast"]


def test_register_duplicate_raises() -> None:
    router = NoticeRouter.get()
    router.register_channel(FakeChannel("toast"))
    with pytest.raises(ValueError, match="already registered"):
        router.register_channel(FakeChannel("toast"))


def test_set_default_unknown_raises() -> None:
    router = NoticeRouter.get()
    with pytest.raises(KeyError):
        router.set_default_channel("nope")


def test_singleton() -> None:
    assert NoticeRouter.get() is NoticeRouter.get()


def test_fake_channels_satisfy_protocol() -> None:
    assert isinstance(FakeChannel(), NoticeChannel)
    assert isinstance(LogChannel(), NoticeChannel)


# -- Routing -------------------------------------------------------------------


async def test_single_channel_is_used_without_default() -> None:
    router = NoticeRouter.get()
    ch = FakeChannel()
    router.register_channel(ch)

    assert await router.notify("Could not save task order") is True
    assert ch.sent == ["Could not save task order"]


async def test_default_channel_wins() -> None:
    router = NoticeRouter.get()
    first, second = FakeChannel("a"), FakeChannel("b")
    router.register_channel(first)
    router.register_channel(second)
    router.set_default_channel("b")

    await router.notify("hi")

    assert first.sent == []
    assert second.sent == ["hi"]
    assert router.default_channel_name == "b"


async def test_explicit_channel() -> None:
    router = NoticeRouter.get()
    first, second = FakeChannel("a"), FakeChannel("b")
    router.register_channel(first)
    router.register_channel(second)

    await router.notify("hi", channel="a")

    assert first.sent == ["hi"]
    assert router.get_channel("b") is second


async def test_ambiguous_without_default_returns_false() -> None:
    router = NoticeRouter.get()
    router.register_channel(FakeChannel("a"))
    router.register_channel(FakeChannel("b"))
    assert await router.notify("hi") is False


async def test_no_channels_returns_false() -> None:
    assert await NoticeRouter.get().notify("hi") is False


async def test_unknown_explicit_channel_returns_false() -> None:
    router = NoticeRouter.get()
    router.register_channel(FakeChannel("a"))
    assert await router.notify("hi", channel="b") is False


async def test_failing_channel_returns_false() -> None:
    router = NoticeRouter.get()
    router.register_channel(FailChannel())
    assert await router.notify("hi") is False


# -- LogChannel ----------------------------------------------------------------


async def test_log_channel_writes_notice(caplog) -> None:
    router = NoticeRouter.get()
    router.register_channel(LogChannel())

    with caplog.at_level(logging.INFO, logger="daychute.notices"):
        assert await router.notify("Cannot move completed tasks") is True

    assert "Cannot move completed tasks" in caplog.text
