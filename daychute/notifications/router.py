"""NoticeRouter — singleton that dispatches user notices to registered channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from daychute.config import settings

if TYPE_CHECKING:
    from daychute.notifications.channels import NoticeChannel

logger = logging.getLogger(__name__)


class NoticeRouter:
    """Routes user-facing notices (rejected actions, failed saves) to a channel.

    Singleton accessed via ``NoticeRouter.get()``.
    """

    _instance: NoticeRouter | None = None

    def __init__(self) -> None:
        self._channels: dict[str, NoticeChannel] = {}
        self._default: str = settings.default_notice_channel

    @classmethod
    def get(cls) -> NoticeRouter:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def register_channel(self, channel: NoticeChannel) -> None:
        """Register a notice channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def set_default_channel(self, name: str) -> None:
        """Set the default channel by name. Raises KeyError if not registered."""
        if name not in self._channels:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default = name

    def get_channel(self, name: str) -> NoticeChannel | None:
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    @property
    def default_channel_name(self) -> str:
        return self._default

    def _resolve_channel(self, name: str | None) -> NoticeChannel | None:
        """Resolve a channel: explicit name → default → only registered channel."""
        if name:
            return self._channels.get(name)
        if self._default and self._default in self._channels:
            return self._channels[self._default]
        if len(self._channels) == 1:
            return next(iter(self._channels.values()))
        return None

    async def notify(self, message: str, *, channel: str | None = None) -> bool:
        """Send a notice via the resolved channel."""
        ch = self._resolve_channel(channel)
        if ch is None:
            logger.warning("No channel resolved for notice (requested=%s): %s", channel, message)
            return False
        return await ch.send(message)
