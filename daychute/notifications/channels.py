"""NoticeChannel protocol and the built-in logging channel."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class NoticeChannel(Protocol):
    """Protocol that all notice channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'log', 'toast')."""
        ...

    async def send(self, message: str) -> bool:
        """Deliver a user-facing notice. Returns True on success."""
        ...


class LogChannel:
    """Writes notices to the ``daychute.notices`` logger."""

    def __init__(self, channel_name: str = "log", level: int = logging.INFO) -> None:
        self._name = channel_name
        self._level = level
        self._logger = logging.getLogger("daychute.notices")

    @property
    def name(self) -> str:
        return self._name

    async def send(self, message: str) -> bool:
        self._logger.log(self._level, "%s", message)
        return True
