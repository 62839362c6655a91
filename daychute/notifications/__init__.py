"""User-facing notice delivery."""

from daychute.notifications.channels import LogChannel, NoticeChannel
from daychute.notifications.router import NoticeRouter

__all__ = [
    "LogChannel",
    "NoticeChannel",
    "NoticeRouter",
]
