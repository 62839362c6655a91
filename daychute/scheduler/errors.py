"""Exceptions raised by the scheduling core."""


class ScheduleError(Exception):
    """Base class for daychute scheduling errors."""


class InvalidTransitionError(ScheduleError):
    """An execution-state transition was requested from the wrong state."""


class InvalidDropError(ScheduleError):
    """A drag-and-drop placement would put an instance above done/running work."""
