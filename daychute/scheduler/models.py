"""Task templates, per-day instances, and the execution state sum type."""

from __future__ import annotations

import time as _time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum

from daychute.scheduler.slots import NO_SLOT, parse_clock


class RoutineType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"
    MONTHLY = "monthly"


@dataclass
class TaskTemplate:
    """The persistent definition a day's instances are generated from.

    Attributes:
        path: Storage-relative path. This is the template's identity.
        name: File stem, used when no title is set.
        title: Optional display title.
        is_routine: Whether the template recurs.
        routine_type: Recurrence cadence (``none`` for one-off tasks).
        routine_enabled: Disabled routines are never due.
        routine_interval: Every N days / weeks / months (at least 1).
        routine_start: First date of the routine window.
        routine_end: Last date of the routine window.
        scheduled_time: Optional ``HH:MM`` used to pick the default slot.
        weekday: Single weekday for weekly routines (0 = Sunday).
        weekdays: Weekday set for weekly/custom routines.
        monthly_weeks: Week ordinals ``1..5`` or ``"last"`` for monthly routines.
        monthly_weekdays: Weekdays matched by monthly routines.
        target_date: One-off date, or a snooze target for routines.
        project: Optional project reference.
        created: Creation date (explicit field or file ctime).
    """

    path: str
    name: str
    title: str | None = None
    is_routine: bool = False
    routine_type: RoutineType = RoutineType.NONE
    routine_enabled: bool = True
    routine_interval: int = 1
    routine_start: date | None = None
    routine_end: date | None = None
    scheduled_time: str | None = None
    weekday: int | None = None
    weekdays: tuple[int, ...] = ()
    monthly_weeks: tuple[int | str, ...] = ()
    monthly_weekdays: tuple[int, ...] = ()
    target_date: date | None = None
    project: str | None = None
    created: date | None = None

    def __post_init__(self) -> None:
        if self.routine_interval < 1:
            self.routine_interval = 1

    @property
    def display_title(self) -> str:
        return self.title or self.name

    @property
    def scheduled_minutes(self) -> int | None:
        """Minutes after midnight of ``scheduled_time``, or None when unset."""
        parsed = parse_clock(self.scheduled_time)
        if parsed is None:
            return None
        return parsed.hour * 60 + parsed.minute


# -- Execution state -----------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    status = "idle"


@dataclass(frozen=True)
class Running:
    start: datetime
    status = "running"


@dataclass(frozen=True)
class Done:
    start: datetime
    stop: datetime
    status = "done"


State = Idle | Running | Done

STATE_PRIORITY: dict[str, int] = {"done": 0, "running": 1, "idle": 2}


@dataclass(eq=False)
class TaskInstance:
    """One occurrence of a template on one viewed date.

    Instances are rebuilt on every load. ``instance_id`` is what links an
    instance to its log entries, running record, and day-state markers.
    Compared by identity.
    """

    template: TaskTemplate
    instance_id: str
    date: date
    state: State = field(default_factory=Idle)
    slot_key: str = NO_SLOT
    order: int | None = None
    original_slot_key: str | None = None
    executed_title: str | None = None
    is_duplicate: bool = False

    # -- Convenience properties ------------------------------------------------

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def is_idle(self) -> bool:
        return isinstance(self.state, Idle)

    @property
    def is_running(self) -> bool:
        return isinstance(self.state, Running)

    @property
    def is_done(self) -> bool:
        return isinstance(self.state, Done)

    @property
    def start_time(self) -> datetime | None:
        return getattr(self.state, "start", None)

    @property
    def stop_time(self) -> datetime | None:
        return getattr(self.state, "stop", None)

    @property
    def priority(self) -> int:
        return STATE_PRIORITY[self.status]

    @property
    def path(self) -> str:
        return self.template.path

    @property
    def title(self) -> str:
        """Title as executed, falling back to the template's current title."""
        return self.executed_title or self.template.display_title

    def duration(self) -> timedelta | None:
        """Elapsed time of a done instance (stop before start means next day)."""
        if not isinstance(self.state, Done):
            return None
        return span(self.state.start, self.state.stop)

    def elapsed(self, now: datetime) -> timedelta:
        """Read-only running timer. Zero unless running."""
        if not isinstance(self.state, Running):
            return timedelta(0)
        return max(now - self.state.start, timedelta(0))


def span(start: datetime, stop: datetime) -> timedelta:
    """Duration from *start* to *stop*, adding a day when the clock wrapped."""
    delta = stop - start
    if delta < timedelta(0):
        delta += timedelta(days=1)
    return delta


def make_instance_id(path: str, day: date) -> str:
    """Generate a new instance ID: ``path_date_millis_random``."""
    millis = int(_time.time() * 1000)
    return f"{path}_{day.isoformat()}_{millis}_{uuid.uuid4().hex[:9]}"
