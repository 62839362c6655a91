"""Pydantic models for everything daychute persists as JSON.

Legacy on-disk shapes (bare strings in marker lists, ``"path::slot"`` numeric
order entries, ``taskName`` instead of ``taskTitle``) are normalized by
before-validators, so the rest of the code only ever sees one shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from daychute.scheduler.clock import parse_date, to_local_naive
from daychute.scheduler.models import RoutineType, TaskTemplate

LEGACY_WEEKDAYS = (1, 2, 3, 4, 5)
LEGACY_WEEKENDS = (0, 6)


class _CamelRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Serialize with on-disk (camelCase) keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# -- Execution log -------------------------------------------------------------


class ExecutionEntry(_CamelRecord):
    """One execution of one instance, stored under its start date.

    Unknown keys are kept so metadata attached by other tools survives rewrites.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    task_title: str = ""
    task_path: str = ""
    instance_id: str | None = None
    slot_key: str | None = None
    start_time: str | None = None
    stop_time: str | None = None
    duration_sec: int = 0
    is_completed: bool = True
    rating: int | None = None
    comment: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_task_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "taskTitle" not in data and "taskName" in data:
            data = dict(data)
            data["taskTitle"] = data.pop("taskName")
        return data


class DailySummary(_CamelRecord):
    total_minutes: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    procrastinated_tasks: int = 0
    completion_rate: float = 0.0


class MonthlyLog(_CamelRecord):
    task_executions: dict[str, list[ExecutionEntry]] = Field(default_factory=dict)
    daily_summary: dict[str, DailySummary] = Field(default_factory=dict)


# -- Running record ------------------------------------------------------------


class RunningRecord(_CamelRecord):
    """A persisted running instance, used to restore timers after a restart."""

    date: str
    task_title: str = ""
    task_path: str = ""
    start_time: datetime
    slot_key: str | None = None
    original_slot_key: str | None = None
    instance_id: str | None = None
    is_routine: bool = False

    @field_validator("start_time")
    @classmethod
    def _local_start(cls, value: datetime) -> datetime:
        return to_local_naive(value)


# -- Day state -----------------------------------------------------------------


class HiddenMarker(_CamelRecord):
    path: str
    instance_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"path": data}
        return data


class DeletionMarker(_CamelRecord):
    instance_id: str | None = None
    path: str | None = None
    deletion_type: Literal["temporary", "permanent"] = "temporary"
    timestamp: int = 0

    @model_validator(mode="before")
    @classmethod
    def _legacy_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"path": data, "deletionType": "permanent"}
        return data


class DuplicateMarker(_CamelRecord):
    """An extra idle instance of a template on one date.

    Legacy markers may lack ``instance_id``; the store assigns and persists one
    on first load.
    """

    instance_id: str = ""
    original_path: str
    slot_key: str | None = None
    original_slot_key: str | None = None
    timestamp: int = 0

    @model_validator(mode="before")
    @classmethod
    def _legacy_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"originalPath": data}
        if isinstance(data, dict) and "originalPath" not in data and "path" in data:
            data = dict(data)
            data["originalPath"] = data.pop("path")
        return data


class SavedOrder(_CamelRecord):
    slot: str
    order: int


class DayState(_CamelRecord):
    """Per-date markers, slot overrides, and saved orders.

    ``occurrence_ids`` pins the instance ID of a template's primary occurrence
    once an instance-scoped marker refers to it, so the marker still matches
    after the instance is rebuilt on the next load.
    """

    hidden_routines: list[HiddenMarker] = Field(default_factory=list)
    deleted_instances: list[DeletionMarker] = Field(default_factory=list)
    duplicated_instances: list[DuplicateMarker] = Field(default_factory=list)
    slot_overrides: dict[str, str] = Field(default_factory=dict)
    orders: dict[str, SavedOrder] = Field(default_factory=dict)
    occurrence_ids: dict[str, str] = Field(default_factory=dict)

    @field_validator("orders", mode="before")
    @classmethod
    def _legacy_orders(cls, value: Any) -> Any:
        """Migrate ``{"path::slot": 250}`` entries to ``{"path": {slot, order}}``."""
        if not isinstance(value, dict):
            return {}
        migrated: dict[str, Any] = {}
        for key, entry in value.items():
            if isinstance(entry, (int, float)) and not isinstance(entry, bool):
                if "::" not in key:
                    continue
                path, slot = key.rsplit("::", 1)
                migrated[path] = {"slot": slot, "order": int(entry)}
            else:
                migrated[key] = entry
        return migrated

    # -- Queries ---------------------------------------------------------------

    def is_permanently_deleted(self, path: str) -> bool:
        return any(
            m.deletion_type == "permanent" and m.path == path
            for m in self.deleted_instances
        )

    def is_instance_deleted(self, instance_id: str) -> bool:
        return any(m.instance_id == instance_id for m in self.deleted_instances)

    def is_template_hidden(self, path: str) -> bool:
        """Template-scoped hide: a marker for *path* with no instance ID."""
        return any(m.path == path and not m.instance_id for m in self.hidden_routines)

    def is_instance_hidden(self, instance_id: str) -> bool:
        return any(m.instance_id == instance_id for m in self.hidden_routines)

    def is_suppressed(self, path: str, instance_id: str | None) -> bool:
        """Whether an instance (or its whole template) is deleted or hidden."""
        if self.is_permanently_deleted(path) or self.is_template_hidden(path):
            return True
        if instance_id is None:
            return False
        return self.is_instance_deleted(instance_id) or self.is_instance_hidden(instance_id)

    def duplicates_for(self, path: str) -> list[DuplicateMarker]:
        return [m for m in self.duplicated_instances if m.original_path == path]


class DayStateMeta(_CamelRecord):
    version: str = "1.0"
    last_updated: str = ""


class DayStateFile(_CamelRecord):
    days: dict[str, DayState] = Field(default_factory=dict)
    metadata: DayStateMeta = Field(default_factory=DayStateMeta)


# -- Templates -----------------------------------------------------------------


def _week_ordinal(value: Any, low: int = 1) -> int | str | None:
    if value == "last":
        return "last"
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if low <= number <= low + 4 else None


class TemplateDocument(BaseModel):
    """A task template file. Keys mirror the task note frontmatter."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: str | None = None
    is_routine: bool = Field(default=False, validation_alias=AliasChoices("isRoutine", "is_routine"))
    routine_type: str | None = None
    routine_enabled: bool = True
    routine_interval: int = 1
    routine_start: str | None = None
    routine_end: str | None = None
    scheduled_time: str | None = Field(
        default=None, validation_alias=AliasChoices("scheduled_time", "開始時刻")
    )
    weekday: int | None = Field(
        default=None, validation_alias=AliasChoices("routine_weekday", "weekday")
    )
    weekdays: list[int] = Field(default_factory=list)
    routine_week: int | str | None = None
    monthly_week: int | str | None = None
    routine_weeks: list[int | str] = Field(
        default_factory=list, validation_alias=AliasChoices("routine_weeks", "monthly_weeks")
    )
    monthly_weekday: int | None = None
    routine_weekdays: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices("routine_weekdays", "monthly_weekdays")
    )
    target_date: str | None = None
    project: str | None = None
    created: str | None = None

    @field_validator("routine_interval", mode="before")
    @classmethod
    def _positive_interval(cls, value: Any) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            return 1
        return max(number, 1)

    def _routine_type(self) -> RoutineType:
        if not self.is_routine:
            return RoutineType.NONE
        raw = (self.routine_type or "daily").lower()
        if raw in ("weekdays", "weekends"):
            return RoutineType.CUSTOM
        try:
            return RoutineType(raw)
        except ValueError:
            return RoutineType.WEEKLY

    def _weekday_set(self) -> tuple[int, ...]:
        if self.routine_type == "weekdays":
            return LEGACY_WEEKDAYS
        if self.routine_type == "weekends":
            return LEGACY_WEEKENDS
        return tuple(sorted({d for d in self.weekdays if 0 <= d <= 6}))

    def _monthly_weeks(self) -> tuple[int | str, ...]:
        if self.routine_weeks:
            candidates: list[int | str] = list(self.routine_weeks)
        elif self.routine_week is not None:
            candidates = [self.routine_week]
        elif self.monthly_week is not None:
            # Legacy monthly_week is zero-based.
            legacy = self.monthly_week
            if legacy == "last":
                candidates = ["last"]
            else:
                zero_based = _week_ordinal(legacy, low=0)
                candidates = [zero_based + 1] if isinstance(zero_based, int) else []
        else:
            candidates = []
        weeks: list[int | str] = []
        for week in candidates:
            value = _week_ordinal(week)
            if value is not None and value not in weeks:
                weeks.append(value)
        return tuple(weeks)

    def _monthly_weekdays(self) -> tuple[int, ...]:
        if self.routine_weekdays:
            return tuple(sorted({d for d in self.routine_weekdays if 0 <= d <= 6}))
        fallback = self.weekday if self.weekday is not None else self.monthly_weekday
        return (fallback,) if fallback is not None else ()

    def to_template(self, path: str, name: str, created: Any = None) -> TaskTemplate:
        """Build the normalized :class:`TaskTemplate` for *path*."""
        return TaskTemplate(
            path=path,
            name=name,
            title=self.title,
            is_routine=self.is_routine,
            routine_type=self._routine_type(),
            routine_enabled=self.routine_enabled,
            routine_interval=self.routine_interval,
            routine_start=parse_date(self.routine_start),
            routine_end=parse_date(self.routine_end),
            scheduled_time=self.scheduled_time,
            weekday=self.weekday,
            weekdays=self._weekday_set(),
            monthly_weeks=self._monthly_weeks(),
            monthly_weekdays=self._monthly_weekdays(),
            target_date=parse_date(self.target_date),
            project=self.project,
            created=parse_date(self.created) or parse_date(created),
        )
