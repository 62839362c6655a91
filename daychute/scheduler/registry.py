"""InstanceRegistry — rebuilds a date's instances from templates, logs, and markers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from daychute.scheduler.models import Done, TaskInstance, TaskTemplate, make_instance_id
from daychute.scheduler.routine import is_due
from daychute.scheduler.slots import NO_SLOT, SLOT_KEYS, classify, normalize_slot, parse_clock, slot_from_time_string

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import date

    from daychute.scheduler.records import DayState, ExecutionEntry, RunningRecord

logger = logging.getLogger(__name__)


def entry_times(day: date, entry: ExecutionEntry) -> tuple[datetime, datetime] | None:
    """Start/stop datetimes of a log entry on *day*. A stop before the start is next day."""
    start_clock = parse_clock(entry.start_time)
    if start_clock is None:
        return None
    stop_clock = parse_clock(entry.stop_time) or start_clock
    start = datetime.combine(day, start_clock)
    stop = datetime.combine(day, stop_clock)
    if stop < start:
        stop += timedelta(days=1)
    return start, stop


class InstanceRegistry:
    """Builds the instance set for one viewed date.

    Nothing here touches storage: the caller loads templates, the date's
    execution entries, running records, and day state, and gets back fresh
    :class:`TaskInstance` objects without orders.
    """

    def __init__(
        self,
        day: date,
        templates: Iterable[TaskTemplate],
        executions: Iterable[ExecutionEntry],
        day_state: DayState,
        running: Iterable[RunningRecord] = (),
    ) -> None:
        self._day = day
        self._templates = list(templates)
        self._executions = list(executions)
        self._state = day_state
        self._running_paths = {r.task_path for r in running if r.date == day.isoformat()}
        self._consumed: set[int] = set()

    def build(self) -> list[TaskInstance]:
        instances: list[TaskInstance] = []
        for template in self._templates:
            instances.extend(self._instances_for(template))
        instances.extend(self._orphans())
        return instances

    # -- Internal helpers ------------------------------------------------------

    def _history(self, template: TaskTemplate) -> list[ExecutionEntry]:
        """Entries for *template*: by path, or by title for legacy entries without one."""
        titles = {template.display_title, template.name}
        matched = []
        for entry in self._executions:
            if id(entry) in self._consumed:
                continue
            if entry.task_path == template.path or (not entry.task_path and entry.task_title in titles):
                matched.append(entry)
                self._consumed.add(id(entry))
        return matched

    def _is_visible(self, template: TaskTemplate, history: list[ExecutionEntry], duplicated: bool) -> bool:
        day = self._day
        if history:
            return True
        if template.is_routine:
            return is_due(template, day) or template.created == day
        return (
            template.path in self._running_paths
            or template.target_date == day
            or duplicated
            or (template.target_date is None and template.created == day)
            or template.routine_end == day
        )

    def _instances_for(self, template: TaskTemplate) -> list[TaskInstance]:
        path = template.path
        history = self._history(template)
        if self._state.is_permanently_deleted(path) or self._state.is_template_hidden(path):
            return []

        duplicates = [m for m in self._state.duplicates_for(path) if m.instance_id]
        if not self._is_visible(template, history, bool(duplicates)):
            return []

        duplicate_ids = {m.instance_id for m in duplicates}
        completed = [e for e in history if e.is_completed]
        incomplete = [e for e in history if not e.is_completed and e.instance_id]

        instances = []
        for entry in completed:
            inst = self._done_instance(template, entry)
            if inst is None or self._state.is_suppressed(path, inst.instance_id):
                continue
            inst.is_duplicate = inst.instance_id in duplicate_ids
            instances.append(inst)

        logged_ids = {i.instance_id for i in instances}
        if not any(e.instance_id not in duplicate_ids for e in completed):
            primary = self._idle_instance(template, incomplete, duplicate_ids)
            if not self._state.is_suppressed(path, primary.instance_id):
                instances.append(primary)

        for marker in duplicates:
            if marker.instance_id in logged_ids or self._state.is_suppressed(path, marker.instance_id):
                continue
            instances.append(
                TaskInstance(
                    template=template,
                    instance_id=marker.instance_id,
                    date=self._day,
                    slot_key=normalize_slot(marker.slot_key),
                    original_slot_key=marker.original_slot_key,
                    is_duplicate=True,
                )
            )
        return instances

    def _idle_instance(
        self,
        template: TaskTemplate,
        incomplete: list[ExecutionEntry],
        duplicate_ids: set[str],
    ) -> TaskInstance:
        reusable = [e.instance_id for e in incomplete if e.instance_id not in duplicate_ids]
        instance_id = (
            (reusable[0] if reusable else None)
            or self._state.occurrence_ids.get(template.path)
            or make_instance_id(template.path, self._day)
        )
        slot = (
            self._state.slot_overrides.get(template.path)
            or slot_from_time_string(template.scheduled_time)
            or NO_SLOT
        )
        return TaskInstance(
            template=template,
            instance_id=instance_id,
            date=self._day,
            slot_key=normalize_slot(slot),
        )

    def _done_instance(self, template: TaskTemplate, entry: ExecutionEntry) -> TaskInstance | None:
        times = entry_times(self._day, entry)
        if times is None:
            logger.debug("Skipping log entry without start time: %s", entry.task_title)
            return None
        start, stop = times
        if template.is_routine or entry.slot_key not in SLOT_KEYS:
            slot = classify(start)
        else:
            slot = entry.slot_key
        title = entry.task_title if entry.task_title and entry.task_title != template.display_title else None
        return TaskInstance(
            template=template,
            instance_id=entry.instance_id or make_instance_id(template.path, self._day),
            date=self._day,
            state=Done(start, stop),
            slot_key=slot,
            executed_title=title,
        )

    def _orphans(self) -> list[TaskInstance]:
        """Done instances for completed entries whose template no longer exists."""
        synthetic: dict[str, TaskTemplate] = {}
        instances = []
        for entry in self._executions:
            if id(entry) in self._consumed or not entry.is_completed:
                continue
            path = entry.task_path or entry.task_title
            if not path or self._state.is_suppressed(path, entry.instance_id):
                continue
            template = synthetic.setdefault(
                path, TaskTemplate(path=path, name=entry.task_title or path.rsplit("/", 1)[-1])
            )
            inst = self._done_instance(template, entry)
            if inst is not None:
                instances.append(inst)
        if instances:
            logger.debug("Restored %d executions of missing templates", len(instances))
        return instances
