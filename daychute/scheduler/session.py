"""In-memory state for the currently viewed date."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from daychute.scheduler.ordering import slot_members, sort_for_display
from daychute.scheduler.slots import DISPLAY_SLOTS

if TYPE_CHECKING:
    from datetime import date

    from daychute.scheduler.models import TaskInstance, TaskTemplate
    from daychute.scheduler.records import DayState


@dataclass
class ScheduleSession:
    """Instances, templates, and day state loaded for one date."""

    day: date
    templates: list[TaskTemplate]
    day_state: DayState
    instances: list[TaskInstance] = field(default_factory=list)

    @property
    def running(self) -> list[TaskInstance]:
        return [i for i in self.instances if i.is_running]

    def find(self, instance_id: str) -> TaskInstance | None:
        return next((i for i in self.instances if i.instance_id == instance_id), None)

    def template(self, path: str) -> TaskTemplate | None:
        return next((t for t in self.templates if t.path == path), None)

    def slot(self, slot_key: str) -> list[TaskInstance]:
        """Members of *slot_key* in display order."""
        return slot_members(self.instances, slot_key)

    def sorted(self) -> list[TaskInstance]:
        return sort_for_display(self.instances)

    def grouped(self) -> dict[str, list[TaskInstance]]:
        """Display groups keyed by slot, ``"none"`` first."""
        return {key: self.slot(key) for key in DISPLAY_SLOTS}
