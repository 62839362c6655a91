"""Instance scheduling — slots, ordering, execution state, and persistence."""

from daychute.scheduler.engine import SchedulingEngine
from daychute.scheduler.errors import InvalidDropError, InvalidTransitionError, ScheduleError
from daychute.scheduler.execution import ExecutionStateMachine, ResetMode
from daychute.scheduler.models import Done, Idle, Running, TaskInstance, TaskTemplate
from daychute.scheduler.registry import InstanceRegistry
from daychute.scheduler.session import ScheduleSession
from daychute.scheduler.store import ScheduleStore

__all__ = [
    "Done",
    "ExecutionStateMachine",
    "Idle",
    "InstanceRegistry",
    "InvalidDropError",
    "InvalidTransitionError",
    "ResetMode",
    "Running",
    "ScheduleError",
    "ScheduleSession",
    "ScheduleStore",
    "SchedulingEngine",
    "TaskInstance",
    "TaskTemplate",
]
