"""SchedulingEngine — loads a date, keeps it sorted, and applies user actions."""

from __future__ import annotations

import asyncio
import logging
import time as _time
from typing import TYPE_CHECKING, Any

from daychute.config import settings
from daychute.notifications.router import NoticeRouter
from daychute.scheduler import ordering
from daychute.scheduler.clock import now_local
from daychute.scheduler.drag import resolve_state_insert_index
from daychute.scheduler.errors import InvalidTransitionError, ScheduleError
from daychute.scheduler.execution import ExecutionStateMachine, ResetMode
from daychute.scheduler.models import RoutineType, TaskInstance, make_instance_id
from daychute.scheduler.records import DeletionMarker, DuplicateMarker, HiddenMarker
from daychute.scheduler.registry import InstanceRegistry
from daychute.scheduler.session import ScheduleSession
from daychute.scheduler.slots import current_slot, is_before, normalize_slot
from daychute.scheduler.store import ScheduleStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import date, datetime, time, timedelta

    from daychute.scheduler.records import RunningRecord

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """Owns the instances of the viewed date and every action on them.

    Actions return True when applied.  Rejected actions (future-date start,
    invalid drop, moving finished work) send a notice and return False with
    nothing changed.  A failed write is logged and noticed, returns False, and
    leaves the in-memory change in place for the next load to reconcile.

    Args:
        store: ScheduleStore to read and write through (default: shared store).
        router: NoticeRouter for user-facing notices (default: shared router).
        clock: Callable returning the current naive local time.
    """

    def __init__(
        self,
        store: ScheduleStore | None = None,
        router: NoticeRouter | None = None,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._store = store or ScheduleStore.get()
        self._router = router or NoticeRouter.get()
        self._clock = clock
        stats_hook = self._store.recompute_daily_summary if settings.stats_enabled else None
        self._machine = ExecutionStateMachine(self._store, clock, stats_hook)
        self._session: ScheduleSession | None = None

    # -- Queries ---------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    @property
    def session(self) -> ScheduleSession:
        if self._session is None:
            msg = "No date loaded; call load() first"
            raise ScheduleError(msg)
        return self._session

    @property
    def instances(self) -> list[TaskInstance]:
        """Instances of the viewed date in display order."""
        return self.session.sorted()

    def grouped(self) -> dict[str, list[TaskInstance]]:
        return self.session.grouped()

    @property
    def running(self) -> TaskInstance | None:
        running = self.session.running
        return running[0] if running else None

    def elapsed(self, inst: TaskInstance) -> timedelta:
        """Running timer for display. Never mutates."""
        return inst.elapsed(self.now())

    # -- Loading ---------------------------------------------------------------

    async def load(self, day: date | None = None) -> list[TaskInstance]:
        """Rebuild the instance list for *day* (default: today) from storage."""
        now = self.now()
        day = day or now.date()
        templates, executions, running, day_state = await asyncio.gather(
            self._store.list_templates(),
            self._store.load_executions(day),
            self._store.load_running(),
            self._store.load_day_state(day),
        )
        instances = InstanceRegistry(day, templates, executions, day_state, running).build()
        session = ScheduleSession(day, templates, day_state, instances)
        ordering.ensure_orders(session.instances, day_state.orders)
        self._machine.restore(session, running)
        ordering.ensure_orders(session.instances)
        self._session = session

        stale = self._machine.stale_records(session, running)
        if stale:
            await self._run("running task", lambda: self._clear_records(stale))

        if day == now.date() and settings.auto_migrate_idle and self._migrate_stale(session, now):
            await self._run("task order", lambda: self._save_day_state(session))
        logger.info("Loaded %d instance(s) for %s", len(session.instances), day)
        return session.sorted()

    def _migrate_stale(self, session: ScheduleSession, now: datetime) -> list[TaskInstance]:
        """Move idle instances from earlier slots into the current one.

        They are appended after the current slot's idle instances, keeping
        their relative order.
        """
        current = current_slot(now)
        stale = [i for i in session.sorted() if i.is_idle and is_before(i.slot_key, current)]
        if not stale:
            return []
        members = session.slot(current)
        next_order = max((i.order or 0 for i in members), default=0)
        for inst in stale:
            inst.slot_key = current
            next_order += ordering.ORDER_STEP
            inst.order = next_order
        logger.info("Moved %d idle instance(s) into %s", len(stale), current)
        return stale

    # -- Internal helpers ------------------------------------------------------

    async def _notify(self, message: str) -> None:
        await self._router.notify(message)

    async def _run(self, description: str, operation: Callable[[], Awaitable[Any]]) -> bool:
        """Run an action, turning rejections and write failures into notices."""
        try:
            await operation()
        except ScheduleError as exc:
            logger.debug("Rejected %s: %s", description, exc)
            await self._notify(str(exc))
            return False
        except OSError:
            logger.exception("Failed to save %s", description)
            await self._notify(f"Could not save {description}")
            return False
        return True

    async def _clear_records(self, records: list[RunningRecord]) -> None:
        for record in records:
            await self._store.remove_running(record.instance_id)
        logger.info("Cleared %d stale running record(s)", len(records))

    async def _save_day_state(self, session: ScheduleSession) -> None:
        ordering.ensure_orders(session.instances)
        session.day_state.orders = ordering.snapshot(session.instances)
        await self._store.save_day_state(session.day, session.day_state)

    # -- Execution -------------------------------------------------------------

    async def start(self, inst: TaskInstance) -> bool:
        session = self.session

        async def _start() -> None:
            await self._machine.start(session, inst)
            await self._save_day_state(session)

        return await self._run("task start", _start)

    async def stop(self, inst: TaskInstance) -> bool:
        """Stop a running instance. Returns False without writing if it isn't running."""
        session = self.session
        if not inst.is_running:
            logger.debug("Stop ignored for %s (%s)", inst.instance_id, inst.status)
            return False

        async def _stop() -> None:
            await self._machine.stop(session, inst)
            await self._save_day_state(session)

        return await self._run("task stop", _stop)

    async def reset_to_idle(self, inst: TaskInstance, mode: ResetMode = ResetMode.MARK_INCOMPLETE) -> bool:
        session = self.session

        async def _reset() -> None:
            await self._machine.reset_to_idle(session, inst, mode)
            inst.order = None
            await self._save_day_state(session)

        return await self._run("task reset", _reset)

    async def resume(self, inst: TaskInstance) -> bool:
        session = self.session

        async def _resume() -> None:
            await self._machine.resume(session, inst)
            await self._save_day_state(session)

        return await self._run("task resume", _resume)

    async def edit_times(self, inst: TaskInstance, start: time | None, stop: time | None = None) -> bool:
        session = self.session

        async def _edit() -> None:
            was_idle = inst.is_idle
            await self._machine.edit_times(session, inst, start, stop)
            if inst.is_idle and not was_idle:
                inst.order = None
            await self._save_day_state(session)

        return await self._run("task times", _edit)

    # -- Placement -------------------------------------------------------------

    async def move(self, inst: TaskInstance, slot: str, index: int | None = None) -> bool:
        """Move an idle instance to *slot* at *index* within that slot's idle group.

        *index* defaults to the end of the group.
        """
        session = self.session

        async def _move() -> None:
            if not inst.is_idle:
                msg = "Cannot move running or completed tasks"
                raise InvalidTransitionError(msg)
            target = normalize_slot(slot)
            inst.slot_key = target
            idle_count = sum(1 for i in session.slot(target) if i.is_idle and i is not inst)
            ordering.place(inst, session.instances, idle_count if index is None else index)
            self._remember_slot(session, inst)
            await self._save_day_state(session)

        return await self._run("task order", _move)

    async def drop(self, inst: TaskInstance, slot: str, position: int) -> bool:
        """Drop *inst* at display *position* of *slot* (as computed by drag math)."""
        session = self.session
        target = normalize_slot(slot)
        try:
            if inst.is_done:
                msg = "Cannot move completed tasks"
                raise InvalidTransitionError(msg)
            index = resolve_state_insert_index(
                session.slot(target), inst, position, same_slot=inst.slot_key == target
            )
        except ScheduleError as exc:
            await self._notify(str(exc))
            return False
        return await self.move(inst, target, index)

    async def renormalize(self) -> bool:
        """Maintenance: renumber every slot of the viewed date."""
        session = self.session
        ordering.renormalize_all(session.instances)
        return await self._run("task order", lambda: self._save_day_state(session))

    async def migrate_stale_idle(self) -> list[TaskInstance]:
        """Run the stale-idle pass now. Only applies when today is viewed."""
        session = self.session
        now = self.now()
        if session.day != now.date():
            return []
        moved = self._migrate_stale(session, now)
        if moved:
            await self._run("task order", lambda: self._save_day_state(session))
        return moved

    def _remember_slot(self, session: ScheduleSession, inst: TaskInstance) -> None:
        if inst.is_duplicate:
            for marker in session.day_state.duplicated_instances:
                if marker.instance_id == inst.instance_id:
                    marker.slot_key = inst.slot_key
        else:
            session.day_state.slot_overrides[inst.path] = inst.slot_key

    # -- Duplicate / delete / hide ---------------------------------------------

    async def duplicate(self, inst: TaskInstance) -> TaskInstance | None:
        """Add an idle copy of *inst* right after it in the same slot."""
        session = self.session
        copy = TaskInstance(
            template=inst.template,
            instance_id=make_instance_id(inst.path, session.day),
            date=session.day,
            slot_key=inst.slot_key,
            original_slot_key=inst.slot_key,
            is_duplicate=True,
        )
        copy.order = ordering.duplicate_order(inst, session.slot(inst.slot_key))
        session.instances.append(copy)
        session.day_state.duplicated_instances.append(
            DuplicateMarker(
                instance_id=copy.instance_id,
                original_path=inst.path,
                slot_key=copy.slot_key,
                original_slot_key=inst.slot_key,
                timestamp=_millis(),
            )
        )
        logger.info("Duplicated %s as %s", inst.instance_id, copy.instance_id)
        await self._run("duplicate", lambda: self._save_day_state(session))
        return copy

    async def duplicate_and_start(self, inst: TaskInstance) -> TaskInstance | None:
        session = self.session
        if session.day > self.now().date():
            await self._notify("Cannot start a task on a future date")
            return None
        copy = await self.duplicate(inst)
        if copy is not None:
            await self.start(copy)
        return copy

    async def delete_occurrence(self, inst: TaskInstance) -> bool:
        """Delete this occurrence only.

        Duplicates, routine occurrences, and one-off occurrences that still
        have siblings on the date get an instance-scoped marker.  The last
        occurrence of a one-off task is deleted for the whole date.
        """
        session = self.session
        state = session.day_state
        has_siblings = any(i.path == inst.path and i is not inst for i in session.instances)
        if inst.is_duplicate:
            state.duplicated_instances = [
                m for m in state.duplicated_instances if m.instance_id != inst.instance_id
            ]
            marker = DeletionMarker(instance_id=inst.instance_id, path=inst.path, timestamp=_millis())
        elif not inst.template.is_routine and not has_siblings:
            marker = DeletionMarker(path=inst.path, deletion_type="permanent", timestamp=_millis())
        else:
            state.occurrence_ids[inst.path] = inst.instance_id
            marker = DeletionMarker(instance_id=inst.instance_id, path=inst.path, timestamp=_millis())
        state.deleted_instances.append(marker)
        session.instances.remove(inst)
        logger.info("Deleted occurrence %s (%s)", inst.instance_id, marker.deletion_type)

        async def _delete() -> None:
            await self._purge(session, inst)
            await self._save_day_state(session)

        return await self._run("deletion", _delete)

    async def delete_permanently(self, inst: TaskInstance) -> bool:
        """Delete the task for this date and, when nothing else refers to it, its template."""
        session = self.session
        path = inst.path
        session.day_state.deleted_instances.append(
            DeletionMarker(path=path, deletion_type="permanent", timestamp=_millis())
        )
        others = [i for i in session.instances if i.path == path and i is not inst]
        session.instances = [i for i in session.instances if i.path != path]
        has_history = any(i.is_done for i in others)
        logger.info("Permanently deleted %s", path)

        async def _delete() -> None:
            await self._purge(session, inst)
            for other in others:
                if other.is_running:
                    await self._store.remove_running(other.instance_id)
            await self._save_day_state(session)
            if not has_history:
                await self._store.delete_template(path)
                session.templates = [t for t in session.templates if t.path != path]

        return await self._run("deletion", _delete)

    async def hide_routine(self, inst: TaskInstance) -> bool:
        """Hide one routine occurrence for the viewed date."""
        session = self.session
        if not inst.template.is_routine:
            await self._notify("Only routine tasks can be hidden")
            return False
        if not inst.is_duplicate:
            session.day_state.occurrence_ids[inst.path] = inst.instance_id
        session.day_state.hidden_routines.append(HiddenMarker(path=inst.path, instance_id=inst.instance_id))
        session.instances.remove(inst)

        async def _hide() -> None:
            if inst.is_running:
                await self._store.remove_running(inst.instance_id)
            await self._save_day_state(session)

        return await self._run("hidden routine", _hide)

    async def _purge(self, session: ScheduleSession, inst: TaskInstance) -> None:
        await self._store.remove_running(inst.instance_id)
        log_day = inst.start_time.date() if inst.start_time else session.day
        await self._store.remove_executions(log_day, inst.instance_id)

    # -- Template settings -----------------------------------------------------

    async def toggle_routine(self, inst: TaskInstance) -> bool:
        """Turn a task into a daily routine starting today, or end its routine today."""
        template = inst.template
        today = self.now().date()

        async def _toggle() -> None:
            if template.is_routine:
                template.is_routine = False
                template.routine_end = today
                template.routine_type = RoutineType.NONE
                await self._store.update_template(template.path, isRoutine=False, routine_end=today)
            else:
                template.is_routine = True
                template.routine_start = today
                template.routine_end = None
                template.target_date = None
                if template.routine_type is RoutineType.NONE:
                    template.routine_type = RoutineType.DAILY
                await self._store.update_template(
                    template.path,
                    isRoutine=True,
                    routine_type=template.routine_type.value,
                    routine_start=today,
                    routine_end=None,
                    target_date=None,
                )
            logger.info("Routine %s for %s", "enabled" if template.is_routine else "ended", template.path)

        return await self._run("routine setting", _toggle)


def _millis() -> int:
    return int(_time.time() * 1000)
