"""ExecutionStateMachine — idle / running / done transitions and their persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from daychute.scheduler.clock import now_local
from daychute.scheduler.errors import InvalidTransitionError
from daychute.scheduler.models import Done, Idle, Running, TaskInstance, TaskTemplate, span
from daychute.scheduler.records import ExecutionEntry, RunningRecord
from daychute.scheduler.slots import current_slot, normalize_slot

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from datetime import date, time

    from daychute.scheduler.records import DailySummary
    from daychute.scheduler.session import ScheduleSession
    from daychute.scheduler.store import ScheduleStore

logger = logging.getLogger(__name__)

_CLOCK_FORMAT = "%H:%M:%S"


class ResetMode(StrEnum):
    """How a done instance goes back to idle."""

    MARK_INCOMPLETE = "mark_incomplete"  # keep the log entry, flag it not completed
    PURGE_LOG = "purge_log"  # delete the instance's log entries


def build_entry(inst: TaskInstance) -> ExecutionEntry:
    """Log entry for a done instance."""
    if not isinstance(inst.state, Done):
        msg = f"Instance {inst.instance_id} is not done"
        raise InvalidTransitionError(msg)
    start, stop = inst.state.start, inst.state.stop
    return ExecutionEntry(
        task_title=inst.title,
        task_path=inst.path,
        instance_id=inst.instance_id,
        slot_key=inst.slot_key,
        start_time=start.strftime(_CLOCK_FORMAT),
        stop_time=stop.strftime(_CLOCK_FORMAT),
        duration_sec=int(span(start, stop).total_seconds()),
        is_completed=True,
    )


class ExecutionStateMachine:
    """Applies execution-state transitions to instances of a session.

    Every transition mutates the in-memory instance first and then writes
    through the store; a failed write raises ``OSError`` to the caller with the
    in-memory change kept.

    Args:
        store: ScheduleStore for logs, running records, and templates.
        clock: Callable returning the current naive local time.
        stats_hook: Async callable ``(date, total_tasks)`` run after each stop
            to refresh daily statistics. Failures are logged, never raised.
    """

    def __init__(
        self,
        store: ScheduleStore,
        clock: Callable[[], datetime] = now_local,
        stats_hook: Callable[[date, int | None], Awaitable[DailySummary | None]] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._stats_hook = stats_hook

    def now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    # -- Transitions -----------------------------------------------------------

    async def start(self, session: ScheduleSession, inst: TaskInstance) -> None:
        """idle → running. Any other running instance is stopped first."""
        now = self.now()
        today = now.date()
        if session.day > today:
            msg = "Cannot start a task on a future date"
            raise InvalidTransitionError(msg)
        if inst.is_done:
            msg = f"'{inst.title}' is already done"
            raise InvalidTransitionError(msg)
        if inst.is_running:
            return

        await self._stop_others(session, inst, now)

        if not inst.original_slot_key:
            inst.original_slot_key = inst.slot_key
        inst.slot_key = current_slot(now)
        inst.state = Running(now)
        logger.info("Started %s (%s) in %s", inst.title, inst.instance_id, inst.slot_key)

        template = inst.template
        if not template.is_routine and session.day != today:
            template.target_date = today
            await self._store.update_template(template.path, target_date=today.isoformat())
            logger.info("Moved %s to %s", template.path, today)

        await self._store.set_running(self._running_record(inst))

    async def stop(
        self,
        session: ScheduleSession,
        inst: TaskInstance,
        stop_time: datetime | None = None,
    ) -> bool:
        """running → done. Returns False (no write) when *inst* isn't running."""
        if not isinstance(inst.state, Running):
            return False
        start = inst.state.start
        stop = start + span(start, stop_time or self.now())
        inst.state = Done(start, stop)
        logger.info("Stopped %s (%s) after %s", inst.title, inst.instance_id, stop - start)

        await self._store.upsert_execution(start.date(), build_entry(inst))
        await self._store.remove_running(inst.instance_id)
        await self._refresh_stats(start.date(), len(session.instances))
        return True

    async def reset_to_idle(
        self,
        session: ScheduleSession,
        inst: TaskInstance,
        mode: ResetMode = ResetMode.MARK_INCOMPLETE,
    ) -> None:
        """running/done → idle.

        From running the start time is discarded.  From done, *mode* decides
        whether the log entry is kept (flagged incomplete) or deleted.
        """
        previous = inst.state
        if isinstance(previous, Idle):
            return
        inst.state = Idle()
        if inst.original_slot_key and isinstance(previous, Running):
            inst.slot_key = normalize_slot(inst.original_slot_key)
        logger.info("Reset %s (%s) to idle", inst.title, inst.instance_id)

        await self._store.remove_running(inst.instance_id)
        if isinstance(previous, Done):
            log_day = previous.start.date()
            if mode is ResetMode.PURGE_LOG:
                await self._store.remove_executions(log_day, inst.instance_id)
            else:
                await self._store.mark_execution_incomplete(log_day, inst.instance_id)

    async def resume(
        self,
        session: ScheduleSession,
        inst: TaskInstance,
        start: datetime | None = None,
    ) -> None:
        """done → running, keeping the original start unless *start* is given."""
        if not isinstance(inst.state, Done):
            msg = f"'{inst.title}' is not done"
            raise InvalidTransitionError(msg)
        previous = inst.state
        now = self.now()
        await self._stop_others(session, inst, now)

        inst.state = Running(start or previous.start)
        logger.info("Resumed %s (%s)", inst.title, inst.instance_id)

        await self._store.set_running(self._running_record(inst))
        await self._store.remove_executions(previous.start.date(), inst.instance_id)

    async def edit_times(
        self,
        session: ScheduleSession,
        inst: TaskInstance,
        start: time | None,
        stop: time | None = None,
    ) -> None:
        """Apply times typed into a time editor.

        Clearing the start resets the instance to idle (keeping its log entry
        flagged incomplete).  Clearing the stop of a done instance resumes it.
        A stop earlier than the start is on the next day.
        """
        now = self.now()
        if start is None:
            await self.reset_to_idle(session, inst, ResetMode.MARK_INCOMPLETE)
            return

        start_at = datetime.combine(session.day, start)
        if start_at > now:
            msg = "Start time cannot be in the future"
            raise InvalidTransitionError(msg)
        stop_at = start_at + span(start_at, datetime.combine(session.day, stop)) if stop else None
        if stop_at is not None and stop_at > now:
            msg = "Stop time cannot be in the future"
            raise InvalidTransitionError(msg)

        state = inst.state
        if stop_at is None:
            if isinstance(state, Done):
                await self.resume(session, inst, start_at)
                return
            if isinstance(state, Idle):
                await self._stop_others(session, inst, now)
                if not inst.original_slot_key:
                    inst.original_slot_key = inst.slot_key
            inst.state = Running(start_at)
            await self._store.set_running(self._running_record(inst))
            return

        was_running = isinstance(state, Running)
        inst.state = Done(start_at, stop_at)
        await self._store.upsert_execution(start_at.date(), build_entry(inst))
        if was_running:
            await self._store.remove_running(inst.instance_id)
        await self._refresh_stats(start_at.date(), len(session.instances))

    # -- Restart recovery ------------------------------------------------------

    def restore(self, session: ScheduleSession, records: Iterable[RunningRecord]) -> list[TaskInstance]:
        """Re-attach persisted running records for the session's date.

        Each record is matched to an idle instance by instance ID, then by
        template and slot, then by template alone (moving it to the record's
        slot).  Records with no candidate get a synthetic instance.  Stale
        records (see :meth:`stale_records`) are skipped.
        """
        records = list(records)
        restored = []
        day_key = session.day.isoformat()
        stale = {id(r) for r in self.stale_records(session, records)}
        for record in records:
            if record.date != day_key or id(record) in stale:
                continue
            if session.day_state.is_suppressed(record.task_path, record.instance_id):
                logger.debug("Skipping running record for hidden/deleted %s", record.instance_id)
                continue
            inst = self._match(session, record)
            if record.instance_id:
                inst.instance_id = record.instance_id
            if record.slot_key:
                inst.slot_key = normalize_slot(record.slot_key)
            inst.original_slot_key = record.original_slot_key
            inst.state = Running(record.start_time)
            restored.append(inst)
        if restored:
            logger.info("Restored %d running instance(s) for %s", len(restored), day_key)
        return restored

    def stale_records(self, session: ScheduleSession, records: Iterable[RunningRecord]) -> list[RunningRecord]:
        """Records of the session's date whose instance is already done in the log.

        Left behind when a stop logged the run but failed to remove the record.
        """
        day_key = session.day.isoformat()
        stale = []
        for record in records:
            if record.date != day_key or not record.instance_id:
                continue
            inst = session.find(record.instance_id)
            if inst is not None and inst.is_done:
                stale.append(record)
        return stale

    def _match(self, session: ScheduleSession, record: RunningRecord) -> TaskInstance:
        idle = [i for i in session.instances if i.is_idle]
        by_id = next((i for i in idle if record.instance_id and i.instance_id == record.instance_id), None)
        if by_id is not None:
            return by_id
        same_template = [i for i in idle if i.path == record.task_path]
        same_slot = next((i for i in same_template if i.slot_key == record.slot_key), None)
        if same_slot is not None:
            return same_slot
        if same_template:
            return same_template[0]

        template = session.template(record.task_path) or TaskTemplate(
            path=record.task_path,
            name=record.task_title or record.task_path,
            is_routine=record.is_routine,
        )
        inst = TaskInstance(
            template=template,
            instance_id=record.instance_id or "",
            date=session.day,
        )
        session.instances.append(inst)
        logger.info("Fabricated running instance for %s", record.task_path)
        return inst

    # -- Internal helpers ------------------------------------------------------

    def _running_record(self, inst: TaskInstance) -> RunningRecord:
        start = inst.start_time
        return RunningRecord(
            date=start.date().isoformat(),
            task_title=inst.title,
            task_path=inst.path,
            start_time=start,
            slot_key=inst.slot_key,
            original_slot_key=inst.original_slot_key,
            instance_id=inst.instance_id,
            is_routine=inst.template.is_routine,
        )

    async def _stop_others(self, session: ScheduleSession, keep: TaskInstance, now: datetime) -> None:
        """Stop every running instance except *keep*, including records from other dates."""
        for other in session.running:
            if other is not keep:
                await self.stop(session, other, now)

        known = {i.instance_id for i in session.instances}
        for record in await self._store.load_running():
            if record.instance_id in known or record.instance_id == keep.instance_id:
                continue
            await self._stop_record(record, now)

    async def _stop_record(self, record: RunningRecord, now: datetime) -> None:
        """Finish a running record that has no instance in this session."""
        start = record.start_time
        stop = start + span(start, now)
        entry = ExecutionEntry(
            task_title=record.task_title,
            task_path=record.task_path,
            instance_id=record.instance_id,
            slot_key=record.slot_key,
            start_time=start.strftime(_CLOCK_FORMAT),
            stop_time=stop.strftime(_CLOCK_FORMAT),
            duration_sec=int((stop - start).total_seconds()),
            is_completed=True,
        )
        await self._store.upsert_execution(start.date(), entry)
        await self._store.remove_running(record.instance_id)
        logger.info("Auto-stopped %s running since %s", record.task_title, start)

    async def _refresh_stats(self, day: date, total_tasks: int | None) -> None:
        if self._stats_hook is None:
            return
        try:
            await self._stats_hook(day, total_tasks)
        except Exception:
            logger.warning("Daily statistics refresh failed for %s", day, exc_info=True)
