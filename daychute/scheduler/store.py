"""ScheduleStore — flat-JSON persistence for templates, logs, and day state."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from daychute.config import settings
from daychute.datadir import DataDir
from daychute.scheduler.clock import date_key, month_key
from daychute.scheduler.models import make_instance_id
from daychute.scheduler.records import (
    DailySummary,
    DayState,
    DayStateFile,
    ExecutionEntry,
    MonthlyLog,
    RunningRecord,
    TemplateDocument,
)

if TYPE_CHECKING:
    from pathlib import Path

    from daychute.scheduler.models import TaskTemplate

logger = logging.getLogger(__name__)

RUNNING_FILE = "running-task.json"


class ScheduleStore:
    """Persists daychute state as JSON documents under the data directory.

    Layout (relative to the data root)::

        tasks/**/*.json          task templates
        logs/YYYY-MM-tasks.json  execution log + daily summaries
        logs/running-task.json   running instances
        days/YYYY-MM.json        per-date markers, slot overrides, orders

    Singleton accessed via ``ScheduleStore.get()``.  Pass an explicit *root*
    for test isolation (e.g. ``tmp_path / "data"``).

    Reads never raise: missing or malformed documents are logged and replaced
    with empty defaults.  Writes raise ``OSError`` on failure.
    """

    _instance: ScheduleStore | None = None

    def __init__(self, root: Path | None = None) -> None:
        self._dir = DataDir(root) if root is not None else DataDir.get()

    @classmethod
    def get(cls) -> ScheduleStore:
        """Return the shared ScheduleStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def data_dir(self) -> DataDir:
        return self._dir

    # -- Internal helpers ------------------------------------------------------

    async def _read(self, name: str) -> Any | None:
        try:
            return await asyncio.to_thread(self._dir.read_json, name)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s, using defaults: %s", name, exc)
            return None

    async def _write(self, name: str, data: Any) -> None:
        await asyncio.to_thread(self._dir.write_json, name, data)

    @staticmethod
    def _log_name(day: date) -> str:
        return f"{settings.log_folder}/{month_key(day)}-tasks.json"

    @staticmethod
    def _running_name() -> str:
        return f"{settings.log_folder}/{RUNNING_FILE}"

    @staticmethod
    def _day_state_name(day: date) -> str:
        return f"{settings.day_state_folder}/{month_key(day)}.json"

    # -- Templates -------------------------------------------------------------

    async def list_templates(self) -> list[TaskTemplate]:
        """Load every template file. Unreadable files are skipped with a warning."""
        files = await asyncio.to_thread(self._dir.list_files, settings.task_folder)
        templates = []
        for info in files:
            raw = await self._read(info["name"])
            if not isinstance(raw, dict):
                if raw is not None:
                    logger.warning("Template %s is not a JSON object, skipping", info["name"])
                continue
            try:
                document = TemplateDocument.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Invalid template %s, skipping: %s", info["name"], exc)
                continue
            templates.append(document.to_template(info["name"], info["stem"], info["created"]))
        return templates

    async def save_template(self, path: str, fields: dict[str, Any]) -> None:
        """Create or overwrite a template document."""
        await self._write(path, fields)
        logger.info("Saved template: %s", path)

    async def update_template(self, path: str, **fields: Any) -> bool:
        """Merge *fields* into a template document. ``None`` removes a key.

        Returns False if the template doesn't exist.
        """
        raw = await self._read(path)
        if not isinstance(raw, dict):
            logger.warning("Cannot update missing template: %s", path)
            return False
        for key, value in fields.items():
            if value is None:
                raw.pop(key, None)
            elif isinstance(value, date):
                raw[key] = value.isoformat()
            else:
                raw[key] = value
        await self._write(path, raw)
        logger.debug("Updated template %s: %s", path, sorted(fields))
        return True

    async def delete_template(self, path: str) -> bool:
        """Delete a template file. Returns True if a file was removed."""
        deleted = await asyncio.to_thread(self._dir.delete, path)
        if deleted:
            logger.info("Deleted template: %s", path)
        return deleted

    # -- Execution log ---------------------------------------------------------

    async def load_month_log(self, day: date) -> MonthlyLog:
        """Load the monthly log containing *day*."""
        name = self._log_name(day)
        raw = await self._read(name)
        if raw is None:
            return MonthlyLog()
        try:
            return MonthlyLog.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed log %s, using defaults: %s", name, exc)
            return MonthlyLog()

    async def save_month_log(self, day: date, log: MonthlyLog) -> None:
        await self._write(self._log_name(day), log.dump())

    async def load_executions(self, day: date) -> list[ExecutionEntry]:
        """Execution entries recorded under *day*."""
        log = await self.load_month_log(day)
        return list(log.task_executions.get(date_key(day), []))

    async def upsert_execution(self, day: date, entry: ExecutionEntry) -> None:
        """Insert or replace the entry with the same instance ID under *day*."""
        log = await self.load_month_log(day)
        entries = log.task_executions.setdefault(date_key(day), [])
        for index, existing in enumerate(entries):
            if entry.instance_id and existing.instance_id == entry.instance_id:
                # Keep rating, comment, and foreign keys attached to the old entry.
                merged = existing.dump()
                merged.update(entry.dump())
                entries[index] = ExecutionEntry.model_validate(merged)
                break
        else:
            entries.append(entry)
        await self.save_month_log(day, log)
        logger.debug("Logged execution %s on %s", entry.instance_id, date_key(day))

    async def remove_executions(self, day: date, instance_id: str) -> int:
        """Delete every entry for *instance_id* under *day*. Returns the count removed."""
        log = await self.load_month_log(day)
        key = date_key(day)
        entries = log.task_executions.get(key, [])
        kept = [e for e in entries if e.instance_id != instance_id]
        removed = len(entries) - len(kept)
        if removed:
            log.task_executions[key] = kept
            await self.save_month_log(day, log)
            logger.info("Removed %d log entries for %s on %s", removed, instance_id, key)
        return removed

    async def mark_execution_incomplete(self, day: date, instance_id: str) -> bool:
        """Flip ``isCompleted`` off for an entry, keeping its metadata."""
        log = await self.load_month_log(day)
        changed = False
        for entry in log.task_executions.get(date_key(day), []):
            if entry.instance_id == instance_id and entry.is_completed:
                entry.is_completed = False
                changed = True
        if changed:
            await self.save_month_log(day, log)
        return changed

    async def recompute_daily_summary(self, day: date, total_tasks: int | None = None) -> DailySummary:
        """Rebuild the ``dailySummary`` entry for *day* from its executions."""
        log = await self.load_month_log(day)
        key = date_key(day)
        entries = log.task_executions.get(key, [])
        completed = [e for e in entries if e.is_completed]
        total = max(total_tasks if total_tasks is not None else len(entries), len(completed))
        summary = DailySummary(
            total_minutes=sum(e.duration_sec for e in completed) // 60,
            total_tasks=total,
            completed_tasks=len(completed),
            procrastinated_tasks=total - len(completed),
            completion_rate=round(len(completed) / total, 4) if total else 0.0,
        )
        log.daily_summary[key] = summary
        await self.save_month_log(day, log)
        return summary

    # -- Running records -------------------------------------------------------

    async def load_running(self) -> list[RunningRecord]:
        """Load running records. Invalid items are dropped individually."""
        raw = await self._read(self._running_name())
        if raw is None:
            return []
        if isinstance(raw, dict):
            raw = [raw]
        if not isinstance(raw, list):
            logger.warning("Running file is not a list, ignoring")
            return []
        records = []
        for item in raw:
            try:
                records.append(RunningRecord.model_validate(item))
            except ValidationError as exc:
                logger.warning("Dropping invalid running record: %s", exc)
        return records

    async def save_running(self, records: list[RunningRecord]) -> None:
        await self._write(self._running_name(), [r.dump() for r in records])

    async def set_running(self, record: RunningRecord) -> None:
        """Persist *record*, replacing any record with the same instance ID."""
        records = [r for r in await self.load_running() if r.instance_id != record.instance_id]
        records.append(record)
        await self.save_running(records)

    async def remove_running(self, instance_id: str | None) -> bool:
        """Remove the running record for *instance_id*. Returns True if one existed."""
        records = await self.load_running()
        kept = [r for r in records if r.instance_id != instance_id]
        if len(kept) == len(records):
            return False
        await self.save_running(kept)
        return True

    # -- Day state -------------------------------------------------------------

    async def _load_day_state_file(self, day: date) -> DayStateFile:
        name = self._day_state_name(day)
        raw = await self._read(name)
        if raw is None:
            return DayStateFile()
        try:
            return DayStateFile.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed day state %s, using defaults: %s", name, exc)
            return DayStateFile()

    async def load_day_state(self, day: date) -> DayState:
        """Markers, slot overrides, and saved orders for *day*.

        Legacy duplicate markers without an instance ID get one assigned and
        written back, so the duplicate keeps the same identity across loads.
        """
        state_file = await self._load_day_state_file(day)
        state = state_file.days.get(date_key(day), DayState())
        missing = [m for m in state.duplicated_instances if not m.instance_id]
        if missing:
            for marker in missing:
                marker.instance_id = make_instance_id(marker.original_path, day)
            try:
                await self.save_day_state(day, state)
            except OSError:
                logger.warning("Could not persist migrated duplicate IDs for %s", date_key(day))
            else:
                logger.debug("Assigned IDs to %d legacy duplicates on %s", len(missing), day)
        return state

    async def save_day_state(self, day: date, state: DayState) -> None:
        state_file = await self._load_day_state_file(day)
        state_file.days[date_key(day)] = state
        state_file.metadata.last_updated = datetime.now(UTC).isoformat()
        await self._write(self._day_state_name(day), state_file.dump())
