"""Routine due-date evaluation."""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from daychute.scheduler.clock import js_weekday
from daychute.scheduler.models import RoutineType

if TYPE_CHECKING:
    from daychute.scheduler.models import TaskTemplate

# Weekly cadence without a start date is anchored on this Sunday.
_EPOCH_SUNDAY = date(1970, 1, 4)


def is_due(template: TaskTemplate, day: date) -> bool:
    """Whether a routine template should produce an instance on *day*.

    A ``target_date`` on a routine acts as a snooze: the routine is hidden
    before it, forced visible on it, and follows its normal cadence after.
    """
    if not template.is_routine or not template.routine_enabled:
        return False

    if template.target_date is not None:
        if day < template.target_date:
            return False
        if day == template.target_date:
            return True

    if template.routine_start and day < template.routine_start:
        return False
    if template.routine_end and day > template.routine_end:
        return False

    match template.routine_type:
        case RoutineType.DAILY:
            return _daily_due(template, day)
        case RoutineType.WEEKLY | RoutineType.CUSTOM:
            return _weekly_due(template, day)
        case RoutineType.MONTHLY:
            return _monthly_due(template, day)
        case _:
            return False


def _daily_due(template: TaskTemplate, day: date) -> bool:
    interval = template.routine_interval
    if template.routine_start is None:
        return interval == 1
    diff = (day - template.routine_start).days
    return diff >= 0 and diff % interval == 0


def _week_start(day: date) -> date:
    return day - timedelta(days=js_weekday(day))


def _weekly_due(template: TaskTemplate, day: date) -> bool:
    anchor = _week_start(template.routine_start or _EPOCH_SUNDAY)
    weeks = (_week_start(day) - anchor).days // 7
    if weeks < 0 or weeks % template.routine_interval:
        return False
    if template.weekdays:
        return js_weekday(day) in template.weekdays
    if template.weekday is None:
        return False
    return js_weekday(day) == template.weekday


def _monthly_due(template: TaskTemplate, day: date) -> bool:
    if not template.monthly_weeks or not template.monthly_weekdays:
        return False
    if template.routine_start is not None:
        start = template.routine_start
        months = (day.year - start.year) * 12 + (day.month - start.month)
        if months < 0 or months % template.routine_interval:
            return False

    is_last = (day + timedelta(days=7)).month != day.month
    occurrence = (day.day - 1) // 7 + 1
    week_matches = any(
        is_last if week == "last" else occurrence == week for week in template.monthly_weeks
    )
    return week_matches and js_weekday(day) in template.monthly_weekdays
