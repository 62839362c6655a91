"""Tests for routine due-date evaluation."""

from datetime import date

import pytest

from daychute.scheduler.models import RoutineType, TaskTemplate
from daychute.scheduler.routine import is_due


def _routine(routine_type: RoutineType = RoutineType.DAILY, **kwargs) -> TaskTemplate:
    return TaskTemplate(path="tasks/R.json", name="R", is_routine=True, routine_type=routine_type, **kwargs)


# -- General -------------------------------------------------------------------


def test_non_routine_never_due() -> None:
    assert not is_due(TaskTemplate(path="p", name="n"), date(2025, 6, 10))


def test_disabled_never_due() -> None:
    assert not is_due(_routine(routine_enabled=False), date(2025, 6, 10))


def test_window_bounds() -> None:
    template = _routine(routine_start=date(2025, 6, 5), routine_end=date(2025, 6, 7))
    assert not is_due(template, date(2025, 6, 4))
    assert is_due(template, date(2025, 6, 5))
    assert is_due(template, date(2025, 6, 7))
    assert not is_due(template, date(2025, 6, 8))


def test_target_date_snoozes_then_resumes() -> None:
    template = _routine(routine_type=RoutineType.WEEKLY, weekday=1, target_date=date(2025, 6, 12))
    assert not is_due(template, date(2025, 6, 9))  # Monday, still snoozed
    assert is_due(template, date(2025, 6, 12))  # Thursday, forced
    assert is_due(template, date(2025, 6, 16))  # next Monday


# -- Daily ---------------------------------------------------------------------


def test_daily_every_day_without_start() -> None:
    assert is_due(_routine(), date(2025, 6, 10))


def test_daily_interval_needs_anchor() -> None:
    assert not is_due(_routine(routine_interval=2), date(2025, 6, 10))


@pytest.mark.parametrize(("day", "expected"), [(1, True), (2, False), (3, True), (4, False)])
def test_daily_interval(day, expected) -> None:
    template = _routine(routine_interval=2, routine_start=date(2025, 6, 1))
    assert is_due(template, date(2025, 6, day)) is expected


# -- Weekly --------------------------------------------------------------------


def test_weekly_single_weekday() -> None:
    template = _routine(RoutineType.WEEKLY, weekday=2)  # Tuesday
    assert is_due(template, date(2025, 6, 10))
    assert not is_due(template, date(2025, 6, 11))


def test_weekly_weekday_set() -> None:
    template = _routine(RoutineType.CUSTOM, weekdays=(0, 6))
    assert is_due(template, date(2025, 6, 14))  # Saturday
    assert is_due(template, date(2025, 6, 15))  # Sunday
    assert not is_due(template, date(2025, 6, 16))


def test_weekly_interval_counts_from_start_week() -> None:
    template = _routine(
        RoutineType.WEEKLY, weekday=1, routine_interval=2, routine_start=date(2025, 6, 2)
    )
    assert is_due(template, date(2025, 6, 2))
    assert not is_due(template, date(2025, 6, 9))
    assert is_due(template, date(2025, 6, 16))


def test_weekly_without_weekday_is_never_due() -> None:
    assert not is_due(_routine(RoutineType.WEEKLY), date(2025, 6, 10))


# -- Monthly -------------------------------------------------------------------


def test_monthly_nth_weekday() -> None:
    template = _routine(RoutineType.MONTHLY, monthly_weeks=(2,), monthly_weekdays=(2,))
    assert is_due(template, date(2025, 6, 10))  # second Tuesday of June 2025
    assert not is_due(template, date(2025, 6, 3))


def test_monthly_last_weekday() -> None:
    template = _routine(RoutineType.MONTHLY, monthly_weeks=("last",), monthly_weekdays=(5,))
    assert is_due(template, date(2025, 6, 27))  # last Friday
    assert not is_due(template, date(2025, 6, 20))


def test_monthly_interval() -> None:
    template = _routine(
        RoutineType.MONTHLY,
        monthly_weeks=(1,),
        monthly_weekdays=(1,),
        routine_interval=2,
        routine_start=date(2025, 5, 1),
    )
    assert is_due(template, date(2025, 7, 7))  # first Monday of July
    assert not is_due(template, date(2025, 6, 2))


def test_monthly_without_rule_is_never_due() -> None:
    assert not is_due(_routine(RoutineType.MONTHLY), date(2025, 6, 10))
