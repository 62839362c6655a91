"""Tests for drag-and-drop position math."""

from datetime import date, datetime

import pytest

from daychute.scheduler.drag import RowBounds, resolve_drop_target, resolve_state_insert_index
from daychute.scheduler.errors import InvalidDropError
from daychute.scheduler.models import Done, Running, TaskInstance, TaskTemplate

DAY = date(2025, 6, 10)


def _inst(name: str, state=None) -> TaskInstance:
    inst = TaskInstance(
        template=TaskTemplate(path=f"tasks/{name}.json", name=name),
        instance_id=name,
        date=DAY,
        slot_key="8:00-12:00",
    )
    if state is not None:
        inst.state = state
    return inst


def _done(name: str) -> TaskInstance:
    return _inst(name, Done(datetime(2025, 6, 10, 8), datetime(2025, 6, 10, 9)))


# -- resolve_drop_target -------------------------------------------------------


ROWS = [RowBounds(top=0, height=40), RowBounds(top=40, height=40), RowBounds(top=80, height=40)]


@pytest.mark.parametrize(
    ("pointer_y", "expected"),
    [(-5, 0), (10, 0), (20, 1), (59, 1), (61, 2), (100, 3), (500, 3)],
)
def test_resolve_drop_target(pointer_y, expected) -> None:
    assert resolve_drop_target(pointer_y, ROWS) == expected


def test_resolve_drop_target_empty() -> None:
    assert resolve_drop_target(10, []) == 0


# -- resolve_state_insert_index ------------------------------------------------


def test_drop_above_done_is_rejected() -> None:
    done = _done("done")
    idle = _inst("idle")
    source = _inst("src")
    with pytest.raises(InvalidDropError):
        resolve_state_insert_index([done, idle], source, 0, same_slot=False)


def test_drop_above_running_is_rejected() -> None:
    running = _inst("run", Running(datetime(2025, 6, 10, 9)))
    source = _inst("src")
    with pytest.raises(InvalidDropError):
        resolve_state_insert_index([running], source, 0, same_slot=False)


def test_drop_between_idle_from_other_slot() -> None:
    done, a, b = _done("done"), _inst("a"), _inst("b")
    source = _inst("src")
    assert resolve_state_insert_index([done, a, b], source, 1, same_slot=False) == 0
    assert resolve_state_insert_index([done, a, b], source, 2, same_slot=False) == 1
    assert resolve_state_insert_index([done, a, b], source, 3, same_slot=False) == 2


def test_drop_within_same_slot_moving_down() -> None:
    a, b, c = _inst("a"), _inst("b"), _inst("c")
    # Dragging a below b: display position 2 becomes index 1 once a is removed.
    assert resolve_state_insert_index([a, b, c], a, 2, same_slot=True) == 1


def test_drop_within_same_slot_moving_up() -> None:
    a, b, c = _inst("a"), _inst("b"), _inst("c")
    assert resolve_state_insert_index([a, b, c], c, 0, same_slot=True) == 0


def test_position_past_end_is_clamped() -> None:
    a = _inst("a")
    source = _inst("src")
    assert resolve_state_insert_index([a], source, 10, same_slot=False) == 1
