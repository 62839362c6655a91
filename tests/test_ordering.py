"""Tests for gap-based slot ordering."""

import random
from datetime import date, datetime

import pytest

from daychute.scheduler.models import Done, Running, TaskInstance, TaskTemplate
from daychute.scheduler.ordering import (
    ORDER_STEP,
    display_key,
    duplicate_order,
    ensure_orders,
    insertion_order,
    order_key,
    place,
    renormalize,
    renormalize_all,
    slot_members,
    snapshot,
    sort_for_display,
)
from daychute.scheduler.records import SavedOrder

DAY = date(2025, 6, 10)
SLOT = "8:00-12:00"


def _inst(
    name: str,
    order: int | None = None,
    slot: str = SLOT,
    state=None,
    scheduled: str | None = None,
    duplicate: bool = False,
) -> TaskInstance:
    template = TaskTemplate(path=f"tasks/{name}.json", name=name, scheduled_time=scheduled)
    inst = TaskInstance(
        template=template,
        instance_id=f"{name}-id",
        date=DAY,
        slot_key=slot,
        order=order,
        is_duplicate=duplicate,
    )
    if state is not None:
        inst.state = state
    return inst


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 6, 10, hour, minute)


def _strictly_increasing(values: list[int]) -> bool:
    return all(b > a for a, b in zip(values, values[1:]))


# -- ensure_orders -------------------------------------------------------------


def test_done_then_running_then_idle() -> None:
    done_late = _inst("late", state=Done(_at(9, 30), _at(9, 45)))
    done_early = _inst("early", state=Done(_at(8, 0), _at(8, 30)))
    running = _inst("run", state=Running(_at(10)))
    idle = _inst("idle")

    ensure_orders([idle, running, done_late, done_early])

    assert [done_early.order, done_late.order, running.order] == [100, 200, 300]
    assert idle.order == 400


def test_idle_sorted_by_scheduled_time_then_title() -> None:
    b = _inst("b", scheduled="09:30")
    a = _inst("a", scheduled="09:30")
    early = _inst("z", scheduled="08:15")
    unscheduled = _inst("c")

    ensure_orders([unscheduled, b, a, early])

    assert [i.template.name for i in slot_members([unscheduled, b, a, early], SLOT)] == ["z", "a", "b", "c"]


def test_saved_orders_are_applied_for_matching_slot() -> None:
    first = _inst("first")
    second = _inst("second")
    saved = {
        "tasks/first.json": SavedOrder(slot=SLOT, order=700),
        "tasks/second.json": SavedOrder(slot=SLOT, order=300),
    }

    ensure_orders([first, second], saved)

    assert (second.order, first.order) == (300, 700)


def test_saved_order_for_other_slot_is_ignored() -> None:
    inst = _inst("a")
    ensure_orders([inst], {"tasks/a.json": SavedOrder(slot="none", order=5000)})
    assert inst.order == ORDER_STEP


def test_duplicates_use_instance_id_as_key() -> None:
    dup = _inst("a", duplicate=True)
    assert order_key(dup) == "a-id"
    ensure_orders([dup], {"a-id": SavedOrder(slot=SLOT, order=900)})
    assert dup.order == 900


def test_colliding_idle_orders_are_repaired() -> None:
    a = _inst("a")
    b = _inst("b")
    saved = {"tasks/a.json": SavedOrder(slot=SLOT, order=200), "tasks/b.json": SavedOrder(slot=SLOT, order=200)}

    ensure_orders([a, b], saved)

    assert _strictly_increasing(sorted([a.order, b.order]))


def test_idle_below_done_is_lifted() -> None:
    done = _inst("done", state=Done(_at(8), _at(9)))
    done2 = _inst("done2", state=Done(_at(9), _at(9, 30)))
    idle = _inst("idle")

    ensure_orders([done, done2, idle], {"tasks/idle.json": SavedOrder(slot=SLOT, order=150)})

    assert idle.order > done2.order


def test_existing_orders_are_kept() -> None:
    a = _inst("a", order=1000)
    b = _inst("b")
    ensure_orders([a, b])
    assert a.order == 1000
    assert b.order == 1100


def test_slots_are_independent() -> None:
    a = _inst("a", slot="none")
    b = _inst("b", slot="16:00-0:00")
    ensure_orders([a, b])
    assert a.order == b.order == ORDER_STEP


# -- insertion_order -----------------------------------------------------------


def test_insert_into_empty_group() -> None:
    assert insertion_order([], 0) == 100
    assert insertion_order([], 0, other_max=300) == 400


def test_insert_first() -> None:
    group = [_inst("a", 300), _inst("b", 400)]
    assert insertion_order(group, 0) == 200


def test_insert_first_clamps_above_other_states() -> None:
    group = [_inst("a", 500)]
    assert insertion_order(group, 0, other_max=450) == 460


def test_insert_first_without_room_renormalizes() -> None:
    group = [_inst("a", 50), _inst("b", 60)]
    result = insertion_order(group, 0)
    assert [i.order for i in group] == [100, 200]
    assert result == 50


def test_insert_last() -> None:
    group = [_inst("a", 100), _inst("b", 200)]
    assert insertion_order(group, 2) == 300
    assert insertion_order(group, 99, other_max=500) == 600


def test_insert_between_uses_midpoint() -> None:
    group = [_inst("a", 100), _inst("b", 200)]
    assert insertion_order(group, 1) == 150


def test_gap_exhaustion_renormalizes() -> None:
    a, b = _inst("a", 100), _inst("b", 101)
    group = [a, b]
    c_order = insertion_order(group, 1)

    assert a.order < c_order < b.order
    assert _strictly_increasing([a.order, c_order, b.order])


def test_renormalize_with_base() -> None:
    group = [_inst("b", 7), _inst("a", 3)]
    assert renormalize(group, base=400) == 400
    assert [(i.template.name, i.order) for i in group] == [("a", 500), ("b", 600)]


def test_renormalize_all_uses_display_order() -> None:
    idle = _inst("idle", 50)
    done = _inst("done", 900, state=Done(_at(8), _at(9)))
    renormalize_all([idle, done])
    assert (done.order, idle.order) == (100, 200)


def test_place_respects_other_states() -> None:
    done = _inst("done", 100, state=Done(_at(8), _at(9)))
    idle_a = _inst("a", 200)
    moving = _inst("m", slot=SLOT)
    place(moving, [done, idle_a, moving], 0)
    assert done.order < moving.order < idle_a.order


# -- duplicate_order -----------------------------------------------------------


def test_duplicate_after_idle_source() -> None:
    a, b = _inst("a", 100), _inst("b", 200)
    assert duplicate_order(a, [a, b]) == 150
    assert duplicate_order(b, [a, b]) == 300


def test_duplicate_without_gap_renumbers_slot() -> None:
    a, b = _inst("a", 100), _inst("b", 101)
    result = duplicate_order(a, [a, b])
    assert a.order < result < b.order


def test_duplicate_of_done_goes_to_top_of_idle() -> None:
    done = _inst("done", 100, state=Done(_at(8), _at(9)))
    idle = _inst("idle", 300)
    result = duplicate_order(done, [done, idle])
    assert done.order < result < idle.order


# -- Display -------------------------------------------------------------------


def test_sort_for_display_groups_by_slot() -> None:
    late = _inst("late", 100, slot="16:00-0:00")
    none = _inst("none", 500, slot="none")
    idle = _inst("idle", 100)
    running = _inst("run", 200, state=Running(_at(9)))

    ordered = sort_for_display([late, idle, running, none])

    assert [i.template.name for i in ordered] == ["none", "run", "idle", "late"]


def test_display_key_unordered_idle_last() -> None:
    assert display_key(_inst("a", 100)) < display_key(_inst("b"))


def test_snapshot() -> None:
    a = _inst("a", 100)
    dup = _inst("a", 150, duplicate=True)
    unordered = _inst("c")
    orders = snapshot([a, dup, unordered])
    assert orders == {
        "tasks/a.json": SavedOrder(slot=SLOT, order=100),
        "a-id": SavedOrder(slot=SLOT, order=150),
    }


def test_unsaved_idle_take_next_multiples_above_saved() -> None:
    saved_inst = _inst("saved")
    first, second = _inst("first", scheduled="09:00"), _inst("second", scheduled="10:00")

    ensure_orders([saved_inst, first, second], {"tasks/saved.json": SavedOrder(slot=SLOT, order=150)})

    assert (saved_inst.order, first.order, second.order) == (150, 200, 300)


# -- Insertion sequences -------------------------------------------------------


def _idle_orders(slot_instances: list[TaskInstance]) -> list[int]:
    return sorted(i.order for i in slot_instances if i.is_idle)


@pytest.mark.parametrize("seed", range(8))
def test_insertion_sequences_keep_orders_strictly_increasing(seed) -> None:
    rng = random.Random(seed)
    slot_instances = [
        _inst("done-1", state=Done(_at(8), _at(8, 30))),
        _inst("done-2", state=Done(_at(9), _at(9, 15))),
    ]
    ensure_orders(slot_instances)
    fixed_max = max(i.order for i in slot_instances)

    for step in range(60):
        idle = [i for i in slot_instances if i.is_idle]
        if idle and rng.random() < 0.3:
            inst = rng.choice(idle)
        else:
            inst = _inst(f"new-{step}")
            slot_instances.append(inst)
        index = rng.choice([0, 0, len(idle), rng.randint(0, len(idle))])
        before = {i.instance_id: i.order for i in slot_instances if i.is_idle and i is not inst}

        place(inst, slot_instances, index)

        orders = _idle_orders(slot_instances)
        assert _strictly_increasing(orders)
        assert orders[0] > fixed_max
        others = sorted((i for i in slot_instances if i.is_idle and i is not inst), key=lambda i: i.order)
        expected = min(index, len(others))
        assert sorted(slot_instances, key=lambda i: i.order if i.is_idle else -1).index(inst) - 2 == expected
        if any(before[i.instance_id] != i.order for i in others):
            gaps = [b.order - a.order for a, b in zip(others, others[1:])]
            assert all(gap >= ORDER_STEP - 1 for gap in gaps)


def test_repeated_inserts_at_top_next_to_done_group() -> None:
    done = _inst("done", state=Done(_at(8), _at(9)))
    slot_instances = [done, _inst("idle")]
    ensure_orders(slot_instances)

    for step in range(20):
        inst = _inst(f"top-{step}")
        slot_instances.append(inst)
        place(inst, slot_instances, 0)
        orders = _idle_orders(slot_instances)
        assert _strictly_increasing(orders)
        assert min(orders) == inst.order
        assert inst.order > done.order
