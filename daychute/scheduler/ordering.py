"""Gap-based ordering of instances within a time slot.

Every instance carries an integer ``order``.  Done and running instances are
numbered by start time; idle instances sit above them, spaced by
``ORDER_STEP`` so that most insertions are a single midpoint calculation.
When a gap runs out the affected group is renumbered.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING

from daychute.scheduler.records import SavedOrder
from daychute.scheduler.slots import slot_index

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from daychute.scheduler.models import TaskInstance

logger = logging.getLogger(__name__)

ORDER_STEP = 100

_UNORDERED = math.inf


def order_key(inst: TaskInstance) -> str:
    """Key an instance's saved order is stored under: the ID for duplicates, else the path."""
    return inst.instance_id if inst.is_duplicate else inst.template.path


def display_key(inst: TaskInstance) -> tuple:
    """Sort key within one slot: state priority, then start time or order."""
    return (
        inst.priority,
        inst.start_time or datetime.min,
        inst.order if inst.order is not None else _UNORDERED,
    )


def sort_for_display(instances: Iterable[TaskInstance]) -> list[TaskInstance]:
    """The "none" group first, then the four buckets, each in display order."""
    return sorted(instances, key=lambda i: (slot_index(i.slot_key), *display_key(i)))


def slot_members(instances: Iterable[TaskInstance], slot: str) -> list[TaskInstance]:
    return sorted((i for i in instances if i.slot_key == slot), key=display_key)


def _round_up(value: int) -> int:
    return -(-value // ORDER_STEP) * ORDER_STEP


def _fixed_max(group: Iterable[TaskInstance]) -> int:
    """Highest order among done/running instances (0 if none)."""
    return max((i.order or 0 for i in group if not i.is_idle), default=0)


def _scheduled_key(inst: TaskInstance) -> tuple:
    minutes = inst.template.scheduled_minutes
    return (minutes if minutes is not None else _UNORDERED, inst.template.display_title)


# -- Assignment ----------------------------------------------------------------


def ensure_orders(
    instances: Iterable[TaskInstance],
    saved: Mapping[str, SavedOrder] | None = None,
) -> None:
    """Assign orders to every instance, slot by slot, and repair collisions.

    Done and running instances are renumbered by start time.  Idle instances
    keep an order they already have, else take a saved order recorded for the
    same slot, else take the next multiples of ``ORDER_STEP`` above the slot
    maximum, sorted by scheduled time (unscheduled last) and title.
    """
    saved = saved or {}
    by_slot: dict[str, list[TaskInstance]] = {}
    for inst in instances:
        by_slot.setdefault(inst.slot_key, []).append(inst)

    for slot, group in by_slot.items():
        fixed = sorted((i for i in group if not i.is_idle), key=display_key)
        for position, inst in enumerate(fixed, start=1):
            inst.order = position * ORDER_STEP
        fixed_max = len(fixed) * ORDER_STEP

        idle = [i for i in group if i.is_idle]
        pending = []
        for inst in idle:
            if inst.order is not None:
                continue
            entry = saved.get(order_key(inst))
            if entry is not None and entry.slot == slot:
                inst.order = entry.order
            else:
                pending.append(inst)

        highest = max([fixed_max, *(i.order for i in idle if i.order is not None)])
        next_order = highest - highest % ORDER_STEP
        for inst in sorted(pending, key=_scheduled_key):
            next_order += ORDER_STEP
            inst.order = next_order

        _repair_idle(idle, fixed_max, slot)


def _repair_idle(idle: list[TaskInstance], fixed_max: int, slot: str) -> None:
    ordered = sorted(idle, key=lambda i: i.order)
    values = [i.order for i in ordered]
    collides = any(b <= a for a, b in zip(values, values[1:]))
    if collides or (values and values[0] <= fixed_max):
        logger.debug("Repairing idle orders in slot %s", slot)
        renormalize(ordered, base=_round_up(fixed_max))


def renormalize(group: list[TaskInstance], base: int = 0) -> int:
    """Sort *group* in place by current order and renumber it ``base + (i+1)*STEP``.

    Returns *base*.
    """
    group.sort(key=lambda i: i.order if i.order is not None else _UNORDERED)
    for position, inst in enumerate(group, start=1):
        inst.order = base + position * ORDER_STEP
    return base


def renormalize_all(instances: Iterable[TaskInstance]) -> None:
    """Maintenance: renumber every slot in display order from ``STEP``."""
    by_slot: dict[str, list[TaskInstance]] = {}
    for inst in instances:
        by_slot.setdefault(inst.slot_key, []).append(inst)
    for group in by_slot.values():
        for position, inst in enumerate(sorted(group, key=display_key), start=1):
            inst.order = position * ORDER_STEP


# -- Insertion -----------------------------------------------------------------


def insertion_order(group: list[TaskInstance], target_index: int, other_max: int = 0) -> int:
    """Order value that places a new member at *target_index* of a sorted *group*.

    *group* must not contain the instance being placed.  *other_max* is the
    highest order of higher-priority states in the same slot; the result is
    always above it.  May renumber *group* in place when the gap is exhausted.
    """
    target_index = max(0, min(target_index, len(group)))
    if not group:
        return max(ORDER_STEP, other_max + ORDER_STEP)

    if target_index == len(group):
        return max(group[-1].order + ORDER_STEP, other_max + ORDER_STEP)

    if target_index == 0:
        first = group[0].order
        candidate = max(first - ORDER_STEP, other_max + 10, 50)
        if candidate < first:
            return candidate
        base = renormalize(group, base=_round_up(other_max))
        return base + ORDER_STEP // 2

    prev_order = group[target_index - 1].order
    next_order = group[target_index].order
    if next_order - prev_order > 1:
        midpoint = (prev_order + next_order) // 2
        if midpoint > other_max:
            return midpoint

    logger.debug("Order gap exhausted at index %d, renumbering %d items", target_index, len(group))
    base = renormalize(group, base=_round_up(other_max))
    return base + target_index * ORDER_STEP + ORDER_STEP // 2


def duplicate_order(source: TaskInstance, slot_instances: list[TaskInstance]) -> int:
    """Order for a new idle copy placed right after *source*.

    *slot_instances* is the slot in display order.  A done or running source
    has no idle neighbour above it, so the copy goes to the top of the idle
    group instead.
    """
    if not source.is_idle:
        idle = [i for i in slot_instances if i.is_idle]
        return insertion_order(idle, 0, _fixed_max(slot_instances))

    position = slot_instances.index(source)
    if position == len(slot_instances) - 1:
        return source.order + ORDER_STEP
    next_order = slot_instances[position + 1].order
    if next_order - source.order > 1:
        return (source.order + next_order) // 2

    logger.debug("No gap after %s, renumbering slot %s", source.instance_id, source.slot_key)
    for rank, inst in enumerate(slot_instances, start=1):
        inst.order = rank * ORDER_STEP
    return source.order + ORDER_STEP // 2


def place(
    inst: TaskInstance,
    slot_instances: Iterable[TaskInstance],
    target_index: int,
) -> None:
    """Give *inst* an order at *target_index* among the idle members of its slot."""
    members = [i for i in slot_instances if i is not inst and i.slot_key == inst.slot_key]
    idle = sorted((i for i in members if i.is_idle), key=display_key)
    inst.order = insertion_order(idle, target_index, _fixed_max(members))


def snapshot(instances: Iterable[TaskInstance]) -> dict[str, SavedOrder]:
    """Full saved-order map for a date."""
    return {
        order_key(i): SavedOrder(slot=i.slot_key, order=i.order)
        for i in instances
        if i.order is not None
    }
