"""Drag-and-drop position math, independent of any rendering layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from daychute.scheduler.errors import InvalidDropError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from daychute.scheduler.models import TaskInstance


@dataclass(frozen=True)
class RowBounds:
    """Vertical extent of one rendered row."""

    top: float
    height: float


def resolve_drop_target(pointer_y: float, rows: Sequence[RowBounds]) -> int:
    """Display index a pointer at *pointer_y* drops at.

    The pointer lands before the first row whose vertical midpoint it is above;
    below every midpoint it lands at the end.
    """
    for index, row in enumerate(rows):
        if pointer_y < row.top + row.height / 2:
            return index
    return len(rows)


def resolve_state_insert_index(
    slot_sorted: Sequence[TaskInstance],
    source: TaskInstance,
    position: int,
    *,
    same_slot: bool,
) -> int:
    """Translate a display *position* in a target slot into a same-state index.

    *slot_sorted* is the target slot in display order (including *source* when
    it is dragged within its own slot).  Raises :class:`InvalidDropError` when
    the position is above instances of a higher-priority state; positions past
    the end of the source's state group are clamped to it.
    """
    priority = source.priority
    min_allowed = sum(1 for inst in slot_sorted if inst.priority < priority)
    boundary_after = next(
        (i for i, inst in enumerate(slot_sorted) if inst.priority > priority),
        len(slot_sorted),
    )

    if position < min_allowed:
        msg = "Cannot place above running or completed tasks"
        raise InvalidDropError(msg)
    position = min(position, boundary_after)

    if same_slot and source in slot_sorted and slot_sorted.index(source) < position:
        position -= 1

    others = [inst for inst in slot_sorted if inst is not source]
    position = max(0, min(position, len(others)))
    return sum(1 for inst in others[:position] if inst.status == source.status)
