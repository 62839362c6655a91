"""Time-of-day slot classification.

The day is split into four fixed buckets with no gaps and no overlaps::

    [0:00, 8:00)  [8:00, 12:00)  [12:00, 16:00)  [16:00, 24:00)

Instances without any time information live in the ``"none"`` group, which is
displayed before the four buckets.
"""

from __future__ import annotations

from datetime import datetime, time

NO_SLOT = "none"
SLOT_KEYS: tuple[str, ...] = ("0:00-8:00", "8:00-12:00", "12:00-16:00", "16:00-0:00")
DISPLAY_SLOTS: tuple[str, ...] = (NO_SLOT, *SLOT_KEYS)

# Start hour of each bucket, paired with its key.
_BOUNDARIES: tuple[tuple[int, str], ...] = ((16, SLOT_KEYS[3]), (12, SLOT_KEYS[2]), (8, SLOT_KEYS[1]))


def classify(moment: time | datetime) -> str:
    """Map a clock time to its slot key."""
    for start_hour, key in _BOUNDARIES:
        if moment.hour >= start_hour:
            return key
    return SLOT_KEYS[0]


def parse_clock(value: str | None) -> time | None:
    """Parse ``H:MM`` or ``HH:MM[:SS]``. Returns None when unparsable."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return None
    try:
        return time(*numbers)
    except ValueError:
        return None


def slot_from_time_string(value: str | None) -> str | None:
    """Slot for a scheduled-time string, or None when it cannot be parsed."""
    parsed = parse_clock(value)
    return classify(parsed) if parsed else None


def normalize_slot(value: str | None) -> str:
    """Return *value* if it is a known slot key, else ``"none"``."""
    return value if value in DISPLAY_SLOTS else NO_SLOT


def slot_index(slot: str) -> int:
    """Display position of *slot*: ``"none"`` is 0, the buckets follow chronologically."""
    return DISPLAY_SLOTS.index(normalize_slot(slot))


def current_slot(now: datetime) -> str:
    return classify(now)


def is_before(slot: str, other: str) -> bool:
    """True when *slot* is a time bucket chronologically earlier than *other*."""
    if slot == NO_SLOT or other == NO_SLOT:
        return False
    return slot_index(slot) < slot_index(other)
