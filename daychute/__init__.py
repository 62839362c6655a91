"""daychute — time-slotted daily task instances with persisted ordering."""
