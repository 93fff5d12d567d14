"""Translate a UTC date interval into an inclusive slot range."""

from datetime import date, datetime, timezone
from typing import Union

from .exceptions import InvalidRangeError

DateLike = Union[date, datetime, str]


def to_timestamp(value: DateLike) -> int:
    """Unix timestamp of a date (UTC midnight) or datetime (naive means UTC)."""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidRangeError(f"Invalid date: {value!r}") from e
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    if isinstance(value, date):
        return int(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())
    raise InvalidRangeError(f"Invalid date: {value!r}")


def slot_range_for_timestamps(
    start_ts: int, end_ts: int, genesis_time: int, seconds_per_slot: int
) -> tuple[int, int]:
    """Inclusive ``(start_slot, end_slot)`` covering ``[start_ts, end_ts)``.

    The first slot starting at or after ``start_ts`` up to the last slot
    starting strictly before ``end_ts``. Slots before genesis do not exist.
    """
    if seconds_per_slot <= 0:
        raise ValueError("seconds_per_slot must be positive")
    # -(-a // b) is ceil division on ints
    start_slot = max(0, -(-(start_ts - genesis_time) // seconds_per_slot))
    end_slot = (end_ts - genesis_time - 1) // seconds_per_slot
    if start_slot > end_slot:
        raise InvalidRangeError(
            f"Start slot {start_slot} is after end slot {end_slot}"
        )
    return start_slot, end_slot


def resolve_slot_range(
    start_date: DateLike,
    end_date: DateLike,
    genesis_time: int,
    seconds_per_slot: int = 12,
) -> tuple[int, int]:
    """Inclusive slot range for the dates ``start_date`` to ``end_date``."""
    return slot_range_for_timestamps(
        to_timestamp(start_date), to_timestamp(end_date), genesis_time, seconds_per_slot
    )
