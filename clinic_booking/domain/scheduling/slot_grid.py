"""
Slot grid math

Every bookable duration is a whole number of 30-minute blocks. The grid for a
day is the list of block starts from opening time while the block still ends
by closing time. Grid entries ("HH:MM") double as keys of capacity usage maps.
"""

import math
from datetime import time
from typing import Union

from ...config import SLOT_MINUTES
from ...shared.validators import minutes_to_time, parse_time_slot, time_to_minutes

TimeLike = Union[str, time]


def build_grid(open_time: TimeLike, close_time: TimeLike) -> list[str]:
    """
    Build the ordered 30-minute block grid for a day.

    Args:
        open_time: opening time ("HH:MM", "HH:MM:SS" or time)
        close_time: closing time

    Returns:
        list[str]: ["08:00", "08:30", ...] - the last block ends at or before close.
        Misaligned hours truncate; a block never runs past close.
    """
    start = time_to_minutes(open_time)
    close = time_to_minutes(close_time)

    grid = []
    current = start
    while current + SLOT_MINUTES <= close:
        grid.append(minutes_to_time(current))
        current += SLOT_MINUTES
    return grid


def blocks_for_minutes(minutes: int) -> int:
    """Number of blocks a duration occupies (always at least one)"""
    return max(1, math.ceil(max(0, minutes) / SLOT_MINUTES))


def expand_blocks(start: TimeLike, blocks: int) -> list[str]:
    """Consecutive block starts beginning at start"""
    first = time_to_minutes(start)
    return [minutes_to_time(first + i * SLOT_MINUTES) for i in range(blocks)]


def expand_time_slot(time_slot: str) -> list[str]:
    """All 30-minute sub-block starts covered by a stored "HH:MM-HH:MM" slot"""
    start, end = parse_time_slot(time_slot)
    starts = []
    current = start
    while current < end:
        starts.append(minutes_to_time(current))
        current += SLOT_MINUTES
    return starts


def ranges_overlap(slot_a: str, slot_b: str) -> bool:
    """Half-open overlap: touching ranges ("09:00-09:30" / "09:30-10:00") do not overlap"""
    start_a, end_a = parse_time_slot(slot_a)
    start_b, end_b = parse_time_slot(slot_b)
    return start_a < end_b and start_b < end_a
