"""
Store Schedule Resolver

Pure mapping from a store configuration and a wall-clock reading to an
availability verdict. No I/O, no clock access: the caller supplies ``now``.

Rules (AUTO mode):
    1. Working hours and the break are inclusive on both ends.
    2. A window whose end is earlier than its start wraps past midnight.
    3. ``work_start == work_end`` means open around the clock.
    4. ``break_start == break_end`` means no break.

Malformed HH:mm values fall back to the default window field by field
(09:00-23:59, break 20:00-22:00). An unrecognised mode is treated as
config corruption and the verdict is closed.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, time, tzinfo
from enum import Enum
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_WORK_START = "09:00"
DEFAULT_WORK_END = "23:59"
DEFAULT_BREAK_START = "20:00"
DEFAULT_BREAK_END = "22:00"

MESSAGE_OPEN = "Open"
MESSAGE_CLOSED = "Temporarily closed"


class StoreMode(str, Enum):
    AUTO = "AUTO"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class StoreAvailabilityConfig:
    """
    Store availability configuration as read from the settings store.

    ``mode`` is kept as the raw string so that a corrupted value reaches
    the resolver and is rejected there instead of failing the load.
    """
    mode: str = StoreMode.AUTO.value
    work_start: str = DEFAULT_WORK_START
    work_end: str = DEFAULT_WORK_END
    break_start: str = DEFAULT_BREAK_START
    break_end: str = DEFAULT_BREAK_END
    contact_phone: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityVerdict:
    """
    Result of resolving store availability.

    Attributes:
        is_open: Whether new orders may be accepted
        message: Human-readable reason shown to customers
        next_change_time: HH:mm at which the verdict next flips, None if indefinite
        mode: Effective store mode
        contact_phone: Phone shown on the closed screen
    """
    is_open: bool
    message: str
    next_change_time: Optional[str]
    mode: str
    contact_phone: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """Parse ``H:mm``/``HH:mm`` into minutes since midnight, None if malformed."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isascii() and p.isdigit() for p in parts):
        return None
    hours, minutes = int(parts[0]), int(parts[1])
    if len(parts[1]) != 2 or not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def in_window(current: int, start: int, end: int) -> bool:
    """Inclusive, wrap-aware window membership on minutes since midnight."""
    if end < start:
        return current >= start or current <= end
    return start <= current <= end


def minute_of_day(now: Union[datetime, time], tz: Optional[tzinfo] = None) -> int:
    """
    Reduce a clock reading to minutes since midnight.

    Aware datetimes are converted to ``tz`` first; naive datetimes and
    ``time`` values are taken as already local to the store.
    """
    if isinstance(now, datetime) and tz is not None and now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.hour * 60 + now.minute


def _boundary(raw: Optional[str], default: str, name: str) -> int:
    parsed = parse_hhmm(raw)
    if parsed is None:
        logger.warning(f"Malformed {name}={raw!r}, falling back to {default}")
        return parse_hhmm(default)
    return parsed


def resolve_availability(
    config: StoreAvailabilityConfig,
    now: Union[datetime, time],
    tz: Optional[tzinfo] = None,
) -> AvailabilityVerdict:
    """
    Decide whether the store accepts orders at ``now``.

    Args:
        config: Store availability configuration
        now: Current clock reading (datetime or time of day)
        tz: Store timezone, applied to aware datetimes

    Returns:
        AvailabilityVerdict
    """
    phone = config.contact_phone
    raw_mode = (config.mode or "").strip().upper()

    try:
        mode = StoreMode(raw_mode)
    except ValueError:
        logger.error(f"Unknown store mode {config.mode!r}; refusing orders")
        return AvailabilityVerdict(False, MESSAGE_CLOSED, None, raw_mode, phone)

    if mode == StoreMode.OPEN:
        return AvailabilityVerdict(True, MESSAGE_OPEN, None, mode.value, phone)
    if mode == StoreMode.CLOSED:
        return AvailabilityVerdict(False, MESSAGE_CLOSED, None, mode.value, phone)

    work_start = _boundary(config.work_start, DEFAULT_WORK_START, "work_start")
    work_end = _boundary(config.work_end, DEFAULT_WORK_END, "work_end")
    break_start = _boundary(config.break_start, DEFAULT_BREAK_START, "break_start")
    break_end = _boundary(config.break_end, DEFAULT_BREAK_END, "break_end")

    current = minute_of_day(now, tz)
    around_the_clock = work_start == work_end

    if not around_the_clock and not in_window(current, work_start, work_end):
        return AvailabilityVerdict(
            is_open=False,
            message=f"Working hours: {format_hhmm(work_start)} - {format_hhmm(work_end)}",
            next_change_time=format_hhmm(work_start),
            mode=mode.value,
            contact_phone=phone,
        )

    if break_start != break_end and in_window(current, break_start, break_end):
        return AvailabilityVerdict(
            is_open=False,
            message=f"On break until {format_hhmm(break_end)}",
            next_change_time=format_hhmm(break_end),
            mode=mode.value,
            contact_phone=phone,
        )

    return AvailabilityVerdict(
        is_open=True,
        message=MESSAGE_OPEN,
        next_change_time=None if around_the_clock else format_hhmm(work_end),
        mode=mode.value,
        contact_phone=phone,
    )
