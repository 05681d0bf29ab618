"""
Store availability calculation.

Decides whether a store may receive new orders from two inputs:
    - the manual open/closed toggle kept on the store
    - the weekly opening hours (one entry per weekday, overnight windows allowed)

Everything in this module is pure. The caller passes the current instant, so
results are reproducible for a given ``now``.

Times are compared as zero-padded ``HH:MM`` strings in the store's local
time; the fixed width makes lexical order equal chronological order.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DAY_KEYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

REASON_OPEN = "open"
REASON_MANUAL_CLOSED = "manual_closed"
REASON_DAY_CLOSED = "day_closed"
REASON_OUTSIDE_HOURS = "outside_hours"

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class DayHours:
    """Opening window for one weekday."""
    enabled: bool
    open: str
    close: str

    @property
    def is_overnight(self) -> bool:
        return self.close < self.open

    def contains(self, hhmm: str) -> bool:
        """Half-open membership test: ``open`` is inside, ``close`` is not."""
        if self.is_overnight:
            return hhmm >= self.open or hhmm < self.close
        return self.open <= hhmm < self.close

    def as_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "open": self.open, "close": self.close}


DEFAULT_HOURS: Dict[str, DayHours] = {
    "monday": DayHours(True, "08:00", "18:00"),
    "tuesday": DayHours(True, "08:00", "18:00"),
    "wednesday": DayHours(True, "08:00", "18:00"),
    "thursday": DayHours(True, "08:00", "18:00"),
    "friday": DayHours(True, "08:00", "18:00"),
    "saturday": DayHours(True, "08:00", "14:00"),
    "sunday": DayHours(False, "08:00", "14:00"),
}


@dataclass(frozen=True)
class StoreOpenStatus:
    is_open: bool
    reason: str
    active_day: Optional[DayHours] = None
    next_open_description: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "is_open": self.is_open,
            "reason": self.reason,
            "current_day_hours": self.active_day.as_dict() if self.active_day else None,
            "next_open_time": self.next_open_description,
        }


def _normalize_time(value: Any, fallback: str) -> str:
    if isinstance(value, str):
        match = _TIME_RE.match(value.strip())
        if match:
            return f"{int(match.group(1)):02d}:{match.group(2)}"
    if value is not None:
        logger.warning("Ignoring malformed opening time %r, using %s", value, fallback)
    return fallback


def normalize_schedule(raw: Optional[Mapping[str, Any]]) -> Dict[str, DayHours]:
    """
    Build a full seven-day schedule from whatever is stored on the store.

    Missing days and missing fields are filled from DEFAULT_HOURS one day at a
    time, so a partially populated structure is merged, never rejected.
    """
    if not isinstance(raw, Mapping):
        return dict(DEFAULT_HOURS)

    schedule: Dict[str, DayHours] = {}
    for key in DAY_KEYS:
        default = DEFAULT_HOURS[key]
        entry = raw.get(key)
        if isinstance(entry, DayHours):
            schedule[key] = entry
            continue
        if not isinstance(entry, Mapping):
            entry = {}

        schedule[key] = DayHours(
            enabled=bool(entry.get("enabled", default.enabled)),
            open=_normalize_time(entry.get("open"), default.open),
            close=_normalize_time(entry.get("close"), default.close),
        )
    return schedule


def _to_local(now: datetime, tz: Optional[tzinfo]) -> datetime:
    # Naive datetimes are taken to be store-local already
    if tz is not None and now.tzinfo is not None:
        return now.astimezone(tz)
    return now


def find_next_open(schedule: Mapping[str, DayHours], day_index: int) -> Optional[str]:
    """
    Describe the next enabled day after ``day_index`` (0 = Monday).

    Offset 7 lands on the same weekday next week, which matters when a store
    is only open on the current weekday and today's window already closed.
    """
    for offset in range(1, 8):
        next_index = (day_index + offset) % 7
        entry = schedule[DAY_KEYS[next_index]]
        if entry.enabled:
            if offset == 1:
                return f"Opens tomorrow at {entry.open}"
            return f"Opens {DAY_NAMES[next_index]} at {entry.open}"
    return None


def evaluate(
    manual_open: bool,
    schedule: Optional[Mapping[str, Any]],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> StoreOpenStatus:
    """
    Decide whether the store accepts orders at ``now``.

    Args:
        manual_open: The store's manual open toggle
        schedule: Weekly opening hours, or None when the store has none
        now: Current instant
        tz: Store timezone; aware ``now`` values are converted into it

    Returns:
        StoreOpenStatus with the reason and, when closed, the next opening
    """
    if not manual_open:
        return StoreOpenStatus(is_open=False, reason=REASON_MANUAL_CLOSED)

    # Without opening hours the manual toggle is authoritative
    if schedule is None:
        return StoreOpenStatus(is_open=True, reason=REASON_OPEN)

    hours = normalize_schedule(schedule)
    local_now = _to_local(now, tz)
    day_index = local_now.weekday()
    today = hours[DAY_KEYS[day_index]]

    if not today.enabled:
        return StoreOpenStatus(
            is_open=False,
            reason=REASON_DAY_CLOSED,
            active_day=today,
            next_open_description=find_next_open(hours, day_index),
        )

    current_time = local_now.strftime("%H:%M")

    if not today.contains(current_time):
        if current_time < today.open:
            next_open = f"Opens today at {today.open}"
        else:
            next_open = find_next_open(hours, day_index)
        return StoreOpenStatus(
            is_open=False,
            reason=REASON_OUTSIDE_HOURS,
            active_day=today,
            next_open_description=next_open,
        )

    return StoreOpenStatus(is_open=True, reason=REASON_OPEN, active_day=today)


def format_today_hours(
    schedule: Optional[Mapping[str, Any]],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Optional[str]:
    """Short label for today's hours, e.g. ``"08:00 - 18:00"``."""
    if schedule is None:
        return None

    hours = normalize_schedule(schedule)
    today = hours[DAY_KEYS[_to_local(now, tz).weekday()]]
    if not today.enabled:
        return "Closed today"
    return f"{today.open} - {today.close}"
