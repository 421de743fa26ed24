"""Deterministic text parsing (dates and calendar windows)."""

from chatledger.parsing.dates import (
    DateResolver,
    add_months,
    local_midnight,
    month_window,
    start_of_today,
    to_utc,
    week_window,
    zone_for,
)

__all__ = [
    "DateResolver",
    "add_months",
    "local_midnight",
    "month_window",
    "start_of_today",
    "to_utc",
    "week_window",
    "zone_for",
]
