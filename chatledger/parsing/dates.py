"""
Date Expression Resolver

Turns the date part of a chat message ("kemarin", "3 days ago",
"tanggal 15 juli", "15/7/2024") into an absolute point in time.

This is DETERMINISTIC - no LLM involvement. The understanding service
may also return a date, but when it doesn't (or returns garbage) this
resolver reads the raw message.

Every result is local midnight of the resolved day in the user's
timezone, expressed as an aware UTC datetime. Unparseable text and
impossible calendar dates (31/2) give None; nothing here raises.

The calendar helpers at the bottom (month and week boundaries in a
user's timezone) are shared by budgets, analytics and savings plans.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from chatledger.models.ledger import Language, utc_now


logger = structlog.get_logger(__name__)


INDONESIAN_MONTHS = {
    "januari": 1, "februari": 2, "maret": 3, "april": 4,
    "mei": 5, "juni": 6, "juli": 7, "agustus": 8,
    "september": 9, "oktober": 10, "november": 11, "desember": 12,
}

ENGLISH_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
}

# Order matters: week phrases before the bare "kemarin", and
# "day after tomorrow" before "tomorrow".
_RELATIVE_RULES: list[tuple[re.Pattern, int]] = [
    (re.compile(r"\b(?:minggu\s+(?:lalu|kemarin)|last\s+week)\b"), -7),
    (re.compile(r"\b(?:lusa|day\s+after\s+tomorrow)\b"), 2),
    (re.compile(r"\b(?:kemarin|yesterday)\b"), -1),
    (re.compile(r"\b(?:besok|tomorrow)\b"), 1),
]

_DAYS_AGO = re.compile(r"\b(\d{1,3})\s*(?:hari|days?)\s+(?:yang\s+)?(?:lalu|ago)\b")
_WEEKS_AGO = re.compile(r"\b(\d{1,2})\s*(?:minggu|weeks?)\s+(?:yang\s+)?(?:lalu|kemarin|ago)\b")

_YEAR_MONTH_DAY = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
# A dashed day-month needs its year: "2-3 kg" is a quantity, not 2 March
_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})(?:/(\d{1,2})(?:/(\d{4}))?|-(\d{1,2})-(\d{4}))\b")

_ORDINAL = r"(?:st|nd|rd|th)?"


def _month_alternation(months: dict[str, int]) -> str:
    # Longest first so a short name never wins inside a longer one
    return "|".join(sorted(months, key=len, reverse=True))


def _named_month_patterns(months: dict[str, int]) -> list[re.Pattern]:
    names = _month_alternation(months)
    return [
        # "15 juli", "tanggal 15 juli 2024", "15th of July"
        re.compile(
            rf"\b(?:tanggal\s+|tgl\.?\s+)?(?P<day>\d{{1,2}}){_ORDINAL}\s+(?:of\s+)?"
            rf"(?P<month>{names})\b(?:,?\s+(?P<year>\d{{4}}))?"
        ),
        # "July 15", "July 15th, 2024"
        re.compile(
            rf"\b(?P<month>{names})\s+(?P<day>\d{{1,2}}){_ORDINAL}\b(?:,?\s+(?P<year>\d{{4}}))?"
        ),
    ]


_MONTHS_BY_LANGUAGE = {
    Language.INDONESIAN: {**ENGLISH_MONTHS, **INDONESIAN_MONTHS},
    Language.ENGLISH: ENGLISH_MONTHS,
}

_NAMED_PATTERNS = {
    language: _named_month_patterns(months)
    for language, months in _MONTHS_BY_LANGUAGE.items()
}


def zone_for(tz_name: Optional[str]) -> ZoneInfo:
    """IANA zone for a user, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=tz_name)
        return ZoneInfo("UTC")


def local_midnight(day: date, tz: Union[str, ZoneInfo]) -> datetime:
    """Start of `day` in the given timezone, as aware UTC."""
    zone = tz if isinstance(tz, ZoneInfo) else zone_for(tz)
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)


def to_utc(value: datetime, tz: Union[str, ZoneInfo] = "UTC") -> datetime:
    """Normalize a datetime to aware UTC. Naive values are read in `tz`."""
    zone = tz if isinstance(tz, ZoneInfo) else zone_for(tz)
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc)


class DateResolver:
    """
    Resolves relative and absolute date phrases in `id` and `en`.

    Priority: relative markers, then named-month dates, then numeric
    dates. The first rule that matches decides; an impossible date
    from that rule yields None rather than trying the next rule.
    """

    def resolve(
        self,
        text: str,
        language: Union[Language, str] = Language.ENGLISH,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        if not text or not text.strip():
            return None

        lowered = text.lower().strip()
        language = self._coerce_language(language)
        zone = zone_for(tz)
        today = to_utc(now or utc_now()).astimezone(zone).date()

        offset = self._relative_offset(lowered)
        if offset is not None:
            return local_midnight(today + timedelta(days=offset), zone)

        resolved = self._named_month_date(lowered, language, today)
        if resolved is None:
            resolved = self._numeric_date(lowered, today)

        if resolved is None or resolved is _INVALID:
            return None
        return local_midnight(resolved, zone)

    @staticmethod
    def _coerce_language(language: Union[Language, str]) -> Language:
        try:
            return Language(language)
        except ValueError:
            return Language.ENGLISH

    @staticmethod
    def _relative_offset(text: str) -> Optional[int]:
        match = _WEEKS_AGO.search(text)
        if match:
            return -7 * int(match.group(1))

        for pattern, days in _RELATIVE_RULES:
            if pattern.search(text):
                return days

        match = _DAYS_AGO.search(text)
        if match:
            return -int(match.group(1))
        return None

    def _named_month_date(self, text: str, language: Language, today: date):
        months = _MONTHS_BY_LANGUAGE[language]
        for pattern in _NAMED_PATTERNS[language]:
            match = pattern.search(text)
            if match:
                year = int(match.group("year")) if match.group("year") else today.year
                return _safe_date(year, months[match.group("month")], int(match.group("day")))
        return None

    @staticmethod
    def _numeric_date(text: str, today: date):
        match = _YEAR_MONTH_DAY.search(text)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return _safe_date(year, month, day)

        match = _DAY_MONTH_YEAR.search(text)
        if match:
            day = int(match.group(1))
            month = int(match.group(2) or match.group(4))
            year_text = match.group(3) or match.group(5)
            year = int(year_text) if year_text else today.year
            return _safe_date(year, month, day)
        return None


# Sentinel: a rule matched but named an impossible date
_INVALID = object()


def _safe_date(year: int, month: int, day: int):
    try:
        return date(year, month, day)
    except ValueError:
        return _INVALID


# =============================================================================
# CALENDAR WINDOWS (user timezone)
# =============================================================================

def add_months(day: date, months: int) -> date:
    """Shift by whole calendar months, clamping the day (Jan 31 + 1 = Feb 28/29)."""
    index = day.month - 1 + months
    year, month = day.year + index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def month_window(now: datetime, tz: Union[str, ZoneInfo]) -> tuple[datetime, datetime]:
    """[first of this month, first of next month) in the user's timezone."""
    zone = tz if isinstance(tz, ZoneInfo) else zone_for(tz)
    local_today = to_utc(now).astimezone(zone).date()
    first = local_today.replace(day=1)
    return local_midnight(first, zone), local_midnight(add_months(first, 1), zone)


def week_window(now: datetime, tz: Union[str, ZoneInfo]) -> tuple[datetime, datetime]:
    """[Monday 00:00, next Monday 00:00) in the user's timezone."""
    zone = tz if isinstance(tz, ZoneInfo) else zone_for(tz)
    local_today = to_utc(now).astimezone(zone).date()
    monday = local_today - timedelta(days=local_today.weekday())
    return local_midnight(monday, zone), local_midnight(monday + timedelta(days=7), zone)


def start_of_today(now: datetime, tz: Union[str, ZoneInfo]) -> datetime:
    zone = tz if isinstance(tz, ZoneInfo) else zone_for(tz)
    return local_midnight(to_utc(now).astimezone(zone).date(), zone)
