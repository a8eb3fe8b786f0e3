"""Date normalization: raw date/time phrases to absolute deadlines."""

import calendar
import logging
import re
from datetime import date, datetime, time, timedelta

from .config import RELATIVE_PHRASE_DAYS
from .models import NormalizedDate
from .patterns import MONTH_NAMES, strip_ordinals

logger = logging.getLogger(__name__)

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_NUMERIC_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_MONTH_DAY_RE = re.compile(
    rf"\b({MONTH_NAMES})\.?\s+(\d{{1,2}})\b(?:,?\s+(\d{{4}})\b)?", re.IGNORECASE
)
_DAY_MONTH_RE = re.compile(
    rf"\b(\d{{1,2}})\s+(?:of\s+)?({MONTH_NAMES})\b(?:,?\s+(\d{{4}})\b)?", re.IGNORECASE
)
_CLOCK_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$", re.IGNORECASE)
_END_OF_WEEK_RE = re.compile(r"\bend of (?:the )?week\b")
_END_OF_MONTH_RE = re.compile(r"\bend of (?:the )?month\b")


def month_number(name: str) -> int:
    """Map an English month name or abbreviation to 1-12."""
    return MONTHS[name.lower()[:3]]


def relative_offset_days(context: str, now: datetime) -> int | None:
    """
    Find a relative deadline phrase in the context.

    Args:
        context: Text surrounding the date phrase
        now: Reference instant

    Returns:
        Days from today to the deadline day, or None without a phrase
    """
    lowered = context.lower()

    for phrase, days in RELATIVE_PHRASE_DAYS.items():
        if phrase in lowered:
            return days

    if _END_OF_WEEK_RE.search(lowered):
        # Weeks end on Sunday (weekday 6)
        return (6 - now.weekday()) % 7

    if _END_OF_MONTH_RE.search(lowered):
        last_day = calendar.monthrange(now.year, now.month)[1]
        return last_day - now.day

    return None


def next_valid_date(month: int, day: int, year: int) -> date:
    """
    First date with this month and day in ``year`` or later.

    Only Feb 29 moves on, to the next leap year.

    Raises:
        ValueError: If no year has such a date
    """
    if month == 2 and day == 29:
        while not calendar.isleap(year):
            year += 1
    return date(year, month, day)


def parse_explicit_date(text: str, default_year: int) -> tuple[date, bool] | None:
    """
    Parse one of the supported explicit date forms.

    Supported: ``YYYY-MM-DD``, ``M/D[/Y]`` (US order), ``Month Day[, Year]``
    and ``Day [of] Month[ Year]``.

    Args:
        text: Date substring with ordinal suffixes already removed
        default_year: Year to use when the text has none

    Returns:
        (date, had_explicit_year), or None if no form matches

    Raises:
        ValueError: If a form matches but names an impossible date
    """
    match = _ISO_RE.search(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return date(year, month, day), True

    match = _NUMERIC_RE.search(text)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        year_text = match.group(3)
        if year_text is None:
            return next_valid_date(month, day, default_year), False
        if len(year_text) == 2:
            return date(2000 + int(year_text), month, day), True
        if len(year_text) == 4:
            return date(int(year_text), month, day), True
        return None

    match = _MONTH_DAY_RE.search(text)
    if match:
        month = month_number(match.group(1))
        day = int(match.group(2))
        if match.group(3):
            return date(int(match.group(3)), month, day), True
        return next_valid_date(month, day, default_year), False

    match = _DAY_MONTH_RE.search(text)
    if match:
        day = int(match.group(1))
        month = month_number(match.group(2))
        if match.group(3):
            return date(int(match.group(3)), month, day), True
        return next_valid_date(month, day, default_year), False

    return None


def parse_clock_time(text: str) -> time | None:
    """
    Parse a clock time such as ``5pm``, ``11:59 PM`` or ``17:30``.

    Returns:
        The time of day, or None if the text is not a valid time
    """
    match = _CLOCK_RE.match(text.strip())
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").lower()

    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def normalize_date(
    date_text: str,
    context: str,
    now: datetime,
    time_text: str | None = None,
) -> NormalizedDate | None:
    """
    Resolve a date phrase to an absolute deadline.

    A relative phrase in the context ("tomorrow", "next week", ...) wins
    over the explicit date grammar. Without an explicit year, a date that
    falls before ``now`` moves to the following year.

    Args:
        date_text: Date substring captured by the matcher
        context: Surrounding text, used to detect relative phrases
        now: Reference instant
        time_text: Optional time-of-day substring

    Returns:
        NormalizedDate, or None if the phrase cannot be resolved
    """
    if not date_text:
        return None

    try:
        return _normalize(date_text, context or "", now, time_text)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Could not resolve date '{date_text}': {e}")
        return None


def _normalize(
    date_text: str, context: str, now: datetime, time_text: str | None
) -> NormalizedDate | None:
    clock = parse_clock_time(time_text) if time_text else None
    if time_text and clock is None:
        logger.debug(f"Ignoring invalid time '{time_text}'")
    time_of_day = clock or time()

    offset = relative_offset_days(context, now)
    if offset is not None:
        day = (now + timedelta(days=offset)).date()
        timestamp = datetime.combine(day, time_of_day)
        # Same-day phrases ("end of week" on a Sunday) resolve to now at the earliest
        if timestamp < now:
            timestamp = now
        return NormalizedDate(
            timestamp=timestamp,
            had_explicit_year=False,
            had_explicit_time=clock is not None,
        )

    parsed = parse_explicit_date(strip_ordinals(date_text), now.year)
    if parsed is None:
        return None

    day, had_explicit_year = parsed
    timestamp = datetime.combine(day, time_of_day)
    if not had_explicit_year and timestamp < now:
        timestamp = datetime.combine(
            next_valid_date(day.month, day.day, day.year + 1), time_of_day
        )

    return NormalizedDate(
        timestamp=timestamp,
        had_explicit_year=had_explicit_year,
        had_explicit_time=clock is not None,
    )


def parse_deadline(value: str, now: datetime) -> datetime | None:
    """
    Parse a deadline typed by a user.

    ISO-8601 first, then the deadline phrase grammar. Deadlines are naive
    local time, so an offset or "Z" is converted to local time and dropped.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        normalized = normalize_date(value, value, now)
        return normalized.timestamp if normalized else None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
