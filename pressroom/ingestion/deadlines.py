"""Deadline and broadcast time resolution shared by the format parsers.

Media-query services state deadlines as loose US wall-clock text ("12:00 pm",
"Eastern Standard Time", "by 3 PM EST", "Saturday, November 29 at 6 pm").
The parsers locate those phrases with regexes; the date and time words
themselves are read by ``dateutil.parser``, with any fields the phrase leaves
out taken from a default of today at the end of business. Zones come from a
small US timezone table with fixed UTC offsets; a name the table does not
know resolves to Eastern standard.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil import tz

DEFAULT_UTC_OFFSET = -5

# (names/abbreviations that identify the zone, standard offset, daylight offset)
_US_TIMEZONES = [
    (("eastern", "est", "edt", "et"), -5, -4),
    (("central", "cst", "cdt", "ct"), -6, -5),
    (("mountain", "mst", "mdt", "mt"), -7, -6),
    (("pacific", "pst", "pdt", "pt"), -8, -7),
    (("alaska", "akst", "akdt", "akt"), -9, -8),
    (("hawaii", "hst", "hdt"), -10, -9),
]
_DAYLIGHT_MARKERS = ("daylight", "edt", "cdt", "mdt", "pdt", "akdt", "hdt")
_KNOWN_ZONE_NAMES = {name for names, _, _ in _US_TIMEZONES for name in names}

# Regex fragment for a timezone token that may trail a clock time ("3 PM EST").
TIMEZONE_TOKEN = (
    r"(?:eastern|central|mountain|pacific|alaska|hawaii"
    r"|[ecmp][sd]?t|ak[sd]?t|h[sd]t)\b"
)

_PARSER_INFO = date_parser.parserinfo()

# Full English names, for building phrase-locating regexes.
MONTH_NAMES = [names[-1] for names in _PARSER_INFO.MONTHS]
WEEKDAY_NAMES = [names[-1] for names in _PARSER_INFO.WEEKDAYS]

END_OF_BUSINESS = time(17, 0)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timezone_offset(name: Optional[str]) -> int:
    """Map a US timezone name or abbreviation to a UTC offset in hours."""
    if not name:
        return DEFAULT_UTC_OFFSET

    tokens = re.findall(r"[a-z]+", name.lower())
    if not tokens:
        return DEFAULT_UTC_OFFSET

    daylight = any(token in _DAYLIGHT_MARKERS for token in tokens)
    for names, standard, summer in _US_TIMEZONES:
        if any(token in names for token in tokens):
            return summer if daylight else standard

    return DEFAULT_UTC_OFFSET


def us_timezone(name: Optional[str]) -> tz.tzoffset:
    return tz.tzoffset(name, timezone_offset(name) * 3600)


def _tzinfos(name: Optional[str], offset: Optional[int]):
    """dateutil hook: abbreviations it spots ("ET", "PST") go through the US table."""
    if name and name.lower() in _KNOWN_ZONE_NAMES:
        return us_timezone(name)
    if offset is not None:
        return tz.tzoffset(name, offset)
    return None


def read_datetime(text: str, default: datetime, fuzzy: bool = True) -> Optional[datetime]:
    """Read the date and time words in ``text``; missing fields come from ``default``.

    Returns None when dateutil cannot make a valid datetime out of the text.
    """
    try:
        return date_parser.parse(text, default=default, fuzzy=fuzzy, tzinfos=_tzinfos)
    except (ValueError, OverflowError):
        return None


def localize(value: datetime, tz_name: Optional[str]) -> datetime:
    """UTC view of ``value``; naive values are wall-clock time in ``tz_name``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=us_timezone(tz_name))
    return value.astimezone(timezone.utc)


def local_today(now: datetime, tz_name: Optional[str]) -> date:
    """Calendar date of ``now`` as seen in the given US zone."""
    return now.astimezone(us_timezone(tz_name)).date()


def _end_of_business(now: datetime, tz_name: Optional[str]) -> datetime:
    return datetime.combine(local_today(now, tz_name), END_OF_BUSINESS)


def is_month_name(token: str) -> bool:
    return _PARSER_INFO.month(token.rstrip(".")) is not None


def resolve_structured_deadline(date_text: str, time_text: str, tz_name: str) -> Optional[datetime]:
    """Resolve '2025-12-17' + '12:00 pm' + 'Eastern Standard Time' to UTC.

    Both fields must be fully readable; returns None otherwise.
    """
    if not date_text or not time_text:
        return None

    parsed = read_datetime(f"{date_text} {time_text}", datetime(1900, 1, 1), fuzzy=False)
    if parsed is None:
        return None
    return localize(parsed, tz_name)


def next_time_of_day(text: str, tz_name: Optional[str], now: datetime) -> Optional[datetime]:
    """Today at the clock time in ``text``; tomorrow if that moment has already passed."""
    parsed = read_datetime(text, _end_of_business(now, tz_name))
    if parsed is None:
        return None

    candidate = localize(parsed, tz_name)
    if candidate < now:
        candidate = localize(parsed + timedelta(days=1), tz_name)
    return candidate


def next_weekday(text: str, tz_name: Optional[str], now: datetime) -> Optional[datetime]:
    """Next occurrence of the weekday in ``text`` (today counts if the time is still ahead).

    Without a clock time the deadline is the end of business that day.
    """
    parsed = read_datetime(text, _end_of_business(now, tz_name))
    if parsed is None:
        return None

    candidate = localize(parsed, tz_name)
    if candidate < now:
        candidate = localize(parsed + timedelta(days=7), tz_name)
    return candidate


def next_month_day(text: str, tz_name: Optional[str], now: datetime) -> Optional[datetime]:
    """This year's month and day from ``text``, rolled to next year if already past."""
    parsed = read_datetime(text, _end_of_business(now, tz_name))
    if parsed is None:
        return None

    candidate = localize(parsed, tz_name)
    if candidate < now:
        try:
            candidate = localize(parsed.replace(year=parsed.year + 1), tz_name)
        except ValueError:
            return None
    return candidate
