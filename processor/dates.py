"""Date-shape helpers shared by the line parser and identity assignment."""
import re
from datetime import date, datetime, timedelta
from typing import Optional

MONTH_NAMES = (
    r'(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|'
    r'Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)'
)

# Checked in this order; the first class with a match wins
DATE_PATTERNS = [
    re.compile(r'\d{1,2}\.\d{1,2}\.\d{2,4}'),              # 4.4.26
    re.compile(r'\b' + MONTH_NAMES + r'\s+\d{1,2}', re.IGNORECASE),  # Jan 24
    re.compile(r'\d{1,2}/\d{1,2}/\d{2,4}'),                # 02/15/26
]


def extract_date(text: str) -> str:
    """
    Pull an embedded date out of free text such as an event title.

    Args:
        text: Text that may contain a date (e.g., "Chimera Golf Club 4.4.26")

    Returns:
        The matched date substring, or an empty string if none is found
    """
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return ''


def strip_date_tokens(text: str) -> str:
    """Remove every date-shaped substring from text."""
    for pattern in DATE_PATTERNS:
        text = pattern.sub(' ', text)
    return text


def parse_date(date_text: str, today: Optional[date] = None) -> Optional[date]:
    """
    Best-effort conversion of event date text into a date.

    Supports "Mar 13 2026", "March 13 2026", "4.4.26", "04/15/2026",
    "02/15/26" and year-less "Jan 24" (the current year is assumed).

    Args:
        date_text: Free-form date text from an event
        today: Reference date used for year-less dates (default: today)

    Returns:
        Parsed date, or None if the text is not a recognized date
    """
    if not date_text or not date_text.strip():
        return None

    text = ' '.join(date_text.replace(',', ' ').split())

    date_formats = [
        '%b %d %Y',      # Mar 13 2026
        '%B %d %Y',      # March 13 2026
        '%m.%d.%y',      # 4.4.26
        '%m.%d.%Y',      # 4.4.2026
        '%m/%d/%y',      # 02/15/26
        '%m/%d/%Y',      # 02/15/2026
    ]

    for fmt in date_formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    # Year-less dates get the reference year appended so Feb 29 can parse
    year = (today or date.today()).year
    for fmt in ('%b %d %Y', '%B %d %Y'):
        try:
            return datetime.strptime(f"{text} {year}", fmt).date()
        except ValueError:
            continue

    return None


def is_upcoming(event, today: Optional[date] = None) -> bool:
    """Return True unless the event's date is known to be in the past."""
    today = today or date.today()
    parsed = parse_date(event.date_text, today)
    if parsed is None:
        return True
    return parsed >= today


def is_within_days(event, days: int, today: Optional[date] = None) -> bool:
    """
    Check whether an event falls within the next `days` days.

    A non-positive window disables the check, and events with
    unparseable dates are always included.
    """
    if days <= 0:
        return True
    today = today or date.today()
    parsed = parse_date(event.date_text, today)
    if parsed is None:
        return True
    return today <= parsed <= today + timedelta(days=days)
