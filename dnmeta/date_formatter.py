# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Date parsing and formatting utilities

Converts between datetime objects and the timestamp syntaxes used by
the supported containers:

- EXIF/TIFF:  "YYYY:MM:DD HH:MM:SS"
- PDF:        "D:YYYYMMDDHHmmSSOHH'mm'" (every part after the year optional)
- ID3v2.4:    "yyyy[-MM[-dd[THH[:mm[:ss]]]]]"
- ISO-8601:   accepted from callers for any timestamp field

Copyright 2025 DNAi inc.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

EXIF_DATETIME_FORMAT = '%Y:%m:%d %H:%M:%S'

_PDF_DATE_RE = re.compile(
    r"^D?:?(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?"
    r"(?:([Zz+\-])(?:(\d{2})'?(?:(\d{2})'?)?)?)?\s*$"
)

ID3_TIMESTAMP_RE = re.compile(
    r'^\d{4}(-\d{2}(-\d{2}(T\d{2}(:\d{2}(:\d{2})?)?)?)?)?$'
)


def parse_exif_datetime(text: str) -> Optional[datetime]:
    """
    Parse an EXIF date/time string.

    Returns:
        datetime, or None when the text is blank or not in EXIF syntax
        (cameras write "    :  :     :  :  " for unknown dates)
    """
    text = text.strip().rstrip('\x00')
    if not text:
        return None
    try:
        return datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        return None


def format_exif_datetime(value: datetime) -> str:
    """Format a datetime as EXIF "YYYY:MM:DD HH:MM:SS" (time zone dropped)."""
    return value.strftime(EXIF_DATETIME_FORMAT)


def parse_pdf_date(text: str) -> Optional[datetime]:
    """
    Parse a PDF date string.

    Missing month/day default to 1, missing time parts to 0. An offset
    of Z or +HH'mm' yields an aware datetime; no offset yields a naive one.

    Returns:
        datetime, or None if the text is not a PDF date
    """
    match = _PDF_DATE_RE.match(text.strip())
    if not match:
        return None
    year, month, day, hour, minute, second, sign, off_h, off_m = match.groups()
    try:
        value = datetime(
            int(year),
            int(month or 1),
            int(day or 1),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
        )
    except ValueError:
        return None
    if sign:
        if sign in 'Zz':
            value = value.replace(tzinfo=timezone.utc)
        else:
            offset = timedelta(hours=int(off_h or 0), minutes=int(off_m or 0))
            if sign == '-':
                offset = -offset
            try:
                value = value.replace(tzinfo=timezone(offset))
            except ValueError:
                return None
    return value


def format_pdf_date(value: datetime) -> str:
    """Format a datetime as a PDF date string."""
    text = value.strftime('D:%Y%m%d%H%M%S')
    offset = value.utcoffset()
    if offset is None:
        return text
    if offset == timedelta(0):
        return text + 'Z'
    sign = '+' if offset > timedelta(0) else '-'
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}'{minutes % 60:02d}'"


def parse_iso_datetime(text: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or date-time.

    A trailing "Z" is accepted as UTC.
    """
    text = text.strip()
    if not text:
        return None
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def is_id3_timestamp(text: str) -> bool:
    """Check text against the ID3v2.4 timestamp grammar."""
    return bool(ID3_TIMESTAMP_RE.match(text.strip()))
