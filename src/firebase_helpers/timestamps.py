"""Fixed textual encoding for datetime fields.

Stored timestamps always look like ``2024-03-01T08:15:30.250Z``: UTC,
millisecond precision, POSIX formatting. Encoding and decoding share the
same format string so that a round trip never shifts the timezone or the
sub-second part.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def format_timestamp(value: datetime) -> str:
    """Encode *value* as ``YYYY-MM-DDTHH:mm:ss.sssZ``.

    Naive datetimes are taken to be UTC; aware ones are converted to UTC.
    Digits below the millisecond are truncated.

    >>> format_timestamp(datetime(2024, 3, 1, 8, 15, 30, 250999))
    '2024-03-01T08:15:30.250Z'
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def is_timestamp(text: str) -> bool:
    """True when *text* is in the fixed timestamp encoding."""
    return bool(_TIMESTAMP_RE.match(text))


def parse_timestamp(text: str) -> datetime:
    """Decode a string produced by :func:`format_timestamp`.

    Returns an aware UTC datetime.

    Raises:
        ValueError: If *text* is not in the fixed encoding.
    """
    if not is_timestamp(text):
        raise ValueError(f"{text!r} is not a timestamp in the form YYYY-MM-DDTHH:mm:ss.sssZ")
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
