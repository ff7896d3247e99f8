"""Reference-year utilities for freshness checks."""

import re
from datetime import datetime
from typing import Optional

import pytz

from contentgate.core.logging import get_logger
from contentgate.core.settings import settings

logger = get_logger(__name__)

DATE_PREFIX_REGEX = re.compile(r"^(\d{4})")


def now_local(tz_name: Optional[str] = None) -> datetime:
    """Current time in the configured timezone."""
    try:
        tz = pytz.timezone(tz_name or settings.tz)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {tz_name or settings.tz}, using UTC")
        tz = pytz.UTC
    return datetime.now(tz)


def resolve_reference_year(date_str: Optional[str] = None) -> int:
    """
    Reference year for freshness rules.

    The year prefix of a ``YYYY-MM-DD`` schedule date wins when it is in
    1900..2099, otherwise the current local year is used.
    """
    match = DATE_PREFIX_REGEX.match((date_str or "").strip())
    if match:
        year = int(match.group(1))
        if 1900 <= year <= 2099:
            return year
    return now_local().year


def is_valid_schedule_date(date_str: str) -> bool:
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str or ""):
        return False
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError:
        return False
    return True
