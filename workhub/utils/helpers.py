"""Shared utility functions for services and blueprints.

utcnow / as_utc:     timezone-aware timestamps (SQLite returns naive values)
parse_date:          ISO date parsing, returns None on bad input
parse_date_input:    same, but raises ValidationError
pagination_args:     limit/offset query parameters
"""
import logging
from datetime import date, datetime, timezone

from flask import request

from workhub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    Stored datetimes come back naive from SQLite; they were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value):
    """Parse a date string (YYYY-MM-DD or full ISO datetime) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field):
    """Parse a date, raising ValidationError naming ``field`` on bad input."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid date for {field}. Use YYYY-MM-DD.",
            details={field: "invalid date"},
        )
    return parsed


def pagination_args(default_limit: int = 50) -> tuple[int, int]:
    """Parse limit/offset pagination query parameters from the current request."""
    try:
        limit = min(int(request.args.get("limit", default_limit)), 200)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
