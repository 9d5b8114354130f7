import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidRequest

logger = logging.getLogger(__name__)

ISO_DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_ISO_DATE_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


@dataclass(frozen=True)
class Period:
    start: date
    end: date


def parse_iso_date(value: str, field: str = "transaction_date") -> date:
    """Parse ``YYYY-MM-DD`` strictly; anything else is an invalid request."""
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        logger.warning(f"date_rejected: field={field} value={value!r}")
        raise InvalidRequest(f"Invalid {field} format. Use YYYY-MM-DD.")
    try:
        return datetime.strptime(value, ISO_DATE_FORMAT).date()
    except ValueError as exc:
        logger.warning(f"date_rejected: field={field} value={value!r}")
        raise InvalidRequest(f"Invalid {field} format. Use YYYY-MM-DD.") from exc


def resolve_period(start: str, end: str) -> Period:
    start_date = parse_iso_date(start, "start_date")
    end_date = parse_iso_date(end, "end_date")
    return Period(start_date, end_date)


def format_iso_date(value: date) -> str:
    return value.strftime(ISO_DATE_FORMAT)


def format_local_timestamp(value: datetime) -> str:
    """Render a stored UTC timestamp in the configured local time zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(get_settings().timezone))
    return local.strftime(TIMESTAMP_FORMAT)
