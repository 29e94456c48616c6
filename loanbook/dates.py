"""Date helpers shared by the ledger and the overdue monitor."""
from datetime import date, datetime

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from loanbook.config import DATETIME_FORMAT_STORAGE, DATE_FORMAT_DISPLAY
from loanbook.exceptions import InvalidInputError


def to_datetime(value, field: str = "date") -> datetime:
    """Normalize a datetime, date or ISO string to a naive local datetime.

    Dates become midnight. Aware datetimes are converted to local time
    before the zone is dropped, matching how the store keeps timestamps.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value.strip())
        except ValueError:
            raise InvalidInputError(field, f"cannot parse {value!r}")
    else:
        raise InvalidInputError(field, f"unsupported type {type(value).__name__}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def to_storage(value) -> str:
    return to_datetime(value).strftime(DATETIME_FORMAT_STORAGE)


def from_storage(value: str) -> datetime:
    if value is None:
        return None
    return datetime.strptime(value, DATETIME_FORMAT_STORAGE)


def add_weeks(start: datetime, weeks: int) -> datetime:
    return start + relativedelta(weeks=weeks)


def format_date(value) -> str:
    if value is None:
        return ""
    return to_datetime(value).strftime(DATE_FORMAT_DISPLAY)
