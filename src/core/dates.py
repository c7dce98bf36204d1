"""Calendar helpers for date-scoped records.

Dates travel as ISO ``YYYY-MM-DD`` strings. Weeks run Monday to Sunday.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from src.api.middleware.error_handler import ValidationError
from src.models.records import DayOfWeek

_DAYS = list(DayOfWeek)


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of ISO dates."""

    start_date: str
    end_date: str

    def __post_init__(self) -> None:
        start = parse_date(self.start_date)
        end = parse_date(self.end_date)
        if end < start:
            raise ValidationError(f"Date range ends ({self.end_date}) before it starts ({self.start_date})")

    def dates(self) -> list[str]:
        """Every date in the range, in order."""
        start = parse_date(self.start_date)
        days = (parse_date(self.end_date) - start).days
        return [format_date(start + timedelta(days=offset)) for offset in range(days + 1)]

    def contains(self, value: str) -> bool:
        return self.start_date <= value <= self.end_date


def today() -> date:
    return datetime.now(timezone.utc).date()


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def format_date(value: date) -> str:
    return value.isoformat()


def day_of_week(value: str) -> DayOfWeek:
    """Day-of-week label for an ISO date."""
    return _DAYS[parse_date(value).weekday()]


def week_range(reference: date | None = None) -> DateRange:
    """Monday-to-Sunday range containing ``reference`` (default: today)."""
    reference = reference or today()
    monday = reference - timedelta(days=reference.weekday())
    return DateRange(format_date(monday), format_date(monday + timedelta(days=6)))


def next_week_range(reference: date | None = None) -> DateRange:
    current = week_range(reference)
    return week_range(parse_date(current.start_date) + timedelta(days=7))


def date_for_day_of_week(week_start: str, day: DayOfWeek) -> str:
    """Date of ``day`` in the week starting on ``week_start``."""
    return format_date(parse_date(week_start) + timedelta(days=_DAYS.index(day)))
