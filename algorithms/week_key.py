import math
import datetime


class WeekKey:
    """Derive the ``YYYY-Wn`` labels used to group routines by week.

    The week index counts Sunday-started weeks from January 1:
    ``ceil((day_of_year + weekday_of_jan1 + 1) / 7)``. This is not ISO-8601
    week numbering; late December dates may yield ``W53`` and early January
    dates always belong to the current calendar year.
    """

    @staticmethod
    def to_date(value: datetime.date | datetime.datetime | str) -> datetime.date:
        """Normalize ``value`` to a calendar date, dropping any time of day."""
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        text = str(value).strip()
        try:
            return datetime.date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"invalid date: {value!r}")

    @staticmethod
    def jan1_weekday(year: int) -> int:
        """Return the weekday of January 1 with Sunday as 0."""
        return (datetime.date(year, 1, 1).weekday() + 1) % 7

    @classmethod
    def week_number(cls, value: datetime.date | datetime.datetime | str) -> int:
        day = cls.to_date(value)
        day_of_year = (day - datetime.date(day.year, 1, 1)).days
        return math.ceil((day_of_year + cls.jan1_weekday(day.year) + 1) / 7)

    @classmethod
    def week_label(cls, value: datetime.date | datetime.datetime | str) -> str:
        """Return the ``YYYY-Wn`` label for ``value``."""
        day = cls.to_date(value)
        return f"{day.year}-W{cls.week_number(day)}"

    @classmethod
    def current_week(cls, today: datetime.date | None = None) -> str:
        return cls.week_label(today or datetime.date.today())
