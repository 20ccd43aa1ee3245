from .week_key import WeekKey

__all__ = ["WeekKey"]
