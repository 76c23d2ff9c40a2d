"""
UK wall-clock helpers. The dispatch system works in local UK time.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

UK_TZ = ZoneInfo("Europe/London")


def uk_now() -> datetime:
    """Current naive UK wall-clock time."""
    return datetime.now(UK_TZ).replace(tzinfo=None)


def format_uk_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def is_british_summer_time(moment: datetime) -> bool:
    """True when a naive UK wall-clock time falls in British Summer Time."""
    return bool(moment.replace(tzinfo=UK_TZ).dst())


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year, month = value.year + month_index // 12, month_index % 12 + 1
    next_month = date(year + (month == 12), month % 12 + 1, 1)
    return value.replace(year=year, month=month, day=min(value.day, (next_month - timedelta(days=1)).day))
