"""Date manipulation utilities"""

from datetime import date, timedelta
from dateutil.relativedelta import relativedelta


def day_after(from_date: date) -> date:
    return from_date + timedelta(days=1)


def day_before(from_date: date) -> date:
    return from_date - timedelta(days=1)


def months_before(from_date: date, months: int) -> date:
    """Same day-of-month N months earlier, clamped to the month's last day"""
    return from_date - relativedelta(months=months)


def clamp_to_today(end: date, today: date) -> date:
    return end if end <= today else today
