import calendar
import math
from datetime import date
from typing import List, Optional

from pydantic import BaseModel

from timesync.models.room import WEEK_ORDER, RoomPeriod, TimeFrame, WeekOfMonth


class WeekOption(BaseModel):
    """A week the organizer can pick for a week-scoped room"""
    label: WeekOfMonth
    start: date
    end: date


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _week_count(year: int, month: int) -> int:
    return math.ceil(_days_in_month(year, month) / 7)


def _label_for_index(index: int) -> WeekOfMonth:
    # Only a fifth, partial block (days 29-31) is "last"; a 28-day February ends on the fourth week
    return WEEK_ORDER[index - 1]


def week_of_month(day: date) -> WeekOfMonth:
    """
    Week label of a date, counting seven-day blocks from the 1st.

    Days 1-7 are the first week, 8-14 the second and so on; days 29 and
    later are ``마지막 주``.
    """
    index = math.ceil(day.day / 7)
    return _label_for_index(index)


def is_date_in_period(day: date, period: RoomPeriod, today: Optional[date] = None) -> bool:
    """Whether ``day`` falls inside the room's committed month or week of this year."""
    today = today or date.today()
    if period.specific_month is None:
        return False
    if day.year != today.year or day.month != period.specific_month:
        return False
    if period.time_frame == TimeFrame.MONTH:
        return True
    if period.specific_week is None:
        return False
    return week_of_month(day) == period.specific_week


def week_options(year: int, month: int, today: Optional[date] = None) -> List[WeekOption]:
    """
    Weeks of ``month`` available for selection.

    Within the current month, weeks whose last day is already in the past are
    left out.
    """
    today = today or date.today()
    days = _days_in_month(year, month)
    count = _week_count(year, month)
    options = []
    for index in range(1, count + 1):
        first_day = date(year, month, (index - 1) * 7 + 1)
        last_day = date(year, month, min(index * 7, days))
        if last_day < today and (year, month) == (today.year, today.month):
            continue
        options.append(WeekOption(label=_label_for_index(index), start=first_day, end=last_day))
    return options


def period_description(period: RoomPeriod) -> str:
    if period.time_frame == TimeFrame.WEEK and period.specific_week is not None:
        return f"{period.specific_month}월 {period.specific_week.value}"
    return f"{period.specific_month}월 전체"
