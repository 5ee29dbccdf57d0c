"""
时段计算工具
所有时间均按餐厅当地的挂钟时间处理，预订区间为半开区间 [start, start + duration)
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Tuple

from ..core.exceptions import ValidationError

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time(value: str) -> time:
    """解析 HH:MM（24小时制）"""
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM", {"time": value})
    return time(int(match.group(1)), int(match.group(2)))


def format_time(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def slot_window(on_date: date, start_time: str, duration_hours: int) -> Tuple[datetime, datetime]:
    """计算时段的起止时间"""
    start = datetime.combine(on_date, parse_time(start_time))
    return start, start + timedelta(hours=duration_hours)


def slots_overlap(
    a: Tuple[date, str],
    b: Tuple[date, str],
    duration_hours: int
) -> bool:
    """
    判断两个时段是否冲突

    Args:
        a: (日期, 开始时间)
        b: (日期, 开始时间)
        duration_hours: 统一的预订时长

    Returns:
        bool: startA < endB 且 startB < endA 时为 True，首尾相接不算冲突
    """
    start_a, end_a = slot_window(a[0], a[1], duration_hours)
    start_b, end_b = slot_window(b[0], b[1], duration_hours)
    return start_a < end_b and start_b < end_a


def booked_until(start_time: str, duration_hours: int) -> str:
    """预订结束时间，用于提示用户时段被占用到几点"""
    start = datetime.combine(date.min, parse_time(start_time))
    return format_time((start + timedelta(hours=duration_hours)).time())
