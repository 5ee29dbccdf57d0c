"""
桌位可用性查询
只读查询，反映调用时刻的落库状态，不保证并发下的新鲜度；
并发安全由 BookingService.try_book 在事务内重新检查保证。
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import settings
from ..core.database import db_manager
from ..models.booking import BookingKind, BookingSlot
from ..utils.slots import booked_until, slots_overlap

# 未取消的预订 + 仍占用桌位的堂食订单
_OCCUPANCY_SQL = """
SELECT id, 'reservation' AS kind, table_number, date, start_time
FROM reservations
WHERE date = ? AND status <> 'canceled' {table_filter}
UNION ALL
SELECT id, 'order' AS kind, table_number, date, start_time
FROM orders
WHERE date = ? AND holds_table AND table_number IS NOT NULL {table_filter}
ORDER BY table_number, start_time
"""


class AvailabilityService:
    """桌位占用查询服务"""

    def __init__(self, db=None, duration_hours: Optional[int] = None):
        self.db = db or db_manager
        self.duration_hours = duration_hours or settings.booking_duration_hours

    def list_bookings_for_table_on_date(self, table_number: int, on_date: date, conn=None) -> List[BookingSlot]:
        """获取某张桌子当天所有有效占用"""
        query = _OCCUPANCY_SQL.format(table_filter="AND table_number = ?")
        rows = self.db.fetch_dicts(query, [on_date, table_number, on_date, table_number], conn=conn)
        return [self._to_slot(row) for row in rows]

    def list_all_bookings_on_date(self, on_date: date) -> List[Tuple[int, str]]:
        """当天所有桌位的占用 (桌号, 开始时间)"""
        query = _OCCUPANCY_SQL.format(table_filter="")
        rows = self.db.fetch_dicts(query, [on_date, on_date])
        return [(row["table_number"], row["start_time"]) for row in rows]

    def check_table(self, table_number: int, on_date: date, start_time: str) -> Dict[str, Any]:
        """预览某桌某时段是否可订（非原子，仅用于展示）"""
        for slot in self.list_bookings_for_table_on_date(table_number, on_date):
            if slots_overlap((on_date, start_time), (slot.date, slot.start_time), self.duration_hours):
                return {"available": False, "booked_until": slot.booked_until}
        return {"available": True, "booked_until": None}

    def booked_tables_at(self, on_date: date, start_time: str) -> List[Dict[str, Any]]:
        """
        指定时段被占用的桌子，每张桌子只出现一次

        Returns:
            list: [{"table_number": 3, "booked_until": "20:00"}, ...]，
            同一张桌子有多个冲突预订时取最晚结束的那个
        """
        blocked: Dict[int, str] = {}
        # 查询按 (桌号, 开始时间) 排序，后出现的冲突预订结束得更晚
        for table_number, existing_start in self.list_all_bookings_on_date(on_date):
            if slots_overlap((on_date, start_time), (on_date, existing_start), self.duration_hours):
                blocked[table_number] = booked_until(existing_start, self.duration_hours)
        return [{"table_number": t, "booked_until": until} for t, until in blocked.items()]

    def _to_slot(self, row: Dict[str, Any]) -> BookingSlot:
        return BookingSlot(
            booking_id=row["id"],
            kind=BookingKind(row["kind"]),
            table_number=row["table_number"],
            date=row["date"],
            start_time=row["start_time"],
            booked_until=booked_until(row["start_time"], self.duration_hours),
        )
