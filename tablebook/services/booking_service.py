"""
桌位预订服务
提供桌位准入判定和预订的创建、查询、取消

业务规则：
- 同一桌子同一天，未取消的预订/堂食订单时段不能重叠
- 每个预订占用固定时长，区间为 [开始, 开始+时长)
- 只能预订今天及以后、营业时段内的时间

并发控制：
- 准入判定按 (桌号, 日期) 串行化，并在同一个数据库事务内完成“检查冲突 + 写入”，
  避免两个请求同时读到“空闲”后都写入
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import settings
from ..core.database import db_manager
from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ..models.booking import BookingKind, Reservation, ReservationStatus
from ..schemas.reservation import ReservationCreateRequest
from ..utils.slots import parse_time, slots_overlap
from .availability_service import AvailabilityService
from .notification_service import NotificationDispatcher, RESERVATION_CONFIRMED
from .profile_service import ProfileService

logger = logging.getLogger(__name__)

_BOOKING_TABLES = {
    BookingKind.RESERVATION: "reservations",
    BookingKind.ORDER: "orders",
}


class _KeyedLocks:
    """按键分配的互斥锁，没有等待者时回收"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Any, List] = {}  # key -> [lock, 持有或等待的线程数]

    def __len__(self):
        return len(self._locks)

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class BookingService:
    """桌位准入与预订服务"""

    def __init__(
        self,
        db=None,
        availability: Optional[AvailabilityService] = None,
        notifications: Optional[NotificationDispatcher] = None,
        profiles: Optional[ProfileService] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db or db_manager
        self.availability = availability or AvailabilityService(self.db)
        self.notifications = notifications or NotificationDispatcher(db=self.db)
        self.profiles = profiles or ProfileService(self.db)
        self.clock = clock
        self.duration_hours = self.availability.duration_hours
        self._locks = _KeyedLocks()

    def validate_slot(self, table_number: int, on_date: date, start_time: str):
        """校验桌号、日期和营业时间"""
        if not 1 <= table_number <= settings.table_count:
            raise ValidationError(
                f"Table must be between 1 and {settings.table_count}",
                {"table_number": table_number},
            )
        self.validate_date_time(on_date, start_time)

    def validate_date_time(self, on_date: date, start_time: str):
        if on_date < self.clock().date():
            raise ValidationError("Cannot book a date in the past", {"date": on_date.isoformat()})

        start = parse_time(start_time)
        if not parse_time(settings.service_open_time) <= start <= parse_time(settings.service_last_start):
            raise ValidationError(
                f"Start time must be between {settings.service_open_time} and {settings.service_last_start}",
                {"time": start_time},
            )

    def try_book(
        self,
        table_number: int,
        on_date: date,
        start_time: str,
        writer: Callable[[Any], int]
    ) -> int:
        """
        桌位准入：检查冲突并写入，作为一个整体判定

        Args:
            table_number: 桌号
            on_date: 日期
            start_time: 开始时间 HH:MM
            writer: 在同一事务内写入记录的回调，参数为数据库连接，返回记录ID

        Returns:
            int: 新记录ID

        Raises:
            ValidationError: 参数不合法
            ConflictError: 时段已被占用，附带占用结束时间
            StorageError: 数据库失败，不自动重试
        """
        self.validate_slot(table_number, on_date, start_time)

        with self._locks.hold((table_number, on_date)):
            with self.db.transaction() as conn:
                existing = self.availability.list_bookings_for_table_on_date(table_number, on_date, conn=conn)
                for slot in existing:
                    if slots_overlap((on_date, start_time), (slot.date, slot.start_time), self.duration_hours):
                        logger.info(
                            "Admission rejected: table %s on %s at %s blocked by %s %s until %s",
                            table_number, on_date, start_time, slot.kind.value, slot.booking_id, slot.booked_until,
                        )
                        raise ConflictError(table_number, slot.booked_until)

                return writer(conn)

    def create_reservation(self, principal_id: str, req: ReservationCreateRequest) -> Reservation:
        """创建预订，成功后发送确认通知"""
        if req.people > settings.max_party_size:
            raise ValidationError(
                f"At most {settings.max_party_size} people per reservation",
                {"people": req.people},
            )

        def insert_reservation(conn) -> int:
            row = conn.execute(
                """
                INSERT INTO reservations(
                    owner_id, table_number, date, start_time, name, email, phone,
                    people, event_type, services_json, notes, status
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?) RETURNING id
                """,
                [
                    principal_id, req.table_number, req.date, req.time, req.name, req.email,
                    req.phone, req.people, req.event_type, json.dumps(req.services),
                    req.notes, ReservationStatus.CONFIRMED.value,
                ],
            ).fetchone()
            self.db.write_log(principal_id, "reservation_create", {
                "reservation_id": row[0],
                "table_number": req.table_number,
                "date": req.date.isoformat(),
                "time": req.time,
            }, conn=conn)
            return row[0]

        reservation_id = self.try_book(req.table_number, req.date, req.time, insert_reservation)
        reservation = self._load_reservation(reservation_id)
        logger.info("Reservation %s created for table %s", reservation_id, req.table_number)

        self.notifications.notify(RESERVATION_CONFIRMED, {
            "reservation_id": reservation.id,
            "name": reservation.name,
            "email": reservation.email,
            "phone": reservation.phone,
            "date": reservation.date.isoformat(),
            "time": reservation.start_time,
            "people": reservation.people,
            "table_number": reservation.table_number,
            "event_type": reservation.event_type,
            "services": reservation.services,
            "notes": reservation.notes,
        })
        return reservation

    def get_reservation(self, principal_id: str, reservation_id: int) -> Reservation:
        """获取预订，仅限本人或管理员"""
        reservation = self._load_reservation(reservation_id)
        if reservation.owner_id != principal_id and not self.profiles.is_admin(principal_id):
            logger.warning("Principal %s denied access to reservation %s", principal_id, reservation_id)
            raise ForbiddenError("Not your reservation", {"reservation_id": reservation_id})
        return reservation

    def list_my_reservations(self, principal_id: str) -> List[Reservation]:
        rows = self.db.fetch_dicts(
            "SELECT * FROM reservations WHERE owner_id=? ORDER BY date DESC, start_time DESC",
            [principal_id],
        )
        return [self._row_to_reservation(row) for row in rows]

    def cancel_reservation(self, principal_id: str, reservation_id: int) -> Reservation:
        """取消预订（状态变更，不物理删除）；重复取消直接返回"""
        reservation = self.get_reservation(principal_id, reservation_id)
        if reservation.status == ReservationStatus.CANCELED:
            return reservation

        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE reservations SET status='canceled', updated_at=now() WHERE id=?",
                [reservation_id],
            )
            self.db.write_log(principal_id, "reservation_cancel", {"reservation_id": reservation_id}, conn=conn)
        logger.info("Reservation %s canceled by %s", reservation_id, principal_id)
        return self._load_reservation(reservation_id)

    def delete_booking(self, admin_id: str, kind: BookingKind, booking_id: int):
        """管理员物理删除预订或订单"""
        self.profiles.require_admin(admin_id)
        table = _BOOKING_TABLES[BookingKind(kind)]

        with self.db.transaction() as conn:
            row = conn.execute(f"DELETE FROM {table} WHERE id=? RETURNING id", [booking_id]).fetchone()
            if not row:
                raise NotFoundError(BookingKind(kind).value, booking_id)
            if BookingKind(kind) == BookingKind.ORDER:
                conn.execute("DELETE FROM payment_sessions WHERE order_id=?", [booking_id])
            self.db.write_log(admin_id, "booking_delete", {"kind": BookingKind(kind).value, "id": booking_id}, conn=conn)
        logger.warning("Admin %s hard-deleted %s %s", admin_id, BookingKind(kind).value, booking_id)

    def _load_reservation(self, reservation_id: int) -> Reservation:
        row = self.db.fetch_dict("SELECT * FROM reservations WHERE id=?", [reservation_id])
        if not row:
            raise NotFoundError("reservation", reservation_id)
        return self._row_to_reservation(row)

    @staticmethod
    def _row_to_reservation(row: Dict[str, Any]) -> Reservation:
        services = json.loads(row["services_json"]) if row.get("services_json") else []
        return Reservation(
            id=row["id"],
            owner_id=row["owner_id"],
            table_number=row["table_number"],
            date=row["date"],
            start_time=row["start_time"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            people=row["people"],
            event_type=row.get("event_type"),
            services=services or [],
            notes=row.get("notes"),
            status=row["status"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
