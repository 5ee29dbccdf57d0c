import threading
from datetime import timedelta

import pytest

from ..config.settings import settings
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models.booking import BookingKind, ReservationStatus
from ..schemas.order import CheckoutRequest
from ..schemas.reservation import ReservationCreateRequest
from ..services.notification_service import RESERVATION_CONFIRMED


def make_request(payload, **overrides):
    data = dict(payload)
    data.update(overrides)
    return ReservationCreateRequest(**data)


class TestTableAdmission:
    """桌位准入测试"""

    def test_back_to_back_booking_allowed(self, booking_service, sample_user, reservation_payload, monkeypatch):
        """10:00 的预订占用到 12:00，11:59 被拒绝，12:00 可以预订"""
        monkeypatch.setattr(settings, "service_open_time", "10:00")
        booking_service.create_reservation(
            "user-1", make_request(reservation_payload, table_number=1, time="10:00"))

        with pytest.raises(ConflictError) as exc_info:
            booking_service.create_reservation(
                "user-1", make_request(reservation_payload, table_number=1, time="11:59"))
        assert exc_info.value.booked_until == "12:00"

        reservation = booking_service.create_reservation(
            "user-1", make_request(reservation_payload, table_number=1, time="12:00"))
        assert reservation.start_time == "12:00"

    def test_conflict_reports_blocking_end_time(self, booking_service, sample_user, reservation_payload):
        """18:00 的 5 号桌阻止 19:30，提示占用到 20:00"""
        booking_service.create_reservation("user-1", make_request(reservation_payload))

        with pytest.raises(ConflictError) as exc_info:
            booking_service.create_reservation("user-1", make_request(reservation_payload, time="19:30"))

        error = exc_info.value
        assert error.table_number == 5
        assert error.booked_until == "20:00"
        assert "20:00" in error.message
        assert error.error_code == "SLOT_CONFLICT"

    def test_other_table_same_time_allowed(self, booking_service, sample_user, reservation_payload):
        booking_service.create_reservation("user-1", make_request(reservation_payload))
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload, table_number=6))
        assert reservation.table_number == 6

    def test_other_day_same_time_allowed(self, booking_service, sample_user, reservation_payload, tomorrow):
        booking_service.create_reservation("user-1", make_request(reservation_payload))
        reservation = booking_service.create_reservation(
            "user-1", make_request(reservation_payload, date=tomorrow + timedelta(days=1)))
        assert reservation.date == tomorrow + timedelta(days=1)

    @pytest.mark.parametrize("table_number", [16, 99])
    def test_table_out_of_range(self, booking_service, reservation_payload, table_number):
        with pytest.raises(ValidationError):
            booking_service.create_reservation("user-1", make_request(reservation_payload, table_number=table_number))

    def test_past_date_rejected(self, booking_service, reservation_payload, tomorrow):
        with pytest.raises(ValidationError):
            booking_service.create_reservation(
                "user-1", make_request(reservation_payload, date=tomorrow - timedelta(days=2)))

    @pytest.mark.parametrize("start_time", ["10:30", "23:50", "25:00", "7pm"])
    def test_time_outside_service_hours(self, booking_service, reservation_payload, start_time):
        with pytest.raises(ValidationError):
            booking_service.create_reservation("user-1", make_request(reservation_payload, time=start_time))

    def test_party_size_limit(self, booking_service, reservation_payload, monkeypatch):
        monkeypatch.setattr(settings, "max_party_size", 6)
        with pytest.raises(ValidationError):
            booking_service.create_reservation("user-1", make_request(reservation_payload, people=8))

    def test_try_book_does_not_write_on_conflict(self, booking_service, test_db, sample_user, reservation_payload):
        booking_service.create_reservation("user-1", make_request(reservation_payload))
        writer_calls = []

        with pytest.raises(ConflictError):
            booking_service.try_book(5, reservation_payload["date"], "18:30", writer_calls.append)

        assert writer_calls == []
        assert test_db.execute_one("SELECT COUNT(*) FROM reservations")[0] == 1

    def test_admission_locks_released_after_use(self, booking_service, reservation_payload):
        """每个 (桌号, 日期) 的锁用完即回收，不随预订数量增长"""
        for table_number in range(1, 6):
            booking_service.create_reservation("user-1", make_request(reservation_payload, table_number=table_number))
        with pytest.raises(ConflictError):
            booking_service.create_reservation("user-1", make_request(reservation_payload, time="19:00"))

        assert len(booking_service._locks) == 0

    def test_concurrent_requests_admit_exactly_one(self, booking_service, test_db, reservation_payload):
        """同一桌同一时段并发提交，只有一个成功"""
        attempts = 8
        barrier = threading.Barrier(attempts)
        results = []
        results_lock = threading.Lock()

        def attempt(i):
            req = make_request(reservation_payload, name=f"Guest {i}", time="18:00" if i % 2 else "19:00")
            barrier.wait()
            try:
                booking_service.create_reservation(f"user-{i}", req)
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == attempts - 1
        assert test_db.execute_one("SELECT COUNT(*) FROM reservations")[0] == 1
        assert len(booking_service._locks) == 0


class TestReservationLifecycle:
    """预订创建、查询与取消测试"""

    def test_create_reservation_persists_fields(self, booking_service, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        assert reservation.id is not None
        assert reservation.owner_id == "user-1"
        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.services == ["Decorations"]
        assert reservation.kind == BookingKind.RESERVATION
        assert reservation.notes == "Window seat please"

    def test_confirmation_notification_sent(self, booking_service, notifier, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        notifier.send.assert_called_once()
        kind, payload = notifier.send.call_args[0]
        assert kind == RESERVATION_CONFIRMED
        assert payload["reservation_id"] == reservation.id
        assert payload["email"] == "anna@example.com"
        assert payload["time"] == "18:00"

    def test_notification_failure_keeps_reservation(self, booking_service, notifier, test_db, reservation_payload):
        notifier.send.side_effect = RuntimeError("mail down")

        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        assert booking_service.get_reservation("user-1", reservation.id).status == ReservationStatus.CONFIRMED
        failures = test_db.execute_one("SELECT COUNT(*) FROM logs WHERE action='notification_failed'")[0]
        assert failures == 1

    def test_cancel_frees_slot(self, booking_service, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        canceled = booking_service.cancel_reservation("user-1", reservation.id)
        assert canceled.status == ReservationStatus.CANCELED

        again = booking_service.create_reservation("user-2", make_request(reservation_payload, time="19:00"))
        assert again.table_number == 5

    def test_cancel_is_idempotent(self, booking_service, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))
        booking_service.cancel_reservation("user-1", reservation.id)
        assert booking_service.cancel_reservation("user-1", reservation.id).status == ReservationStatus.CANCELED

    def test_other_user_cannot_view_or_cancel(self, booking_service, other_user, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        with pytest.raises(ForbiddenError):
            booking_service.get_reservation("user-2", reservation.id)
        with pytest.raises(ForbiddenError):
            booking_service.cancel_reservation("user-2", reservation.id)

    def test_admin_can_view(self, booking_service, admin_user, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))
        assert booking_service.get_reservation("admin-1", reservation.id).id == reservation.id

    def test_list_my_reservations(self, booking_service, reservation_payload):
        booking_service.create_reservation("user-1", make_request(reservation_payload))
        booking_service.create_reservation("user-1", make_request(reservation_payload, table_number=2))
        booking_service.create_reservation("user-2", make_request(reservation_payload, table_number=3))

        mine = booking_service.list_my_reservations("user-1")
        assert sorted(r.table_number for r in mine) == [2, 5]

    def test_missing_reservation(self, booking_service):
        with pytest.raises(NotFoundError):
            booking_service.get_reservation("user-1", 999)


class TestAdminDelete:
    """后台删除测试"""

    def test_admin_deletes_reservation(self, booking_service, admin_user, test_db, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))

        booking_service.delete_booking("admin-1", BookingKind.RESERVATION, reservation.id)

        with pytest.raises(NotFoundError):
            booking_service.get_reservation("admin-1", reservation.id)
        assert test_db.execute_one("SELECT COUNT(*) FROM logs WHERE action='booking_delete'")[0] == 1

    def test_non_admin_cannot_delete(self, booking_service, sample_user, reservation_payload):
        reservation = booking_service.create_reservation("user-1", make_request(reservation_payload))
        with pytest.raises(ForbiddenError):
            booking_service.delete_booking("user-1", BookingKind.RESERVATION, reservation.id)

    def test_delete_missing_booking(self, booking_service, admin_user):
        with pytest.raises(NotFoundError):
            booking_service.delete_booking("admin-1", BookingKind.ORDER, 12345)

    def test_admin_deletes_order_with_payment_sessions(self, booking_service, order_service, admin_user, sample_user, test_db, tomorrow):
        order = order_service.checkout("user-1", CheckoutRequest(
            items=[{"item_id": "A", "name": "Pasta", "price": 10}],
            dining_type="dine-in", date=tomorrow, time="19:00", table_number=3, name="Anna",
        )).order

        booking_service.delete_booking("admin-1", BookingKind.ORDER, order.id)

        assert test_db.execute_one("SELECT COUNT(*) FROM orders")[0] == 0
        assert test_db.execute_one("SELECT COUNT(*) FROM payment_sessions")[0] == 0
