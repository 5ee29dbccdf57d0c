from ..models.booking import BookingKind
from ..schemas.order import CheckoutRequest
from ..schemas.reservation import ReservationCreateRequest


def reserve(booking_service, payload, **overrides):
    data = dict(payload)
    data.update(overrides)
    return booking_service.create_reservation("user-1", ReservationCreateRequest(**data))


class TestAvailabilityService:
    """桌位占用查询测试"""

    def test_empty_day(self, availability_service, tomorrow):
        assert availability_service.list_all_bookings_on_date(tomorrow) == []
        assert availability_service.check_table(5, tomorrow, "18:00") == {"available": True, "booked_until": None}

    def test_check_table_reports_booked_until(self, availability_service, booking_service, reservation_payload, tomorrow):
        reserve(booking_service, reservation_payload)

        assert availability_service.check_table(5, tomorrow, "19:00") == {"available": False, "booked_until": "20:00"}
        assert availability_service.check_table(5, tomorrow, "20:00")["available"] is True
        assert availability_service.check_table(5, tomorrow, "16:00")["available"] is True
        assert availability_service.check_table(4, tomorrow, "18:00")["available"] is True

    def test_list_bookings_for_table(self, availability_service, booking_service, reservation_payload, tomorrow):
        reservation = reserve(booking_service, reservation_payload)
        reserve(booking_service, reservation_payload, time="21:00")
        reserve(booking_service, reservation_payload, table_number=7)

        slots = availability_service.list_bookings_for_table_on_date(5, tomorrow)
        assert [s.start_time for s in slots] == ["18:00", "21:00"]
        assert slots[0].booking_id == reservation.id
        assert slots[0].kind == BookingKind.RESERVATION
        assert slots[1].booked_until == "23:00"

    def test_booked_tables_at(self, availability_service, booking_service, reservation_payload, tomorrow):
        reserve(booking_service, reservation_payload)
        reserve(booking_service, reservation_payload, table_number=2, time="12:00")

        assert availability_service.booked_tables_at(tomorrow, "19:00") == [
            {"table_number": 5, "booked_until": "20:00"},
        ]
        assert availability_service.booked_tables_at(tomorrow, "13:00") == [
            {"table_number": 2, "booked_until": "14:00"},
        ]

    def test_canceled_reservation_not_listed(self, availability_service, booking_service, reservation_payload, tomorrow):
        reservation = reserve(booking_service, reservation_payload)
        booking_service.cancel_reservation("user-1", reservation.id)

        assert availability_service.list_all_bookings_on_date(tomorrow) == []

    def test_dine_in_order_occupies_table(self, availability_service, order_service, sample_user, tomorrow):
        order_service.checkout("user-1", CheckoutRequest(
            items=[{"item_id": "A", "name": "Pasta", "price": 10}],
            dining_type="dine-in", date=tomorrow, time="19:00", table_number=3, name="Guest",
        ))
        order_service.checkout("user-1", CheckoutRequest(
            items=[{"item_id": "A", "name": "Pasta", "price": 10}],
            dining_type="pickup", date=tomorrow, time="19:00", name="Guest",
        ))

        assert availability_service.list_all_bookings_on_date(tomorrow) == [(3, "19:00")]
        slot = availability_service.list_bookings_for_table_on_date(3, tomorrow)[0]
        assert slot.kind == BookingKind.ORDER

    def test_booked_tables_at_lists_each_table_once(self, availability_service, booking_service, reservation_payload, tomorrow):
        """相邻两个预订都与查询时段冲突时，只返回一次，取最晚结束时间"""
        reserve(booking_service, reservation_payload, time="20:00")
        reserve(booking_service, reservation_payload, time="18:00")
        reserve(booking_service, reservation_payload, table_number=2, time="19:00")

        assert availability_service.booked_tables_at(tomorrow, "19:30") == [
            {"table_number": 2, "booked_until": "21:00"},
            {"table_number": 5, "booked_until": "22:00"},
        ]
