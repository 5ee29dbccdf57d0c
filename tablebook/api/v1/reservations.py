"""
预订路由
"""

from typing import List

from fastapi import APIRouter, Depends

from ...core.security import get_principal_id
from ...models.booking import Reservation
from ...schemas.reservation import ReservationCreateRequest
from ...services import BookingService
from ..deps import get_booking_service

router = APIRouter()


@router.post("", response_model=Reservation, status_code=201)
def create_reservation(
    req: ReservationCreateRequest,
    principal_id: str = Depends(get_principal_id),
    bookings: BookingService = Depends(get_booking_service),
):
    """创建预订；时段冲突返回 409 及占用结束时间"""
    return bookings.create_reservation(principal_id, req)


@router.get("/mine", response_model=List[Reservation])
def my_reservations(
    principal_id: str = Depends(get_principal_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return bookings.list_my_reservations(principal_id)


@router.get("/{reservation_id}", response_model=Reservation)
def get_reservation(
    reservation_id: int,
    principal_id: str = Depends(get_principal_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return bookings.get_reservation(principal_id, reservation_id)


@router.post("/{reservation_id}/cancel", response_model=Reservation)
def cancel_reservation(
    reservation_id: int,
    principal_id: str = Depends(get_principal_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return bookings.cancel_reservation(principal_id, reservation_id)
