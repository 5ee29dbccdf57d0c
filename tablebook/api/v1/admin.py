"""
后台管理路由
"""

from fastapi import APIRouter, Depends, Response

from ...core.security import get_principal_id
from ...models.booking import BookingKind
from ...models.order import Order
from ...services import BookingService, OrderService
from ..deps import get_booking_service, get_order_service

router = APIRouter()


@router.post("/orders/{order_id}/fulfill", response_model=Order)
def fulfill_order(
    order_id: int,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    """标记订单已完成"""
    return orders.fulfill_order(principal_id, order_id)


@router.delete("/bookings/{kind}/{booking_id}", status_code=204)
def delete_booking(
    kind: BookingKind,
    booking_id: int,
    principal_id: str = Depends(get_principal_id),
    bookings: BookingService = Depends(get_booking_service),
):
    """物理删除预订或订单"""
    bookings.delete_booking(principal_id, kind, booking_id)
    return Response(status_code=204)
