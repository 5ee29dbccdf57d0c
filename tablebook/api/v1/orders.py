"""
订单路由
结账 -> 跳转支付 -> 支付方回跳后确认
"""

from typing import List

from fastapi import APIRouter, Depends

from ...core.security import get_principal_id
from ...models.order import Order
from ...schemas.order import CheckoutRequest, CheckoutResponse, PaymentSessionResponse
from ...services import OrderService
from ..deps import get_order_service

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(
    req: CheckoutRequest,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    """创建待支付订单，返回支付跳转地址"""
    result = orders.checkout(principal_id, req)
    return CheckoutResponse(
        order_id=result.order.id,
        order_code=result.order.order_code,
        total_amount_cents=result.order.total_amount_cents,
        session_url=result.session_url,
    )


@router.get("/mine", response_model=List[Order])
def my_orders(
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    return orders.list_my_orders(principal_id)


@router.get("/{order_id}", response_model=Order)
def get_order(
    order_id: int,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    return orders.get_order(principal_id, order_id)


@router.post("/{order_id}/payment-session", response_model=PaymentSessionResponse)
def retry_payment_session(
    order_id: int,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    """支付会话创建失败后，为同一订单重新申请"""
    session = orders.request_payment_session(principal_id, order_id)
    return PaymentSessionResponse(order_id=order_id, session_url=session.url)


@router.post("/{order_id}/confirm", response_model=Order)
def confirm_payment(
    order_id: int,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    """支付成功回跳后确认订单，重复调用返回同一结果"""
    return orders.confirm_settlement(principal_id, order_id)


@router.post("/{order_id}/cancel", response_model=Order)
def cancel_payment(
    order_id: int,
    principal_id: str = Depends(get_principal_id),
    orders: OrderService = Depends(get_order_service),
):
    """支付取消回跳"""
    return orders.cancel_payment(principal_id, order_id)
