"""
订单相关数据模型
"""

from pydantic import BaseModel, Field
from datetime import date as Date, datetime
from typing import Optional, List
from enum import Enum
from .base import BaseEntity, TimestampMixin
from ..utils.pricing import CartLine


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING_PAYMENT = "pending_payment"   # 待支付
    PAID = "paid"                         # 已支付
    FULFILLED = "fulfilled"               # 已完成（后台操作）
    CANCELED = "canceled"                 # 已取消


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"
    PAID = "paid"


class DiningType(str, Enum):
    """就餐方式"""
    PICKUP = "pickup"
    DINE_IN = "dine-in"


class Order(BaseEntity, TimestampMixin):
    """订单完整模型"""
    id: int = Field(..., description="订单ID")
    owner_id: str = Field(..., description="下单人")
    order_code: str = Field(..., description="展示用订单编号")
    dining_type: DiningType
    table_number: Optional[int] = None
    date: Date
    start_time: str
    name: str
    phone: str
    items: List[CartLine]
    total_amount_cents: int = Field(..., description="订单总金额（分）")
    status: OrderStatus
    payment_status: PaymentStatus
    holds_table: bool = False
    payment_session_id: Optional[str] = None
    payment_session_url: Optional[str] = None
    paid_at: Optional[datetime] = None


class CheckoutResult(BaseModel):
    """结账结果"""
    order: Order
    session_url: str
