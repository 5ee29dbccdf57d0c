"""
预订相关数据模型
预订与堂食订单共用同一桌位时段约束
"""

from pydantic import BaseModel, Field
from datetime import date as Date
from typing import Optional, List
from enum import Enum
from .base import BaseEntity, TimestampMixin


class BookingKind(str, Enum):
    """占用桌位的记录类型"""
    RESERVATION = "reservation"
    ORDER = "order"


class ReservationStatus(str, Enum):
    """预订状态枚举"""
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


class BookingSlot(BaseModel):
    """桌位上一个已占用的时段"""
    booking_id: int = Field(..., description="记录ID")
    kind: BookingKind = Field(..., description="记录类型")
    table_number: int = Field(..., description="桌号")
    date: Date = Field(..., description="日期")
    start_time: str = Field(..., description="开始时间 HH:MM")
    booked_until: str = Field(..., description="结束时间 HH:MM")


class Reservation(BaseEntity, TimestampMixin):
    """预订完整模型"""
    id: int = Field(..., description="预订ID")
    owner_id: str = Field(..., description="预订人")
    table_number: int = Field(..., description="桌号")
    date: Date = Field(..., description="日期")
    start_time: str = Field(..., description="开始时间 HH:MM")
    name: str
    email: str
    phone: str
    people: int
    event_type: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    status: ReservationStatus
    kind: BookingKind = BookingKind.RESERVATION
