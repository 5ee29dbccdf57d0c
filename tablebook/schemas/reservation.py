"""
预订相关的请求/响应模式
"""

from pydantic import BaseModel, Field
from datetime import date as Date
from typing import List, Optional


class ReservationCreateRequest(BaseModel):
    """预订创建请求"""
    name: str = Field(..., min_length=1, max_length=100, description="预订人姓名")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="邮箱")
    phone: str = Field(..., min_length=1, max_length=20, description="联系电话")
    people: int = Field(..., ge=1, le=20, description="人数")
    table_number: int = Field(..., ge=1, description="桌号")
    date: Date = Field(..., description="日期")
    time: str = Field(..., description="开始时间 HH:MM")
    event_type: Optional[str] = Field(None, max_length=100, description="活动类型")
    services: List[str] = Field(default_factory=list, max_length=10, description="附加服务")
    notes: Optional[str] = Field(None, max_length=500, description="备注")


class TableAvailabilityResponse(BaseModel):
    """单桌可用性"""
    table_number: int
    date: Date
    time: str
    available: bool
    booked_until: Optional[str] = None


class BookedTable(BaseModel):
    table_number: int
    booked_until: str


class DayOccupancyEntry(BaseModel):
    table_number: int
    start_time: str
    booked_until: str
