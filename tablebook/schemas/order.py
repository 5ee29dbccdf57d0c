"""
订单相关的请求/响应模式
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date as Date
from typing import Dict, List, Optional, Union
from ..models.order import DiningType

RawPrice = Union[int, float, str, Dict[str, Union[int, float, str]]]


class CartItemRequest(BaseModel):
    """购物车条目，价格为菜单原始格式"""
    item_id: str = Field(..., min_length=1, description="菜品ID")
    name: str = Field(..., min_length=1, max_length=200, description="菜品名称")
    price: RawPrice = Field(..., description="原始价格：数字、字符串或规格映射")
    variant: Optional[str] = Field(None, description="规格")
    quantity: int = Field(1, ge=1, le=99, description="数量")


class CheckoutRequest(BaseModel):
    """结账请求"""
    items: List[CartItemRequest] = Field(..., description="购物车")
    dining_type: DiningType = Field(..., description="就餐方式")
    date: Date = Field(..., description="日期")
    time: str = Field(..., description="时间 HH:MM")
    table_number: Optional[int] = Field(None, description="桌号（堂食必填）")
    name: str = Field(..., min_length=1, max_length=100, description="姓名")

    @model_validator(mode="after")
    def check_table(self):
        if self.dining_type == DiningType.DINE_IN and self.table_number is None:
            raise ValueError("table_number is required for dine-in orders")
        return self


class CheckoutResponse(BaseModel):
    """结账响应"""
    order_id: int
    order_code: str
    total_amount_cents: int
    session_url: str


class PaymentSessionResponse(BaseModel):
    order_id: int
    session_url: str
