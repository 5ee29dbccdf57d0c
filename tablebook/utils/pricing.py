"""
价格解析
菜单价格可能是数字（主币单位）、含数字的字符串，或者“规格名 -> 价格”的映射；
加入购物车时统一解析为整数分，之后所有金额运算只用整数。
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..core.exceptions import ValidationError

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")
_CENTS = Decimal("100")


def _to_cents(amount: Decimal, raw: Any) -> int:
    if not amount.is_finite():
        raise ValidationError(f"Unresolvable price {raw!r}", {"price": str(raw)})
    cents = int((amount * _CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise ValidationError(f"Price must be positive, got {raw!r}", {"price": str(raw)})
    return cents


def _resolve_scalar(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError(f"Unresolvable price {raw!r}", {"price": str(raw)})
    if isinstance(raw, (int, float, Decimal)):
        # str() 避免二进制浮点误差，例如 15.9 -> 1590
        try:
            return _to_cents(Decimal(str(raw)), raw)
        except InvalidOperation:
            raise ValidationError(f"Unresolvable price {raw!r}", {"price": str(raw)})
    if isinstance(raw, str):
        match = _NUMBER_RE.search(raw)
        if not match:
            raise ValidationError(f"No numeric value in price {raw!r}", {"price": raw})
        return _to_cents(Decimal(match.group(0).replace(",", ".")), raw)
    raise ValidationError(f"Unresolvable price {raw!r}", {"price": str(raw)})


def resolve_unit_price(raw_price: Any, variant_label: Optional[str] = None) -> int:
    """
    解析单价（分）

    规则：
    1. 数字按主币单位换算
    2. 字符串取第一个数字，支持 . 和 , 作为小数点
    3. 映射优先取指定规格，否则取第一个规格
    4. 无法解析时抛出 ValidationError，不会按 0 计价
    """
    if isinstance(raw_price, dict):
        if not raw_price:
            raise ValidationError("Price has no variants", {"price": "{}"})
        if variant_label is not None and variant_label in raw_price:
            return _resolve_scalar(raw_price[variant_label])
        return _resolve_scalar(next(iter(raw_price.values())))
    return _resolve_scalar(raw_price)


def default_variant(raw_price: Any) -> Optional[str]:
    """映射价格的默认规格（第一个键）"""
    if isinstance(raw_price, dict) and raw_price:
        return next(iter(raw_price))
    return None


class CartLine(BaseModel):
    """购物车行，单价已解析为整数分"""
    item_id: str = Field(..., description="菜品ID")
    name: str = Field(..., description="菜品名称")
    variant_label: Optional[str] = Field(None, description="规格")
    unit_price_cents: int = Field(..., gt=0, description="单价（分）")
    quantity: int = Field(..., ge=1, description="数量")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class Cart:
    """客户端草稿购物车（Draft 状态，不落库）"""

    def __init__(self):
        self._lines: List[CartLine] = []

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def add_item(
        self,
        item_id: str,
        name: str,
        raw_price: Any,
        quantity: int = 1,
        variant_label: Optional[str] = None
    ) -> CartLine:
        """加入菜品，同一菜品同一规格合并数量"""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": quantity})

        if variant_label is None or (isinstance(raw_price, dict) and variant_label not in raw_price):
            variant_label = default_variant(raw_price)
        unit_price = resolve_unit_price(raw_price, variant_label)

        for i, line in enumerate(self._lines):
            if line.item_id == item_id and line.variant_label == variant_label:
                self._lines[i] = line.model_copy(update={"quantity": line.quantity + quantity})
                return self._lines[i]

        line = CartLine(
            item_id=item_id,
            name=name,
            variant_label=variant_label,
            unit_price_cents=unit_price,
            quantity=quantity,
        )
        self._lines.append(line)
        return line

    def remove_item(self, item_id: str, variant_label: Optional[str] = None):
        self._lines = [
            line for line in self._lines
            if not (line.item_id == item_id and line.variant_label == variant_label)
        ]

    @property
    def total_cents(self) -> int:
        return cart_total(self._lines)


def cart_total(lines: List[CartLine]) -> int:
    """订单总额 = 各行 单价*数量 之和"""
    return sum(line.line_total_cents for line in lines)
