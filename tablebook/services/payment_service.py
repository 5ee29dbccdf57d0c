"""
支付网关抽象
核心只依赖两个能力：为订单创建托管支付会话，以及查询会话是否已收款。
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import stripe

from ..config.settings import settings
from ..core.exceptions import CollaboratorError
from ..utils.pricing import CartLine

logger = logging.getLogger(__name__)


@dataclass
class PaymentSession:
    session_id: str
    url: str


class PaymentGateway(ABC):
    """支付网关基类"""

    @abstractmethod
    def create_session(
        self,
        order_id: int,
        line_items: List[CartLine],
        total_cents: int,
        success_url: str,
        cancel_url: str
    ) -> PaymentSession:
        """创建托管支付会话"""

    @abstractmethod
    def is_settled(self, session_id: str) -> bool:
        """会话是否已完成收款"""

    @abstractmethod
    def is_open(self, session_id: str) -> bool:
        """会话是否仍可支付（未过期、未完成）"""


class StripeCheckoutGateway(PaymentGateway):
    """Stripe Checkout Session 实现"""

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.currency = currency or settings.currency

    def create_session(self, order_id, line_items, total_cents, success_url, cancel_url):
        if not self.api_key:
            raise CollaboratorError("stripe", "Stripe is not configured", order_id)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {"name": self._line_name(line)},
                            "unit_amount": line.unit_price_cents,
                        },
                        "quantity": line.quantity,
                    }
                    for line in line_items
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=str(order_id),
                metadata={"order_id": str(order_id), "total_cents": str(total_cents)},
            )
        except stripe.StripeError as e:
            logger.error("Stripe session creation failed for order %s: %s", order_id, e)
            raise CollaboratorError("stripe", f"Payment provider error: {e.user_message or e}", order_id)

        logger.info("Stripe session %s created for order %s", session.id, order_id)
        return PaymentSession(session_id=session.id, url=session.url)

    def is_settled(self, session_id: str) -> bool:
        return self._retrieve(session_id).payment_status == "paid"

    def is_open(self, session_id: str) -> bool:
        return self._retrieve(session_id).status == "open"

    def _retrieve(self, session_id: str):
        try:
            return stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("Stripe session lookup failed for %s: %s", session_id, e)
            raise CollaboratorError("stripe", f"Payment provider error: {e.user_message or e}")

    @staticmethod
    def _line_name(line: CartLine) -> str:
        if line.variant_label:
            return f"{line.name} ({line.variant_label})"
        return line.name


def redirect_urls(order_id: int, base_url: Optional[str] = None):
    """支付完成/取消后的回跳地址"""
    base = (base_url or settings.public_base_url).rstrip("/")
    success_url = f"{base}/order/success?order_id={order_id}&session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{base}/order/canceled?order_id={order_id}"
    return success_url, cancel_url
