"""
订单服务模块
提供订单从结账、支付会话到支付确认的完整生命周期

状态流转：
- (购物车草稿) -> pending_payment: 结账时落库并申请支付会话
- pending_payment -> paid: 支付方回跳后由下单人确认，幂等
- pending_payment -> canceled: 支付会话被取消
- paid -> fulfilled: 后台管理员标记完成

业务规则：
- 金额统一为整数分，单价在加入购物车时解析一次
- 堂食订单占用桌位，必须先通过桌位准入
- 支付会话只请求一次，不自动重试；失败后订单保持待支付，可对同一订单重新申请
- 确认支付只能由下单人操作；通知失败不回滚已提交的状态
"""

import json
import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import settings
from ..core.database import db_manager
from ..core.exceptions import (
    AuthenticationError,
    CollaboratorError,
    ForbiddenError,
    NotFoundError,
    OrderStateError,
    PaymentNotSettledError,
    PhoneRequiredError,
    ValidationError,
)
from ..models.order import CheckoutResult, DiningType, Order, OrderStatus
from ..schemas.order import CartItemRequest, CheckoutRequest
from ..utils.order_code import generate_order_code
from ..utils.pricing import Cart, CartLine, cart_total
from .booking_service import BookingService
from .notification_service import NotificationDispatcher, ORDER_CONFIRMED
from .payment_service import PaymentGateway, PaymentSession, StripeCheckoutGateway, redirect_urls
from .profile_service import ProfileService

logger = logging.getLogger(__name__)


class OrderService:
    """订单服务类，封装订单生命周期的业务逻辑"""

    def __init__(
        self,
        db=None,
        booking: Optional[BookingService] = None,
        gateway: Optional[PaymentGateway] = None,
        notifications: Optional[NotificationDispatcher] = None,
        profiles: Optional[ProfileService] = None,
        clock: Callable[[], datetime] = datetime.now,
        rng: Optional[random.Random] = None
    ):
        self.db = db or db_manager
        self.profiles = profiles or ProfileService(self.db)
        self.notifications = notifications or NotificationDispatcher(db=self.db)
        self.booking = booking or BookingService(
            self.db, notifications=self.notifications, profiles=self.profiles, clock=clock)
        self.gateway = gateway or StripeCheckoutGateway()
        self.clock = clock
        self.rng = rng

    @staticmethod
    def build_cart(items: List[CartItemRequest]) -> Cart:
        """把原始菜单价格解析为购物车"""
        cart = Cart()
        for item in items:
            cart.add_item(item.item_id, item.name, item.price, item.quantity, item.variant)
        return cart

    def checkout(self, principal_id: str, req: CheckoutRequest) -> CheckoutResult:
        """
        结账：创建待支付订单并申请支付会话

        Args:
            principal_id: 当前登录用户
            req: 结账请求

        Returns:
            CheckoutResult: 订单和支付跳转地址

        Raises:
            AuthenticationError: 未登录
            ValidationError: 购物车为空、金额低于最低支付额、时间不合法
            PhoneRequiredError: 用户未留联系电话
            ConflictError: 堂食桌位时段已被占用
            CollaboratorError: 支付会话创建失败（订单已落库，可重试）
        """
        if not principal_id:
            raise AuthenticationError()

        cart = self.build_cart(req.items)
        if cart.is_empty():
            raise ValidationError("Cart is empty")
        lines = cart.lines
        total_cents = cart_total(lines)
        if total_cents < settings.payment_min_amount_cents:
            raise ValidationError(
                f"Order total must be at least {settings.payment_min_amount_cents} cents",
                {"total_amount_cents": total_cents},
            )

        profile = self.profiles.get_profile(principal_id)
        if not profile.has_phone:
            raise PhoneRequiredError()

        order_code = generate_order_code(settings.order_code_prefix, self.clock().date(), self.rng)
        dine_in = req.dining_type == DiningType.DINE_IN

        def insert_order(conn) -> int:
            row = conn.execute(
                """
                INSERT INTO orders(
                    owner_id, order_code, dining_type, table_number, date, start_time,
                    name, phone, items_json, total_amount_cents, status, payment_status, holds_table
                ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?) RETURNING id
                """,
                [
                    principal_id, order_code, req.dining_type.value,
                    req.table_number if dine_in else None, req.date, req.time,
                    req.name, profile.phone, json.dumps([line.model_dump() for line in lines]),
                    total_cents, OrderStatus.PENDING_PAYMENT.value, "pending", dine_in,
                ],
            ).fetchone()
            self.db.write_log(principal_id, "order_create", {
                "order_id": row[0],
                "order_code": order_code,
                "dining_type": req.dining_type.value,
                "table_number": req.table_number if dine_in else None,
                "total_amount_cents": total_cents,
            }, conn=conn)
            return row[0]

        if dine_in:
            order_id = self.booking.try_book(req.table_number, req.date, req.time, insert_order)
        else:
            self.booking.validate_date_time(req.date, req.time)
            with self.db.transaction() as conn:
                order_id = insert_order(conn)

        logger.info("Order %s (%s) created, total %s cents", order_id, order_code, total_cents)
        order = self._load_order(order_id)
        session = self._open_payment_session(order)
        return CheckoutResult(order=self._load_order(order_id), session_url=session.url)

    def request_payment_session(self, principal_id: str, order_id: int) -> PaymentSession:
        """
        为同一个待支付订单重新申请支付会话

        - 已有会话已经收款时直接返回该会话，等待确认支付
        - 当前会话仍可支付时复用，不重复创建
        - 没有会话或会话已过期才向支付方申请新会话
        """
        order = self._load_owned_order(principal_id, order_id, "request payment for")
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise OrderStateError(order_id, order.status, "request a payment session")

        settled = self._settled_session(order_id)
        if settled:
            logger.info("Order %s already settled by session %s, not opening another", order_id, settled.session_id)
            return settled
        if order.payment_session_id and self.gateway.is_open(order.payment_session_id):
            return PaymentSession(session_id=order.payment_session_id, url=order.payment_session_url)
        return self._open_payment_session(order)

    def confirm_settlement(self, principal_id: str, order_id: int) -> Order:
        """
        确认支付（pending_payment -> paid）

        - 只能由下单人确认，否则抛出 ForbiddenError
        - 已支付的订单直接返回，不重复发送通知
        - 状态提交后再发送通知，通知失败不影响结果
        """
        order = self._load_owned_order(principal_id, order_id, "confirm")

        if order.status in (OrderStatus.PAID, OrderStatus.FULFILLED):
            logger.info("Order %s already paid, confirmation is a no-op", order_id)
            return order
        if order.status == OrderStatus.CANCELED:
            raise OrderStateError(order_id, order.status, "confirm payment")

        if settings.verify_settlement:
            if self._settled_session(order_id) is None:
                logger.warning("Order %s confirmation attempted before settlement", order_id)
                raise PaymentNotSettledError(order_id)

        with self.db.transaction() as conn:
            row = conn.execute(
                """
                UPDATE orders
                SET status='paid', payment_status='paid', paid_at=now(), updated_at=now()
                WHERE id=? AND status='pending_payment'
                RETURNING id
                """,
                [order_id],
            ).fetchone()
            if row:
                self.db.write_log(principal_id, "order_paid", {"order_id": order_id}, conn=conn)

        order = self._load_order(order_id)
        if not row:
            # 并发确认或取消，以最新状态为准
            if order.status == OrderStatus.CANCELED:
                raise OrderStateError(order_id, order.status, "confirm payment")
            return order

        logger.info("Order %s (%s) marked paid", order_id, order.order_code)
        self.notifications.notify(ORDER_CONFIRMED, self._notification_payload(order))
        return order

    def cancel_payment(self, principal_id: str, order_id: int) -> Order:
        """支付会话取消（pending_payment -> canceled），桌位是否释放由配置决定"""
        order = self._load_owned_order(principal_id, order_id, "cancel")
        if order.status == OrderStatus.CANCELED:
            return order
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise OrderStateError(order_id, order.status, "cancel")

        release = settings.release_table_on_payment_cancel
        with self.db.transaction() as conn:
            row = conn.execute(
                """
                UPDATE orders
                SET status='canceled', holds_table = holds_table AND NOT ?, updated_at=now()
                WHERE id=? AND status='pending_payment'
                RETURNING id
                """,
                [release, order_id],
            ).fetchone()
            if row:
                self.db.write_log(principal_id, "order_cancel", {
                    "order_id": order_id,
                    "table_released": release,
                }, conn=conn)

        order = self._load_order(order_id)
        if not row and order.status != OrderStatus.CANCELED:
            raise OrderStateError(order_id, order.status, "cancel")
        logger.info("Order %s canceled (table released: %s)", order_id, release)
        return order

    def fulfill_order(self, admin_id: str, order_id: int) -> Order:
        """后台标记订单完成（paid -> fulfilled）"""
        self.profiles.require_admin(admin_id)
        order = self._load_order(order_id)
        if order.status == OrderStatus.FULFILLED:
            return order
        if order.status != OrderStatus.PAID:
            raise OrderStateError(order_id, order.status, "fulfill")

        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE orders SET status='fulfilled', updated_at=now() WHERE id=? AND status='paid'",
                [order_id],
            )
            self.db.write_log(admin_id, "order_fulfill", {"order_id": order_id}, conn=conn)
        return self._load_order(order_id)

    def get_order(self, principal_id: str, order_id: int) -> Order:
        """查看订单，仅限下单人或管理员"""
        order = self._load_order(order_id)
        if order.owner_id != principal_id and not self.profiles.is_admin(principal_id):
            logger.warning("Principal %s denied access to order %s", principal_id, order_id)
            raise ForbiddenError("Not your order", {"order_id": order_id})
        return order

    def list_my_orders(self, principal_id: str) -> List[Order]:
        rows = self.db.fetch_dicts(
            "SELECT * FROM orders WHERE owner_id=? ORDER BY created_at DESC, id DESC",
            [principal_id],
        )
        return [self._row_to_order(row) for row in rows]

    def _open_payment_session(self, order: Order) -> PaymentSession:
        """申请支付会话，只调用一次，失败时订单保持待支付"""
        success_url, cancel_url = redirect_urls(order.id)
        try:
            session = self.gateway.create_session(
                order.id, order.items, order.total_amount_cents, success_url, cancel_url)
        except CollaboratorError as e:
            e.order_id = order.id
            e.details["order_id"] = order.id
            raise
        except Exception as e:
            logger.exception("Payment session request failed for order %s", order.id)
            raise CollaboratorError("payment", "Could not start payment, please retry", order.id) from e

        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE orders SET payment_session_id=?, payment_session_url=?, updated_at=now()
                WHERE id=? AND status='pending_payment'
                """,
                [session.session_id, session.url, order.id],
            )
            conn.execute(
                "INSERT INTO payment_sessions(order_id, session_id, url) VALUES (?,?,?)",
                [order.id, session.session_id, session.url],
            )
        return session

    def _payment_sessions(self, order_id: int) -> List[PaymentSession]:
        """订单申请过的全部支付会话，最新的在前"""
        rows = self.db.fetch_dicts(
            "SELECT session_id, url FROM payment_sessions WHERE order_id=? ORDER BY id DESC",
            [order_id],
        )
        return [PaymentSession(session_id=row["session_id"], url=row["url"]) for row in rows]

    def _settled_session(self, order_id: int) -> Optional[PaymentSession]:
        """任一会话已收款即视为已支付，重试产生的旧会话同样有效"""
        for session in self._payment_sessions(order_id):
            if self.gateway.is_settled(session.session_id):
                return session
        return None

    def _load_owned_order(self, principal_id: str, order_id: int, action: str) -> Order:
        """加载订单并校验所有者，不一致时记录为可疑操作"""
        order = self._load_order(order_id)
        if order.owner_id != principal_id:
            logger.warning(
                "Principal %s tried to %s order %s owned by another user", principal_id, action, order_id)
            self.db.write_log(principal_id, "order_forbidden", {"order_id": order_id, "action": action})
            raise ForbiddenError("Not your order", {"order_id": order_id})
        return order

    def _load_order(self, order_id: int) -> Order:
        row = self.db.fetch_dict("SELECT * FROM orders WHERE id=?", [order_id])
        if not row:
            raise NotFoundError("order", order_id)
        return self._row_to_order(row)

    def _notification_payload(self, order: Order) -> Dict[str, Any]:
        profile = self.profiles.get_profile(order.owner_id)
        return {
            "order_id": order.id,
            "order_code": order.order_code,
            "name": order.name,
            "email": profile.email,
            "phone": order.phone,
            "items": [line.model_dump() for line in order.items],
            "total_amount_cents": order.total_amount_cents,
            "dining_type": order.dining_type,
            "date": order.date.isoformat(),
            "time": order.start_time,
            "table_number": order.table_number,
        }

    @staticmethod
    def _row_to_order(row: Dict[str, Any]) -> Order:
        items = [CartLine(**item) for item in json.loads(row["items_json"])]
        return Order(
            id=row["id"],
            owner_id=row["owner_id"],
            order_code=row["order_code"],
            dining_type=row["dining_type"],
            table_number=row.get("table_number"),
            date=row["date"],
            start_time=row["start_time"],
            name=row["name"],
            phone=row["phone"],
            items=items,
            total_amount_cents=row["total_amount_cents"],
            status=row["status"],
            payment_status=row["payment_status"],
            holds_table=row["holds_table"],
            payment_session_id=row.get("payment_session_id"),
            payment_session_url=row.get("payment_session_url"),
            paid_at=row.get("paid_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
