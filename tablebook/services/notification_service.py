"""
通知分发
状态迁移提交之后的旁路通知，尽力而为：
任何发送失败只记录日志，不向调用方抛出，也不回滚已提交的状态。
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..config.settings import settings
from ..core.database import db_manager

logger = logging.getLogger(__name__)

ORDER_CONFIRMED = "order_confirmed"
RESERVATION_CONFIRMED = "reservation_confirmed"
NOTIFICATION_KINDS = (ORDER_CONFIRMED, RESERVATION_CONFIRMED)

RESEND_API_URL = "https://api.resend.com/emails"


class LoggingNotifier:
    """未配置邮件服务时，只写日志"""

    def send(self, kind: str, payload: Dict[str, Any]):
        logger.info("Notification %s: %s", kind, payload)


class EmailNotifier:
    """通过 Resend HTTP API 发送确认邮件"""

    def __init__(
        self,
        api_key: str,
        mail_from: str,
        restaurant_email: Optional[str] = None,
        timeout: float = 10.0
    ):
        self.api_key = api_key
        self.mail_from = mail_from
        self.restaurant_email = restaurant_email
        self.timeout = timeout

    def send(self, kind: str, payload: Dict[str, Any]):
        recipients: List[str] = [e for e in [payload.get("email"), self.restaurant_email] if e]
        if not recipients:
            logger.warning("Notification %s has no recipient, skipped", kind)
            return

        response = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.mail_from,
                "to": recipients,
                "subject": self._subject(kind, payload),
                "text": self._body(kind, payload),
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info("Notification %s sent to %s", kind, recipients)

    def _subject(self, kind: str, payload: Dict[str, Any]) -> str:
        if kind == ORDER_CONFIRMED:
            return f"Order confirmation {payload.get('order_code', '')}".strip()
        return f"Reservation confirmation - {payload.get('date')} {payload.get('time')}"

    def _body(self, kind: str, payload: Dict[str, Any]) -> str:
        lines = [f"Hello {payload.get('name', '')},", ""]
        if kind == ORDER_CONFIRMED:
            lines.append(f"Your order {payload.get('order_code')} has been paid.")
            for item in payload.get("items", []):
                variant = f" ({item['variant_label']})" if item.get("variant_label") else ""
                lines.append(f"  {item['quantity']} x {item['name']}{variant}")
            lines.append(f"Total: {payload.get('total_amount_cents', 0) / 100:.2f}")
        else:
            lines.append(
                f"Your table for {payload.get('people')} is reserved on "
                f"{payload.get('date')} at {payload.get('time')}."
            )
        if payload.get("table_number"):
            lines.append(f"Table: {payload['table_number']}")
        return "\n".join(lines)


def build_notifier():
    """根据配置选择通知后端"""
    if settings.resend_api_key:
        return EmailNotifier(settings.resend_api_key, settings.mail_from, settings.restaurant_email)
    return LoggingNotifier()


class NotificationDispatcher:
    """通知分发器"""

    def __init__(self, notifier=None, db=None):
        self.notifier = notifier or build_notifier()
        self.db = db or db_manager

    def notify(self, kind: str, payload: Dict[str, Any]) -> None:
        """
        发送通知，不返回结果

        失败时写日志和 logs 表供运维排查，不影响业务流程
        """
        if kind not in NOTIFICATION_KINDS:
            logger.error("Unknown notification kind %s dropped", kind)
            return

        try:
            self.notifier.send(kind, payload)
        except Exception as e:
            logger.exception("Notification %s failed", kind)
            try:
                self.db.write_log(None, "notification_failed", {
                    "kind": kind,
                    "error": str(e),
                    "ref": payload.get("order_id") or payload.get("reservation_id"),
                })
            except Exception:
                logger.exception("Failed to record notification failure")
