"""
自定义异常类
提供更精确的错误处理和异常信息

错误分类：
- ValidationError: 输入不合法，直接返回给调用方，不重试
- ConflictError: 时段已被占用，附带阻塞预订的结束时间
- ForbiddenError: 非订单所有者操作，视为潜在滥用
- StorageError / CollaboratorError: 存储或外部协作方失败，可由调用方重试
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseApplicationError):
    """数据验证异常"""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class PhoneRequiredError(ValidationError):
    """下单前必须留有联系电话"""

    def __init__(self):
        super().__init__("A contact phone number is required before checkout")
        self.error_code = "PHONE_REQUIRED"


class ConflictError(BaseApplicationError):
    """桌位时段冲突"""

    def __init__(self, table_number: int, booked_until: str):
        self.table_number = table_number
        self.booked_until = booked_until
        super().__init__(
            f"Table {table_number} is already reserved until {booked_until}",
            "SLOT_CONFLICT",
            {"table_number": table_number, "booked_until": booked_until},
        )


class OrderStateError(BaseApplicationError):
    """订单状态不允许该操作"""

    def __init__(self, order_id: int, status: str, action: str):
        super().__init__(
            f"Order {order_id} is {status}, cannot {action}",
            "ORDER_STATE_INVALID",
            {"order_id": order_id, "status": status},
        )


class PaymentNotSettledError(BaseApplicationError):
    """支付方尚未确认收款"""

    def __init__(self, order_id: int):
        super().__init__(
            f"Payment for order {order_id} has not been settled",
            "PAYMENT_NOT_SETTLED",
            {"order_id": order_id},
        )


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "AUTHENTICATION_REQUIRED")


class ForbiddenError(BaseApplicationError):
    """权限拒绝错误"""

    def __init__(self, message: str = "Not allowed", details: Dict[str, Any] = None):
        super().__init__(message, "FORBIDDEN", details)


class NotFoundError(BaseApplicationError):
    """资源不存在"""

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            "RESOURCE_NOT_FOUND",
            {"resource": resource, "id": resource_id},
        )


class StorageError(BaseApplicationError):
    """数据库相关异常，可重试"""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, "STORAGE_ERROR", details)


class ConcurrencyError(StorageError):
    """并发控制错误"""

    def __init__(self, message: str = "System busy, please retry"):
        super().__init__(message)
        self.error_code = "CONCURRENCY_ERROR"


class CollaboratorError(BaseApplicationError):
    """外部协作方（支付、邮件）调用失败"""

    def __init__(
        self,
        collaborator: str,
        message: str,
        order_id: Optional[int] = None
    ):
        details = {"collaborator": collaborator}
        if order_id is not None:
            details["order_id"] = order_id
        self.order_id = order_id
        super().__init__(message, "COLLABORATOR_ERROR", details)
