"""
统一错误处理模块
把业务异常转换为 {success, error_code, message, details, retryable} 响应

- 错误码决定HTTP状态码
- 存储和外部协作方失败标记为可重试，并附带 Retry-After
- 未知异常记录日志后返回 500，不泄露内部信息
"""

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .exceptions import BaseApplicationError

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_CODE = {
    "VALIDATION_ERROR": 400,
    "PHONE_REQUIRED": 400,
    "AUTHENTICATION_REQUIRED": 401,
    "FORBIDDEN": 403,
    "RESOURCE_NOT_FOUND": 404,
    "SLOT_CONFLICT": 409,
    "ORDER_STATE_INVALID": 409,
    "PAYMENT_NOT_SETTLED": 409,
    "COLLABORATOR_ERROR": 502,
    "STORAGE_ERROR": 503,
    "CONCURRENCY_ERROR": 503,
}

RETRY_AFTER_SECONDS = 2


class ErrorEnvelope(BaseModel):
    """标准错误响应格式"""
    success: bool = False
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    retryable: bool = False

    def to_response(self, status_code: int) -> JSONResponse:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if self.retryable else None
        return JSONResponse(status_code=status_code, content=self.model_dump(mode="json"), headers=headers)


def status_for(error_code: str) -> int:
    return STATUS_BY_ERROR_CODE.get(error_code, 400)


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    """业务异常；5xx 说明是存储或协作方故障，可由调用方重试"""
    status_code = status_for(exc.error_code)
    retryable = status_code >= 500
    if retryable:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.error_code, exc.message)
    elif exc.error_code == "FORBIDDEN":
        logger.warning("%s %s forbidden: %s", request.method, request.url.path, exc.details)

    return ErrorEnvelope(
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        retryable=retryable,
    ).to_response(status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return ErrorEnvelope(
        error_code="HTTP_ERROR",
        message=str(exc.detail),
        details={"status_code": exc.status_code},
    ).to_response(exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求体或查询参数不符合格式"""
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()]
    return ErrorEnvelope(
        error_code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"validation_errors": errors},
    ).to_response(422)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return ErrorEnvelope(
        error_code="INTERNAL_ERROR",
        message="Internal server error",
        details={"error_type": type(exc).__name__},
    ).to_response(500)
