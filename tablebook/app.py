"""
餐厅订位与点餐后端服务 - 主应用入口

主要功能模块：
- 桌位可用性查询与预订
- 堂食/自取订单结账与支付确认
- 用户联系方式维护
- 后台订单完成与记录删除

技术栈：FastAPI + DuckDB + JWT认证 + Stripe
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import settings
from .core.database import db_manager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        db_manager.init_database()
        logger.info("Database initialized at %s", db_manager.db_path)
    except BaseApplicationError:
        # 不让应用启动失败，允许在运行时重试
        logger.exception("Database initialization failed")

    yield

    db_manager.close()


def create_app() -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Restaurant table booking and order API",
        debug=settings.debug,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check():
        try:
            db_manager.execute_one("SELECT 1")
            return {"status": "healthy", "version": settings.api_version, "database": "connected"}
        except BaseApplicationError as e:
            return {"status": "unhealthy", "version": settings.api_version, "database": f"error: {e.message}"}

    @app.get("/")
    async def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "Restaurant table booking and order API"
        }

    return app


# 应用实例
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
