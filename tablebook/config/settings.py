from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/tablebook.duckdb"

    # JWT配置
    jwt_secret_key: str = "change-me-tablebook-development-secret"
    jwt_algorithm: str = "HS256"

    # API配置
    api_title: str = "Tablebook API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 开发模式
    debug: bool = False
    log_level: str = "INFO"

    # 桌位与时段
    table_count: int = 15
    booking_duration_hours: int = 2
    service_open_time: str = "11:00"
    service_last_start: str = "23:45"
    max_party_size: int = 20

    # 订单与支付
    order_code_prefix: str = "ORD"
    currency: str = "eur"
    payment_min_amount_cents: int = 50
    stripe_secret_key: Optional[str] = None
    public_base_url: str = "http://localhost:8080"
    verify_settlement: bool = True
    # 支付取消后是否释放堂食订单占用的桌位
    release_table_on_payment_cancel: bool = False

    # 邮件通知
    resend_api_key: Optional[str] = None
    mail_from: str = "Restaurant <mail@example.com>"
    restaurant_email: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False

# 全局设置实例
settings = Settings()
