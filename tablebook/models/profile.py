"""
用户资料模型
"""

from pydantic import Field
from typing import Optional
from .base import BaseEntity, TimestampMixin


class Profile(BaseEntity, TimestampMixin):
    """用户资料"""
    principal_id: str = Field(..., description="用户标识")
    display_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_admin: bool = False

    @property
    def has_phone(self) -> bool:
        return bool(self.phone and self.phone.strip())
