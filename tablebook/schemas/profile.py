"""
用户资料的请求/响应模式
"""

from pydantic import BaseModel, Field
from typing import Optional


class ProfileUpdateRequest(BaseModel):
    """用户资料更新请求"""
    phone: Optional[str] = Field(None, max_length=20, description="联系电话")
    email: Optional[str] = Field(None, max_length=255, description="邮箱")
    display_name: Optional[str] = Field(None, max_length=100, description="昵称")
