"""
安全相关功能
身份认证由外部服务完成，这里只校验 Bearer JWT 并取出 principal_id（sub）
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .exceptions import AuthenticationError
from ..config.settings import settings

JWT_EXPIRATION_HOURS = 24 * 7  # 7天


class SecurityManager:
    """安全管理器"""

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret = secret or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm

    def create_jwt_token(self, principal_id: str, additional_claims: Dict[str, Any] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": principal_id,
            "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

    def get_principal_id_from_token(self, token: str) -> str:
        """从token中提取principal_id"""
        principal_id = self.decode_jwt_token(token).get("sub")
        if not principal_id:
            raise AuthenticationError("Token missing subject")
        return principal_id


# 全局安全管理器实例
security_manager = SecurityManager()

_bearer = HTTPBearer(auto_error=False)


async def get_principal_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)
) -> str:
    """从Authorization header中提取并验证principal_id"""
    if credentials is None:
        raise AuthenticationError()
    return security_manager.get_principal_id_from_token(credentials.credentials)
