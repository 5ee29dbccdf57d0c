"""
用户资料服务
保存联系电话等下单所需信息；认证本身由外部身份服务完成，这里只接收 principal_id
"""

from typing import Optional

from ..core.database import db_manager
from ..core.exceptions import ForbiddenError, ValidationError
from ..models.profile import Profile


class ProfileService:
    """用户资料服务"""

    def __init__(self, db=None):
        self.db = db or db_manager

    def get_profile(self, principal_id: str) -> Profile:
        """获取用户资料，不存在时自动创建空资料"""
        row = self.db.fetch_dict("SELECT * FROM profiles WHERE principal_id=?", [principal_id])
        if not row:
            with self.db.transaction() as tx:
                tx.execute(
                    "INSERT INTO profiles(principal_id) VALUES (?) ON CONFLICT DO NOTHING",
                    [principal_id],
                )
            row = self.db.fetch_dict("SELECT * FROM profiles WHERE principal_id=?", [principal_id])
        return Profile(**row)

    def update_profile(
        self,
        principal_id: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        display_name: Optional[str] = None
    ) -> Profile:
        """更新用户资料，只修改传入的字段"""
        self.get_profile(principal_id)

        update_fields = []
        params = []
        if phone is not None:
            phone = phone.strip()
            if not phone or len(phone) > 20:
                raise ValidationError("Phone must be 1-20 characters", {"phone": phone})
            update_fields.append("phone = ?")
            params.append(phone)
        if email is not None:
            update_fields.append("email = ?")
            params.append(email.strip())
        if display_name is not None:
            update_fields.append("display_name = ?")
            params.append(display_name.strip())

        if update_fields:
            update_fields.append("updated_at = now()")
            params.append(principal_id)
            with self.db.transaction() as conn:
                conn.execute(
                    f"UPDATE profiles SET {', '.join(update_fields)} WHERE principal_id = ?",
                    params,
                )
        return self.get_profile(principal_id)

    def is_admin(self, principal_id: str) -> bool:
        row = self.db.execute_one("SELECT is_admin FROM profiles WHERE principal_id=?", [principal_id])
        return bool(row and row[0])

    def require_admin(self, principal_id: str):
        if not self.is_admin(principal_id):
            raise ForbiddenError("Administrator privileges required")
