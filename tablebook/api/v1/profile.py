"""
用户资料路由
"""

from fastapi import APIRouter, Depends

from ...core.security import get_principal_id
from ...models.profile import Profile
from ...schemas.profile import ProfileUpdateRequest
from ...services import ProfileService
from ..deps import get_profile_service

router = APIRouter()


@router.get("", response_model=Profile)
def get_profile(
    principal_id: str = Depends(get_principal_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.get_profile(principal_id)


@router.put("", response_model=Profile)
def update_profile(
    req: ProfileUpdateRequest,
    principal_id: str = Depends(get_principal_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """补充联系电话等信息（结账前要求留电话）"""
    return profiles.update_profile(principal_id, req.phone, req.email, req.display_name)
