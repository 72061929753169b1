from fastapi import APIRouter, Depends, HTTPException

from app.core.dependencies import get_current_user_id, get_profile_service
from .schemas import Profile
from .service import ProfileService


router = APIRouter()


@router.get("/{user_id}", response_model=Profile, status_code=200)
async def get_profile(
    user_id: str,
    me: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Public profile of any user. 404 when it can't be found."""
    profile = await profiles.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found.")
    return profile
