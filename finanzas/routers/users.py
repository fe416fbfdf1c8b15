from fastapi import APIRouter, Depends, HTTPException

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.schemas import AuthResponse, ProfileUpdate, UserUpdate
from finanzas.storage.base import Storage

router = APIRouter(tags=["users"])


@router.patch("/users/me", response_model=AuthResponse)
async def update_profile(
    profile: ProfileUpdate,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    """
    Updates the caller's own profile. Username and role are not editable here.
    """
    changes = profile.model_dump(exclude_unset=True)

    if "email" in changes:
        existing = await storage.get_user_by_email(changes["email"])
        if existing and existing.id != user_id:
            raise HTTPException(status_code=400, detail="Email already exists")

    user = await storage.update_user(user_id, UserUpdate(**changes))
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")

    return {"user": user}
