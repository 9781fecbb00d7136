"""Profile save endpoints"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.api.deps import CurrentUser, get_current_user
from nannygold.db.database import get_db
from nannygold.db.models import UserRole
from nannygold.errors import PermissionDeniedError
from nannygold.schemas.profiles import (
    ClientProfileResponse,
    ClientProfileSave,
    NannyProfileResponse,
    NannyProfileSave,
)
from nannygold.services.profiles import ProfileService

router = APIRouter()


@router.put("/client")
async def save_client_profile(
    request: ClientProfileSave,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    if user.role is not UserRole.CLIENT:
        raise PermissionDeniedError("Only clients can save a client profile")
    client = await ProfileService(db).save_client_profile(
        user.user_id,
        request.profile.model_dump(exclude_unset=True),
        request.client.model_dump(exclude_unset=True),
        request.preferences.model_dump(exclude_unset=True),
    )
    return {"success": True, "data": ClientProfileResponse.model_validate(client)}


@router.put("/nanny")
async def save_nanny_profile(
    request: NannyProfileSave,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    if user.role is not UserRole.NANNY:
        raise PermissionDeniedError("Only nannies can save a nanny profile")
    nanny = await ProfileService(db).save_nanny_profile(
        user.user_id,
        request.profile.model_dump(exclude_unset=True),
        request.nanny.model_dump(exclude_unset=True),
    )
    return {"success": True, "data": NannyProfileResponse.model_validate(nanny)}
