from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.apps.api.deps import Principal, get_current_principal, get_db
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import SuccessEnvelope, success_response
from tripseal.core.errors import NotFoundError
from tripseal.persistence.repos.users import get_operator_permissions, get_user


router = APIRouter(prefix="/users", tags=["users"], responses=DEFAULT_ERROR_RESPONSES)


class PermissionsResponse(BaseModel):
    canCreate: bool
    canModify: bool
    canDelete: bool


class ProfileResponse(BaseModel):
    id: str
    name: str
    email: str | None
    role: str
    subrole: str | None
    companyId: str | None
    coins: int
    permissions: PermissionsResponse | None = None


@router.get("/me", response_model=SuccessEnvelope[ProfileResponse] | ProfileResponse)
async def get_me(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    user = await get_user(db, principal.user_id)
    if user is None:
        raise NotFoundError("User not found")
    permissions = None
    if principal.actor.is_operator:
        row = await get_operator_permissions(db, user.id)
        if row is not None:
            permissions = PermissionsResponse(
                canCreate=row.can_create,
                canModify=row.can_modify,
                canDelete=row.can_delete,
            )
    payload = ProfileResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        subrole=user.subrole,
        companyId=user.company_id,
        coins=user.coins,
        permissions=permissions,
    )
    return success_response(request=request, data=payload)
