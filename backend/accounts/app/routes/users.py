"""Administrative user endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ...db.models import User, UserRole
from ..auth_service import AuthService, RequestContext
from ..dependencies import RequireRoles, get_auth_service, get_request_context
from ..schemas import AccountStatusRequest, ActiveUsersResponse, UserResource
from .auth import serialize_user

router = APIRouter(prefix="/users", tags=["users"])

require_admin = RequireRoles(UserRole.ADMIN)


@router.patch("/{user_id}/status", response_model=UserResource)
async def change_account_status(
    user_id: str,
    payload: AccountStatusRequest,
    ctx: RequestContext = Depends(get_request_context),
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> UserResource:
    user = await service.change_account_status(admin, user_id, payload.status, ctx)
    return serialize_user(user)


@router.get(
    "/active-sessions",
    response_model=ActiveUsersResponse,
    dependencies=[Depends(require_admin)],
)
async def active_sessions(service: AuthService = Depends(get_auth_service)) -> ActiveUsersResponse:
    return ActiveUsersResponse.model_validate(service.active_users_by_role())


__all__ = ["router"]
