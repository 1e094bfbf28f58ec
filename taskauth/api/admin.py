"""Admin API endpoints for user management."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
import structlog

from taskauth.api.dependencies import get_auth_service, get_request_timeout, require_admin
from taskauth.models.auth import (
    ChangeRoleRequest,
    EnvelopeResponse,
    Principal,
    UserEnvelopeData,
    UserSummary,
)
from taskauth.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/users/{user_id}", response_model_exclude_none=True)
async def get_user(
    user_id: UUID,
    admin: Principal = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Get any user by id (admin only)."""
    user = await auth_service.get_user(user_id, timeout=timeout)
    return EnvelopeResponse(
        status=status.HTTP_200_OK,
        data=UserEnvelopeData(user=UserSummary.from_user(user)),
    )


@router.patch("/users/{user_id}/role", response_model_exclude_none=True)
async def change_role(
    user_id: UUID,
    request: ChangeRoleRequest,
    admin: Principal = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Change a user's role (admin only).

    Access tokens already issued keep their old role until they expire.
    """
    user = await auth_service.change_role(user_id, request.role, timeout=timeout)
    logger.info(
        "admin_role_change",
        admin_id=str(admin.user_id),
        user_id=str(user_id),
        role=request.role.value,
    )
    return EnvelopeResponse(
        status=status.HTTP_200_OK,
        message="Role updated",
        data=UserEnvelopeData(user=UserSummary.from_user(user)),
    )
