"""FastAPI dependencies for authentication and authorization.

This is the request-time gate: it resolves the ``Authorization: Bearer``
header to a principal and enforces role requirements. Rejections are raised
as auth errors and rendered by the app's exception handlers (401/403).
"""

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskauth.container import Container
from taskauth.models.auth import Principal
from taskauth.models.user import Role
from taskauth.services.auth_service import AuthService
from taskauth.services.errors import ForbiddenError, InvalidCredentialError

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> Container:
    """Return the components built during application startup."""
    return request.app.state.container


def get_auth_service(container: Container = Depends(get_container)) -> AuthService:
    return container.auth_service


def get_request_timeout(container: Container = Depends(get_container)) -> float:
    """Deadline, in seconds, applied to each auth operation."""
    return float(container.settings.server_write_timeout)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Extract the raw bearer token without validating it.

    Raises:
        InvalidCredentialError: If the header is missing or not a Bearer token
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredentialError("Missing or invalid Authorization header")
    return credentials.credentials


async def get_current_principal(
    request: Request,
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> Principal:
    """Authenticate the bearer token and attach the principal to the request.

    Raises:
        CredentialError: If the token is malformed, forged, expired or revoked
    """
    principal = await auth_service.authenticate(token, timeout=timeout)
    request.state.principal = principal
    return principal


def require_role(role: Role) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory requiring the authenticated principal to hold ``role``.

    Usage:
        principal: Principal = Depends(require_role(Role.ADMIN))
    """

    async def _require_role(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role != role:
            raise ForbiddenError(f"Role '{role.value}' required")
        return principal

    return _require_role


require_admin = require_role(Role.ADMIN)
