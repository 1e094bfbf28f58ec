"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Response, status
import structlog

from taskauth.api.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_current_principal,
    get_request_timeout,
)
from taskauth.models.auth import (
    EnvelopeResponse,
    LoginRequest,
    LogoutRequest,
    Principal,
    RefreshRequest,
    RegisterRequest,
    UserEnvelopeData,
    UserSummary,
)
from taskauth.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model_exclude_none=True)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Register a new account with role ``user``.

    Raises:
        ValidationFailedError 400: Bad email format or short password
        ConflictEmailError 409: Email already registered
    """
    user = await auth_service.register(
        request.email, request.username, request.password, timeout=timeout
    )
    return EnvelopeResponse(
        status=status.HTTP_201_CREATED,
        message="User registered",
        data=UserEnvelopeData(user=UserSummary.from_user(user)),
    )


@router.post("/login", response_model_exclude_none=True)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Login with email and password.

    Raises:
        BadCredentialsError 401: Unknown email or wrong password
    """
    tokens = await auth_service.login(request.email, request.password, timeout=timeout)
    return EnvelopeResponse(status=status.HTTP_200_OK, data=tokens)


@router.post("/refresh", response_model_exclude_none=True)
async def refresh(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Exchange a refresh token for a new pair.

    The presented refresh token is consumed; reusing it returns 401.
    """
    tokens = await auth_service.refresh(request.refresh_token, timeout=timeout)
    return EnvelopeResponse(status=status.HTTP_200_OK, data=tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: LogoutRequest,
    access_token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> Response:
    """Revoke the bearer access token and the given refresh token.

    The bearer header must be present, but an already-expired access token
    does not prevent the refresh token from being revoked.
    """
    await auth_service.logout(access_token, request.refresh_token, timeout=timeout)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model_exclude_none=True)
async def get_me(
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
    timeout: float = Depends(get_request_timeout),
) -> EnvelopeResponse:
    """Get the authenticated user."""
    user = await auth_service.get_user(principal.user_id, timeout=timeout)
    return EnvelopeResponse(
        status=status.HTTP_200_OK,
        data=UserEnvelopeData(user=UserSummary.from_user(user)),
    )
