from __future__ import annotations

import asyncio
from typing import Awaitable, Sequence, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from common.logging import get_logger
from identity.api.schemas import (
    AmountRequest,
    ConfirmationResponse,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SessionStatusResponse,
    TokenPairResponse,
    TokenRequest,
    UpdateEmailRequest,
    UpdatePasswordRequest,
    UserProfileResponse,
)
from identity.constants import BEARER_PREFIX
from identity.domain.exceptions import (
    EmailAlreadyTakenError,
    ForbiddenError,
    IdentityError,
    InternalError,
    InvalidAccessTokenError,
    InvalidArgumentError,
    InvalidCredentialsError,
    NoActiveSessionError,
    UserAlreadyExistsError,
    UserNotFoundError,
    WrongEmailError,
    WrongPasswordError,
)
from identity.domain.models import TokenClaims
from identity.services.account_service import AccountService
from identity.services.auth_service import AuthService
from identity.tokens import TokenIssuer

logger = get_logger("identity.app")

T = TypeVar("T")

_STATUS_BY_ERROR: dict[type[IdentityError], int] = {
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    # The caller already holds a valid bearer token; a wrong current password
    # is a bad request, not an authentication failure.
    WrongPasswordError: status.HTTP_400_BAD_REQUEST,
    WrongEmailError: status.HTTP_400_BAD_REQUEST,
    InvalidCredentialsError: status.HTTP_401_UNAUTHORIZED,
    InvalidAccessTokenError: status.HTTP_401_UNAUTHORIZED,
    NoActiveSessionError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    UserAlreadyExistsError: status.HTTP_409_CONFLICT,
    EmailAlreadyTakenError: status.HTTP_409_CONFLICT,
    InternalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: IdentityError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]  # type: ignore[index]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _to_http(exc: IdentityError) -> HTTPException:
    code = status_for(exc)
    # Internal details stay in the logs.
    detail = "internal error" if code >= 500 else exc.message
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidAccessTokenError) else None
    return HTTPException(status_code=code, detail=detail, headers=headers)


def create_identity_app(
    *,
    auth_service: AuthService,
    account_service: AccountService,
    token_issuer: TokenIssuer,
    request_timeout_seconds: float = 10.0,
    cors_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Return a FastAPI application exposing the identity services over HTTP."""
    app = FastAPI(title="Identity Service", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins or ["http://localhost:5173"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.auth_service = auth_service  # type: ignore[attr-defined]
    app.state.account_service = account_service  # type: ignore[attr-defined]
    app.state.token_issuer = token_issuer  # type: ignore[attr-defined]

    async def call(operation: Awaitable[T]) -> T:
        try:
            async with asyncio.timeout(request_timeout_seconds):
                return await operation
        except IdentityError as exc:
            raise _to_http(exc) from None
        except TimeoutError:
            logger.warning(
                "Request deadline exceeded",
                extra={"event": "identity.request.timeout", "context": {"timeout": request_timeout_seconds}},
            )
            raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="deadline exceeded") from None

    async def authenticated(authorization: str | None = Header(default=None)) -> TokenClaims:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="authorization token is not provided",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            return token_issuer.verify_access_token(authorization[len(BEARER_PREFIX):].strip())
        except InvalidAccessTokenError as exc:
            raise _to_http(exc) from None

    auth_router = APIRouter(prefix="/auth", tags=["auth"])

    @auth_router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
    async def register(request: RegisterRequest) -> RegisterResponse:
        user_id = await call(auth_service.register(request.username, request.email, request.password))
        return RegisterResponse(user_id=user_id)

    @auth_router.post("/login", response_model=TokenPairResponse)
    async def login(request: LoginRequest) -> TokenPairResponse:
        pair = await call(auth_service.login(request.input, request.password))
        return TokenPairResponse.from_domain(pair)

    @auth_router.post("/logout", response_model=LogoutResponse)
    async def logout(request: TokenRequest) -> LogoutResponse:
        return LogoutResponse(success=await call(auth_service.logout(request.token)))

    @auth_router.post("/refresh", response_model=TokenPairResponse)
    async def refresh(request: RefreshRequest) -> TokenPairResponse:
        pair = await call(auth_service.refresh_session(request.refresh_token))
        return TokenPairResponse.from_domain(pair)

    @auth_router.post("/session", response_model=SessionStatusResponse)
    async def session_status(request: TokenRequest) -> SessionStatusResponse:
        return SessionStatusResponse(active=await call(auth_service.session_active(request.token)))

    accounts_router = APIRouter(prefix="/accounts", tags=["accounts"])

    @accounts_router.get("/{user_id}", response_model=UserProfileResponse)
    async def get_user(user_id: str, claims: TokenClaims = Depends(authenticated)) -> UserProfileResponse:
        user = await call(account_service.get_user_by_id(claims.user_id, user_id))
        return UserProfileResponse.from_domain(user)

    @accounts_router.put("/{user_id}/email", response_model=ConfirmationResponse)
    async def update_email(
        user_id: str,
        request: UpdateEmailRequest,
        claims: TokenClaims = Depends(authenticated),
    ) -> ConfirmationResponse:
        await call(account_service.update_email(claims.user_id, user_id, request.old_email, request.new_email))
        return ConfirmationResponse(message="email updated successfully")

    @accounts_router.put("/{user_id}/password", response_model=ConfirmationResponse)
    async def update_password(
        user_id: str,
        request: UpdatePasswordRequest,
        claims: TokenClaims = Depends(authenticated),
    ) -> ConfirmationResponse:
        await call(
            account_service.update_password(claims.user_id, user_id, request.old_password, request.new_password)
        )
        return ConfirmationResponse(message="password updated successfully")

    @accounts_router.post("/{user_id}/balance", response_model=ConfirmationResponse)
    async def update_balance(
        user_id: str,
        request: AmountRequest,
        claims: TokenClaims = Depends(authenticated),
    ) -> ConfirmationResponse:
        await call(account_service.update_balance(claims.user_id, user_id, request.amount))
        return ConfirmationResponse(message="balance updated successfully")

    @accounts_router.post(
        "/{user_id}/purchases",
        response_model=ConfirmationResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_purchase(
        user_id: str,
        request: AmountRequest,
        claims: TokenClaims = Depends(authenticated),
    ) -> ConfirmationResponse:
        await call(account_service.create_purchase(claims.user_id, user_id, request.amount))
        return ConfirmationResponse(message="purchase created successfully")

    @app.get("/health", status_code=status.HTTP_200_OK)
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(auth_router)
    app.include_router(accounts_router)
    return app


__all__ = ["create_identity_app", "status_for"]
