# app/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.dependencies.auth import get_current_user
from app.dependencies.rate_limit import require_rate_limit
from app.dependencies.services import get_auth_service, get_otp_engine, get_otp_throttle
from app.models.user import User
from app.schemas.auth import (
    AuthOut,
    GoogleLoginIn,
    LoginIn,
    OtpSendIn,
    OtpSendOut,
    OtpVerifyIn,
    RefreshIn,
    TokensOut,
)
from app.schemas.user import ProfileUpdate, UserOut
from app.services.auth import AuthResult, AuthService
from app.services.otp import OtpEngine
from app.services.rate_limiter import OtpResendThrottle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

AUTH_LIMIT = 10
AUTH_WINDOW_SECONDS = 900


def _auth_out(result: AuthResult) -> AuthOut:
    return AuthOut(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=result.user,
    )


# -----------------------------
# Routes
# -----------------------------
@router.post(
    "/login",
    response_model=AuthOut,
    dependencies=[Depends(require_rate_limit("auth_login", limit=AUTH_LIMIT, window_seconds=AUTH_WINDOW_SECONDS))],
)
def login(payload: LoginIn, service: AuthService = Depends(get_auth_service)):
    return _auth_out(service.login_with_password(payload.email, payload.password))


@router.post(
    "/otp/send",
    response_model=OtpSendOut,
    dependencies=[Depends(require_rate_limit("auth_otp_send", limit=AUTH_LIMIT, window_seconds=AUTH_WINDOW_SECONDS))],
)
def send_otp(
    payload: OtpSendIn,
    engine: OtpEngine = Depends(get_otp_engine),
    throttle: OtpResendThrottle = Depends(get_otp_throttle),
):
    throttle.check(payload.email)
    result = engine.issue(payload.email)
    return OtpSendOut(success=result.success, expires_in=result.expires_in_seconds)


@router.post(
    "/otp/verify",
    response_model=AuthOut,
    dependencies=[Depends(require_rate_limit("auth_otp_verify", limit=AUTH_LIMIT, window_seconds=AUTH_WINDOW_SECONDS))],
)
def verify_otp(payload: OtpVerifyIn, service: AuthService = Depends(get_auth_service)):
    return _auth_out(service.login_with_otp(payload.email, payload.otp))


@router.post(
    "/google",
    response_model=AuthOut,
    dependencies=[Depends(require_rate_limit("auth_google", limit=AUTH_LIMIT, window_seconds=AUTH_WINDOW_SECONDS))],
)
def google_login(payload: GoogleLoginIn, service: AuthService = Depends(get_auth_service)):
    return _auth_out(service.login_with_google(payload.token))


@router.post("/refresh", response_model=TokensOut)
def refresh(payload: RefreshIn, service: AuthService = Depends(get_auth_service)):
    pair = service.refresh(payload.refresh_token)
    return TokensOut(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/complete-profile", response_model=AuthOut)
def complete_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return _auth_out(service.complete_profile(user.id, payload))


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user), service: AuthService = Depends(get_auth_service)):
    return service.get_user(user.id)
