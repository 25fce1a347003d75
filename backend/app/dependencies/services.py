# app/dependencies/services.py
"""
FastAPI providers for the service layer.

Routes depend on these instead of constructing services themselves, so tests
can swap any collaborator with app.dependency_overrides.
"""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.services.auth import AuthService
from app.services.email import send_templated_email
from app.services.gmail_accounts import GmailAccountService
from app.services.google_oauth import GoogleIdentityProvider, get_google_identity_provider
from app.services.kv_store import KeyValueStore, get_kv_store
from app.services.otp import OtpEngine, SendEmail
from app.services.rate_limiter import OtpResendThrottle
from app.services.tokens import TokenService, get_token_service


def get_kv() -> KeyValueStore:
    return get_kv_store()


def get_mailer() -> SendEmail:
    return send_templated_email


def get_identity_provider() -> GoogleIdentityProvider:
    return get_google_identity_provider()


def get_tokens() -> TokenService:
    return get_token_service()


def get_otp_engine(
    store: KeyValueStore = Depends(get_kv),
    mailer: SendEmail = Depends(get_mailer),
) -> OtpEngine:
    return OtpEngine(store, send_email=mailer)


def get_otp_throttle(store: KeyValueStore = Depends(get_kv)) -> OtpResendThrottle:
    return OtpResendThrottle(store)


def get_auth_service(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    otp: OtpEngine = Depends(get_otp_engine),
    identity_provider: GoogleIdentityProvider = Depends(get_identity_provider),
) -> AuthService:
    return AuthService(db, tokens=tokens, otp=otp, identity_provider=identity_provider)


def get_gmail_account_service(
    db: Session = Depends(get_db),
    identity_provider: GoogleIdentityProvider = Depends(get_identity_provider),
) -> GmailAccountService:
    return GmailAccountService(db, identity_provider=identity_provider, flow=settings.GMAIL_OAUTH_FLOW)
