# app/services/auth.py
"""
Credential / identity resolution.

Every login path ends the same way: load or create the User, refresh the
cached profile-completeness flag, stamp last_login_at, commit, and mint a
token pair from the live row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.errors import BadRequestError, NotFoundError, UnauthorizedError
from app.core.security import hash_password, now_utc, verify_password
from app.models.user import User
from app.schemas.user import ProfileUpdate, UserOut
from app.services.google_oauth import GoogleIdentityProvider
from app.services.otp import OtpEngine
from app.services.profile import apply_profile_update, refresh_profile_completion
from app.services.tokens import TokenPair, TokenService
from app.services.users import (
    create_user,
    find_google_user,
    get_user_by_email,
    get_user_by_id,
    normalize_email,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
USE_GOOGLE_MESSAGE = "Please use Google OAuth to sign in"


@dataclass(frozen=True)
class AuthResult:
    user: UserOut
    tokens: TokenPair


class AuthService:
    def __init__(
        self,
        db: Session,
        *,
        tokens: TokenService,
        otp: OtpEngine | None = None,
        identity_provider: GoogleIdentityProvider | None = None,
    ) -> None:
        self.db = db
        self.tokens = tokens
        self.otp = otp
        self.identity_provider = identity_provider

    # -----------------------------
    # Login paths
    # -----------------------------
    def login_with_password(self, email: str, password: str) -> AuthResult:
        normalized = normalize_email(email)
        user = get_user_by_email(self.db, normalized)

        if user is None:
            # Unknown email: sign-in doubles as registration.
            user, created = create_user(
                self.db,
                email=normalized,
                provider="email",
                password_hash=hash_password(password),
            )
            if created:
                return self._finalize(user)

        if user.provider != "email" or not user.password_hash:
            raise UnauthorizedError(USE_GOOGLE_MESSAGE)

        if not verify_password(password, user.password_hash):
            logger.info("Password mismatch for user id=%s", user.id)
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        return self._finalize(user)

    def login_with_otp(self, email: str, otp: str) -> AuthResult:
        if self.otp is None:
            raise RuntimeError("AuthService was built without an OTP engine")

        verified = self.otp.verify(email, otp)
        user = get_user_by_email(self.db, verified.email)

        if user is None:
            user, created = create_user(
                self.db,
                email=verified.email,
                provider="email",
                is_email_verified=True,
            )
            if created:
                return self._finalize(user)

        if user.provider != "email":
            raise UnauthorizedError(USE_GOOGLE_MESSAGE)

        # Receiving the code proves ownership of the address.
        user.is_email_verified = True
        return self._finalize(user)

    def login_with_google(self, token: str) -> AuthResult:
        if self.identity_provider is None:
            raise RuntimeError("AuthService was built without a Google identity provider")

        identity = self.identity_provider.resolve_identity(token)
        if not identity.email:
            raise BadRequestError("Failed to get user email from Google")
        if not identity.provider_id:
            raise BadRequestError("Failed to get user ID from Google")

        user = find_google_user(self.db, email=identity.email, provider_id=identity.provider_id)
        if user is None:
            user, created = create_user(
                self.db,
                email=identity.email,
                provider="google",
                provider_id=identity.provider_id,
                name=identity.display_name or "",
                avatar_url=identity.avatar_url,
                is_email_verified=True,
            )
            if created:
                return self._finalize(user)

        if user.provider != "google":
            logger.info("Linking user id=%s to Google identity", user.id)
        user.provider = "google"
        user.provider_id = identity.provider_id
        # Google accounts never keep a local password.
        user.password_hash = None
        if not (user.name or "").strip() and identity.display_name:
            user.name = identity.display_name.strip()[:100]
        if not user.avatar_url and identity.avatar_url:
            user.avatar_url = identity.avatar_url
        user.is_email_verified = True
        return self._finalize(user)

    # -----------------------------
    # Session + profile
    # -----------------------------
    def refresh(self, refresh_token: str) -> TokenPair:
        return self.tokens.refresh(self.db, refresh_token)

    def get_user(self, user_id: int | str) -> UserOut:
        user = get_user_by_id(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserOut.model_validate(user)

    def complete_profile(self, user_id: int | str, update: ProfileUpdate) -> AuthResult:
        user = get_user_by_id(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")

        apply_profile_update(
            user,
            name=update.name,
            role=update.role,
            hr_type=update.hr_type,
            company_name=update.company_name,
            agency_name=update.agency_name,
            company_names=update.company_names,
        )
        self.db.commit()
        self.db.refresh(user)
        logger.info("Profile updated for user id=%s complete=%s", user.id, user.is_profile_complete)
        return AuthResult(user=UserOut.model_validate(user), tokens=self.tokens.issue_for_user(user))

    def _finalize(self, user: User) -> AuthResult:
        user.last_login_at = now_utc()
        refresh_profile_completion(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Login succeeded for user id=%s provider=%s", user.id, user.provider)
        return AuthResult(user=UserOut.model_validate(user), tokens=self.tokens.issue_for_user(user))
