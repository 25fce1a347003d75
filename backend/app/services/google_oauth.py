# app/services/google_oauth.py
"""
Google identity provider client.

Two credential shapes come from the frontend:
- an ID token (JWT) from Google Identity Services, verified locally with google-auth
- an OAuth access token or authorization code, resolved via Google's HTTP endpoints

Every failure (network error, timeout, rejected credential, missing email/id)
surfaces as GoogleOAuthError, a BadRequest-class error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from app.core.config import settings
from app.core.errors import BadRequestError

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}

FLOW_CODE = "code"
FLOW_TOKEN = "token"


class GoogleOAuthError(BadRequestError):
    code = "GOOGLE_AUTH_FAILED"
    default_message = "Failed to authenticate with Google"


@dataclass(frozen=True)
class GoogleOAuthConfig:
    client_id: str
    client_secret: str
    redirect_uri: str = "postmessage"
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls) -> GoogleOAuthConfig:
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI or "postmessage",
            timeout_seconds=float(settings.GOOGLE_HTTP_TIMEOUT_SECONDS),
        )


@dataclass(frozen=True)
class OAuthTokens:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    id_token: str | None = None


@dataclass(frozen=True)
class GoogleIdentity:
    provider_id: str
    email: str
    display_name: str | None = None
    avatar_url: str | None = None
    email_verified: bool = False


def _looks_like_jwt(token: str) -> bool:
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


def _identity_from_claims(claims: dict[str, Any], *, id_field: str) -> GoogleIdentity:
    email = str(claims.get("email") or "").strip().lower()
    provider_id = str(claims.get(id_field) or "").strip()
    if not email:
        raise GoogleOAuthError("Failed to get user email from Google")
    if not provider_id:
        raise GoogleOAuthError("Failed to get user ID from Google")
    return GoogleIdentity(
        provider_id=provider_id,
        email=email,
        display_name=(claims.get("name") or None),
        avatar_url=(claims.get("picture") or None),
        email_verified=bool(claims.get("email_verified") or claims.get("verified_email")),
    )


class GoogleIdentityProvider:
    def __init__(self, config: GoogleOAuthConfig) -> None:
        self.config = config

    def exchange_code(self, code: str) -> OAuthTokens:
        """Trade an authorization code for tokens (popup flow uses redirect_uri=postmessage)."""
        if not self.config.client_id or not self.config.client_secret:
            raise GoogleOAuthError("Google OAuth is not configured")
        candidate = (code or "").strip()
        if not candidate:
            raise GoogleOAuthError("Missing Google authorization code")

        data = {
            "code": candidate,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
            "grant_type": "authorization_code",
        }
        try:
            response = httpx.post(GOOGLE_TOKEN_URL, data=data, timeout=self.config.timeout_seconds)
        except httpx.TimeoutException as exc:
            raise GoogleOAuthError("Google did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise GoogleOAuthError("Unable to reach Google") from exc

        if response.status_code != 200:
            logger.warning("Google token exchange rejected: status=%s", response.status_code)
            raise GoogleOAuthError("Google rejected the authorization code")

        try:
            payload = response.json()
        except ValueError as exc:
            raise GoogleOAuthError("Invalid response from Google") from exc

        access_token = payload.get("access_token")
        if not access_token:
            raise GoogleOAuthError("Failed to obtain access token from Google")

        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        return OAuthTokens(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at,
            id_token=payload.get("id_token") or None,
        )

    def fetch_identity(self, access_token: str) -> GoogleIdentity:
        try:
            response = httpx.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise GoogleOAuthError("Google did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise GoogleOAuthError("Unable to reach Google") from exc

        if response.status_code != 200:
            logger.warning("Google userinfo rejected token: status=%s", response.status_code)
            raise GoogleOAuthError("Invalid Google access token")

        try:
            payload = response.json()
        except ValueError as exc:
            raise GoogleOAuthError("Invalid response from Google") from exc

        return _identity_from_claims(payload, id_field="id")

    def verify_id_token(self, token: str) -> GoogleIdentity:
        if not self.config.client_id:
            raise GoogleOAuthError("Google OAuth is not configured")
        try:
            claims = id_token.verify_oauth2_token(
                token,
                google_requests.Request(),
                self.config.client_id,
                clock_skew_in_seconds=60,
            )
        except (ValueError, google_auth_exceptions.GoogleAuthError) as exc:
            raise GoogleOAuthError("Invalid Google ID token") from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise GoogleOAuthError("Invalid Google ID token")
        return _identity_from_claims(claims, id_field="sub")

    def resolve_identity(self, token: str) -> GoogleIdentity:
        """Accept either an ID token or an access token for sign-in."""
        candidate = (token or "").strip()
        if not candidate:
            raise GoogleOAuthError("Missing Google token")
        if _looks_like_jwt(candidate):
            return self.verify_id_token(candidate)
        return self.fetch_identity(candidate)

    def exchange_credential(self, credential: str, flow: str = FLOW_CODE) -> tuple[OAuthTokens, GoogleIdentity]:
        """
        Turn the credential posted by the Gmail connect dialog into tokens plus
        the identity of the mailbox owner.
        """
        if flow == FLOW_TOKEN:
            candidate = (credential or "").strip()
            if not candidate:
                raise GoogleOAuthError("Missing Google access token")
            tokens = OAuthTokens(access_token=candidate)
        elif flow == FLOW_CODE:
            tokens = self.exchange_code(credential)
        else:
            raise GoogleOAuthError(f"Unsupported Gmail OAuth flow: {flow}")
        return tokens, self.fetch_identity(tokens.access_token)


def get_google_identity_provider() -> GoogleIdentityProvider:
    return GoogleIdentityProvider(GoogleOAuthConfig.from_settings())
