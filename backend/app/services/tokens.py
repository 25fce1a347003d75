# app/services/tokens.py
"""
Session token issuance, verification and rotation.

Both tokens of a pair carry the same claim set (identity, role, HR subtype
fields, profile-completeness flag). Claims are always rebuilt from the live
User row on issue/refresh, never copied forward from an older token, so a
refresh can't keep stale role or profile state alive.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import NotFoundError, UnauthorizedError
from app.core.security import now_utc
from app.models.user import User
from app.services.users import get_user_by_id

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    role: str
    hr_type: str | None = None
    company_name: str | None = None
    agency_name: str | None = None
    company_names: tuple[str, ...] = field(default_factory=tuple)
    is_profile_complete: bool = False

    @classmethod
    def from_user(cls, user: User) -> TokenClaims:
        return cls(
            user_id=str(user.id),
            email=user.email,
            role=user.role,
            hr_type=user.hr_type,
            company_name=user.company_name,
            agency_name=user.agency_name,
            company_names=tuple(user.company_names or ()),
            is_profile_complete=bool(user.is_profile_complete),
        )

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["sub"] = payload.pop("user_id")
        payload["company_names"] = list(self.company_names)
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TokenClaims:
        sub = payload.get("sub")
        email = payload.get("email")
        role = payload.get("role")
        if not sub or not email or not role:
            raise ValueError("Token missing identity claims")
        names = payload.get("company_names") or []
        if not isinstance(names, list):
            raise ValueError("company_names claim must be a list")
        return cls(
            user_id=str(sub),
            email=str(email),
            role=str(role),
            hr_type=payload.get("hr_type"),
            company_name=payload.get("company_name"),
            agency_name=payload.get("agency_name"),
            company_names=tuple(str(n) for n in names),
            is_profile_complete=bool(payload.get("is_profile_complete", False)),
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        if not secret or not secret.strip():
            raise RuntimeError("JWT_SECRET must be set (auth is required).")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def _sign(self, claims: TokenClaims, token_type: str, ttl: timedelta) -> str:
        now = now_utc()
        payload = claims.to_payload()
        payload.update(
            {
                "typ": token_type,
                "jti": uuid.uuid4().hex,
                "iat": int(now.timestamp()),
                "exp": int((now + ttl).timestamp()),
            }
        )
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(
            access_token=self._sign(claims, ACCESS_TOKEN_TYPE, self.access_ttl),
            refresh_token=self._sign(claims, REFRESH_TOKEN_TYPE, self.refresh_ttl),
        )

    def issue_for_user(self, user: User) -> TokenPair:
        return self.issue(TokenClaims.from_user(user))

    def verify(self, token: str, *, expected_type: str | None = None) -> TokenClaims:
        """
        Returns the claims of a valid token. Every failure (bad signature,
        expiry, malformed input, wrong token type) surfaces as the same
        UnauthorizedError so callers can't probe why a token was rejected.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
            if expected_type is not None and payload.get("typ") != expected_type:
                raise ValueError("Unexpected token type")
            return TokenClaims.from_payload(payload)
        except (JWTError, ValueError, TypeError, AttributeError):
            raise UnauthorizedError(_INVALID_TOKEN_MESSAGE) from None

    def refresh(self, db: Session, refresh_token: str) -> TokenPair:
        claims = self.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        user = get_user_by_id(db, claims.user_id)
        if user is None:
            raise NotFoundError("User not found")
        logger.info("Rotating tokens for user id=%s", user.id)
        return self.issue_for_user(user)


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    return TokenService(
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl=timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
    )
