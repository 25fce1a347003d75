# app/services/users.py
"""
User lookup and provisioning helpers.

Responsibilities:
- Email normalization (lowercase + trim) shared by every login path
- User lookup by id, email, or Google identity
- Minimal account creation with a race-safe unique-email fallback
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import User
from app.services.profile import refresh_profile_completion

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def get_user_by_id(db: Session, user_id: int | str | None) -> Optional[User]:
    """Look up a user by primary key. Non-numeric ids never match."""
    try:
        pk = int(user_id)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return db.get(User, pk)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    return db.query(User).filter(User.email == normalize_email(email)).first()


def find_google_user(db: Session, *, email: str, provider_id: str) -> Optional[User]:
    """Match on email OR an existing Google link for the same external id."""
    return (
        db.query(User)
        .filter(
            or_(
                User.email == normalize_email(email),
                and_(User.provider_id == provider_id, User.provider == "google"),
            )
        )
        .order_by(User.id)
        .first()
    )


def create_user(
    db: Session,
    *,
    email: str,
    provider: str,
    password_hash: str | None = None,
    provider_id: str | None = None,
    name: str = "",
    avatar_url: str | None = None,
    is_email_verified: bool = False,
) -> tuple[User, bool]:
    """
    Create a minimal account and return (user, created).

    If a concurrent request created the same email first, the unique index
    rejects our insert and the existing row is returned with created=False so
    the caller can run its existing-account checks instead.
    """
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValueError("email is required")

    user = User(
        email=normalized_email,
        password_hash=password_hash if provider == "email" else None,
        name=(name or "").strip()[:100],
        role="hr",
        provider=provider,
        provider_id=provider_id,
        avatar_url=avatar_url,
        plan_type="free",
        is_email_verified=is_email_verified,
    )
    refresh_profile_completion(user)

    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = get_user_by_email(db, normalized_email)
        if existing is None:
            raise
        logger.info("Concurrent signup for %s; using existing user id=%s", normalized_email, existing.id)
        return existing, False

    logger.info("Provisioned new user: id=%s provider=%s email=%s", user.id, provider, normalized_email)
    return user, True
