# app/dependencies/auth.py
from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.dependencies.services import get_tokens
from app.models.user import User
from app.services.tokens import ACCESS_TOKEN_TYPE, TokenService
from app.services.users import get_user_by_id

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> User:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp + token type (access only)
      - user still exists
    Returns:
      - User SQLAlchemy model
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing Authorization header")

    claims = tokens.verify(creds.credentials, expected_type=ACCESS_TOKEN_TYPE)

    user = get_user_by_id(db, claims.user_id)
    if user is None:
        raise UnauthorizedError("User not found")

    return user
