# app/services/gmail_accounts.py
"""
Per-user Gmail account linking.

Rules:
- A user links at most `max_gmail_accounts` mailboxes for their plan (-1 = unlimited).
  The quota is checked before any call to Google.
- At most one active account per user is primary. Changing the primary always
  clears the others first, and both writes land in one commit.
- Disconnect is a soft delete (status=inactive). The primary flag is dropped
  with it; stored tokens are kept.
- Tokens are Fernet-encrypted at rest and never leave this module except via
  get_credentials().
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.crypto import decrypt_secret, encrypt_secret
from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.plans import can_add_gmail_account, get_max_gmail_accounts, get_plan_name
from app.models.gmail_account import GmailAccount
from app.schemas.gmail_account import GmailAccountListOut, GmailAccountOut
from app.services.google_oauth import FLOW_CODE, GoogleIdentity, GoogleIdentityProvider, OAuthTokens
from app.services.users import get_user_by_id

logger = logging.getLogger(__name__)

LINKED_STATUSES = ("active", "error")


@dataclass(frozen=True)
class GmailCredentials:
    account_id: int
    email: str
    access_token: str
    refresh_token: str | None
    token_expiry: datetime | None


class GmailAccountService:
    def __init__(
        self,
        db: Session,
        *,
        identity_provider: GoogleIdentityProvider,
        flow: str = FLOW_CODE,
    ) -> None:
        self.db = db
        self.identity_provider = identity_provider
        self.flow = flow

    # -----------------------------
    # Queries
    # -----------------------------
    def _linked_query(self, user_id: int):
        return self.db.query(GmailAccount).filter(
            GmailAccount.user_id == user_id,
            GmailAccount.status.in_(LINKED_STATUSES),
        )

    def count_linked(self, user_id: int) -> int:
        return self._linked_query(user_id).count()

    def _get_owned(self, user_id: int, account_id: int) -> GmailAccount:
        account = (
            self.db.query(GmailAccount)
            .filter(GmailAccount.id == account_id, GmailAccount.user_id == user_id)
            .first()
        )
        if account is None:
            raise NotFoundError("Gmail account not found")
        return account

    def _has_other_active_primary(self, user_id: int, exclude_id: int | None) -> bool:
        q = self.db.query(GmailAccount).filter(
            GmailAccount.user_id == user_id,
            GmailAccount.status == "active",
            GmailAccount.is_primary.is_(True),
        )
        if exclude_id is not None:
            q = q.filter(GmailAccount.id != exclude_id)
        return q.first() is not None

    def _clear_primary(self, user_id: int) -> None:
        self.db.query(GmailAccount).filter(
            GmailAccount.user_id == user_id,
            GmailAccount.is_primary.is_(True),
        ).update({GmailAccount.is_primary: False}, synchronize_session="fetch")

    def _find_by_email(self, user_id: int, email: str) -> GmailAccount | None:
        return (
            self.db.query(GmailAccount)
            .filter(GmailAccount.user_id == user_id, GmailAccount.email == email)
            .first()
        )

    def _reactivate(
        self,
        account: GmailAccount,
        tokens: OAuthTokens,
        identity: GoogleIdentity,
        is_primary: bool,
    ) -> None:
        make_primary = is_primary or not self._has_other_active_primary(account.user_id, account.id)
        if make_primary:
            self._clear_primary(account.user_id)
        account.access_token = encrypt_secret(tokens.access_token)
        # Google only sends a refresh token on first consent; keep the old one otherwise.
        if tokens.refresh_token:
            account.refresh_token = encrypt_secret(tokens.refresh_token)
        account.token_expiry = tokens.expires_at
        account.provider_id = identity.provider_id
        account.status = "active"
        account.error_message = None
        account.is_primary = make_primary

    # -----------------------------
    # Operations
    # -----------------------------
    def list_accounts(self, user_id: int) -> GmailAccountListOut:
        user = get_user_by_id(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")

        accounts = (
            self._linked_query(user.id)
            .order_by(GmailAccount.is_primary.desc(), GmailAccount.created_at.desc(), GmailAccount.id.desc())
            .all()
        )
        return GmailAccountListOut(
            accounts=[GmailAccountOut.model_validate(a) for a in accounts],
            count=len(accounts),
            max_accounts=get_max_gmail_accounts(user.plan_type),
            plan=get_plan_name(user.plan_type),
        )

    def connect(self, user_id: int, token: str, is_primary: bool = False) -> GmailAccountOut:
        user = get_user_by_id(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found")

        current = self.count_linked(user.id)
        if not can_add_gmail_account(user.plan_type, current):
            max_accounts = get_max_gmail_accounts(user.plan_type)
            raise ForbiddenError(
                f"You have reached the maximum number of Gmail accounts ({max_accounts}) "
                f"for your {get_plan_name(user.plan_type)} plan. Please upgrade to add more accounts.",
                details={"max_accounts": max_accounts, "plan": get_plan_name(user.plan_type)},
            )

        tokens, identity = self.identity_provider.exchange_credential(token, self.flow)
        if not identity.email:
            raise BadRequestError("Failed to get user email from Google")
        if not identity.provider_id:
            raise BadRequestError("Failed to get user ID from Google")

        account = self._find_by_email(user.id, identity.email)

        if account is not None:
            self._reactivate(account, tokens, identity, is_primary)
            logger.info("Reconnected Gmail account id=%s for user id=%s", account.id, user.id)
        else:
            make_primary = is_primary or current == 0
            if make_primary:
                self._clear_primary(user.id)
            account = GmailAccount(
                user_id=user.id,
                email=identity.email,
                access_token=encrypt_secret(tokens.access_token),
                refresh_token=encrypt_secret(tokens.refresh_token),
                token_expiry=tokens.expires_at,
                provider_id=identity.provider_id,
                status="active",
                is_primary=make_primary,
            )
            self.db.add(account)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent connect inserted the same (user_id, email) first.
                self.db.rollback()
                account = self._find_by_email(user.id, identity.email)
                if account is None:
                    raise
                self._reactivate(account, tokens, identity, is_primary)
                logger.info("Concurrent connect for user id=%s; reusing account id=%s", user.id, account.id)
            else:
                logger.info("Connected new Gmail account id=%s for user id=%s", account.id, user.id)

        self.db.commit()
        self.db.refresh(account)
        return GmailAccountOut.model_validate(account)

    def disconnect(self, user_id: int, account_id: int) -> None:
        account = self._get_owned(user_id, account_id)
        account.status = "inactive"
        account.is_primary = False
        self.db.commit()
        logger.info("Disconnected Gmail account id=%s for user id=%s", account.id, user_id)

    def set_primary(self, user_id: int, account_id: int) -> GmailAccountOut:
        account = (
            self.db.query(GmailAccount)
            .filter(
                GmailAccount.id == account_id,
                GmailAccount.user_id == user_id,
                GmailAccount.status == "active",
            )
            .first()
        )
        if account is None:
            raise NotFoundError("Gmail account not found")

        self._clear_primary(user_id)
        account.is_primary = True
        self.db.commit()
        self.db.refresh(account)
        logger.info("Primary Gmail account for user id=%s is now id=%s", user_id, account.id)
        return GmailAccountOut.model_validate(account)

    def get_credentials(self, user_id: int, account_id: int) -> GmailCredentials:
        """Decrypted tokens for the mailbox ingestion worker. Never expose these over HTTP."""
        account = self._get_owned(user_id, account_id)
        if account.status == "inactive":
            raise NotFoundError("Gmail account not found")
        return GmailCredentials(
            account_id=account.id,
            email=account.email,
            access_token=decrypt_secret(account.access_token) or "",
            refresh_token=decrypt_secret(account.refresh_token),
            token_expiry=account.token_expiry,
        )
