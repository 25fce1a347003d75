# app/routes/gmail_accounts.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from app.dependencies.auth import get_current_user
from app.dependencies.rate_limit import require_rate_limit
from app.dependencies.services import get_gmail_account_service
from app.models.user import User
from app.schemas.gmail_account import GmailAccountListOut, GmailAccountOut, GmailConnectIn
from app.services.gmail_accounts import GmailAccountService

router = APIRouter(prefix="/gmail-accounts", tags=["gmail-accounts"])


@router.get("", response_model=GmailAccountListOut)
def list_gmail_accounts(
    user: User = Depends(get_current_user),
    service: GmailAccountService = Depends(get_gmail_account_service),
):
    return service.list_accounts(user.id)


@router.post(
    "/connect",
    response_model=GmailAccountOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit("gmail_connect", limit=10, window_seconds=3600))],
)
def connect_gmail_account(
    payload: GmailConnectIn,
    user: User = Depends(get_current_user),
    service: GmailAccountService = Depends(get_gmail_account_service),
):
    return service.connect(user.id, payload.token, is_primary=payload.is_primary)


@router.patch("/{account_id}/primary", response_model=GmailAccountOut)
def set_primary_gmail_account(
    account_id: int,
    user: User = Depends(get_current_user),
    service: GmailAccountService = Depends(get_gmail_account_service),
):
    return service.set_primary(user.id, account_id)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def disconnect_gmail_account(
    account_id: int,
    user: User = Depends(get_current_user),
    service: GmailAccountService = Depends(get_gmail_account_service),
):
    service.disconnect(user.id, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
