"""
tokengate.api.routes.accounts — Accounts, progress & earnings
===============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tokengate.api.deps import get_profile_directory, get_session
from tokengate.api.schemas import Address, parse_address
from tokengate.services import (
    account_service,
    achievement_service,
    ledger_service,
    membership_service,
)
from tokengate.services.profile_directory import ProfileDirectory, resolve_display_name

router = APIRouter(prefix="/accounts", tags=["accounts"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AccountCreate(BaseModel):
    address: Address
    handle: str | None = Field(default=None, max_length=100)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    body: AccountCreate,
    response: Response,
    session: Session = Depends(get_session),
):
    """Register a wallet.  Registering an existing wallet returns it (200)."""
    account, created = account_service.get_or_create_account(
        session, body.address, body.handle,
    )
    session.commit()
    if not created:
        response.status_code = status.HTTP_200_OK
    return {**account_service.account_dict(account), "created": created}


@router.get("/{address}")
def get_account(
    address: str,
    session: Session = Depends(get_session),
    directory: ProfileDirectory | None = Depends(get_profile_directory),
):
    account = account_service.require_account(session, parse_address(address))
    memberships = [
        membership_service.membership_dict(m, m.community)
        for m in membership_service.list_memberships(session, account.id)
    ]
    display_name = resolve_display_name(directory, account.address, account.handle)
    return {
        **account_service.account_dict(account, display_name=display_name),
        "memberships": memberships,
    }


@router.get("/{address}/progress")
def get_progress(address: str, session: Session = Depends(get_session)):
    """Level, XP and achievement completion counts."""
    return achievement_service.get_user_progress(session, parse_address(address))


@router.get("/{address}/earnings")
def get_earnings(
    address: str,
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
):
    """Balances everywhere plus the most recent ledger rows."""
    account = account_service.require_account(session, parse_address(address))
    memberships = [
        membership_service.membership_dict(m, m.community)
        for m in membership_service.list_memberships(session, account.id)
    ]
    transactions = ledger_service.transaction_history(session, account.address, limit)
    return {
        "address": account.address,
        "token_balance": str(account.token_balance),
        "memberships": memberships,
        "transactions": [ledger_service.transaction_dict(t) for t in transactions],
    }
