"""
tokengate.services.account_service — Wallet Accounts
======================================================

Accounts are created on first wallet interaction and never deleted.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.constants import normalize_address
from tokengate.database.models import Account
from tokengate.errors import NotFound

logger = logging.getLogger(__name__)


def find_account(session: Session, address: str) -> Account | None:
    return session.scalar(select(Account).where(Account.address == normalize_address(address)))


def require_account(session: Session, address: str) -> Account:
    account = find_account(session, address)
    if account is None:
        raise NotFound("account", address)
    return account


def get_or_create_account(
    session: Session, address: str, handle: str | None = None,
) -> tuple[Account, bool]:
    """Fetch or insert the account for *address*.

    Returns (account, created).  Two requests racing to create the same
    account both end up with the single row the unique index allows.
    """
    address = normalize_address(address)
    account = find_account(session, address)
    if account is not None:
        if handle and account.handle != handle:
            account.handle = handle
        return account, False

    account = Account(address=address, handle=handle)
    try:
        with session.begin_nested():
            session.add(account)
            session.flush()
    except IntegrityError:
        account = session.scalar(select(Account).where(Account.address == address))
        return account, False

    logger.info("Account created: %s", address)
    return account, True


def account_dict(account: Account, *, display_name: str | None = None) -> dict:
    return {
        "id": account.id,
        "address": account.address,
        "handle": account.handle,
        "display_name": display_name or account.handle or account.address,
        "token_balance": str(account.token_balance),
        "achievement_points": account.achievement_points,
        "xp": account.xp,
        "level": account.level,
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }
