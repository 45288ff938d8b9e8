"""
tokengate.services.balance_service — Balance Store
====================================================

Every balance change is ONE SQL statement::

    UPDATE accounts SET token_balance = token_balance + :amount
    WHERE address = :address
    RETURNING token_balance

Debits add ``AND token_balance >= :amount`` so two concurrent debits can
never take a balance negative, and two concurrent credits can never lose
an update.  There is no read-then-write anywhere in this module.

All functions take the caller's :class:`Session`; the caller owns the
transaction, which is how a credit and its ledger row commit (or roll
back) together.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.database.models import Account, Membership, TokenTransaction, TransactionKind
from tokengate.errors import DuplicateIgnored, InsufficientFunds, NotFound

logger = logging.getLogger(__name__)

_SYNC = {"synchronize_session": "fetch"}


def _check_amount(amount: int) -> int:
    amount = int(amount)
    if amount <= 0:
        raise ValueError(f"Token amount must be positive, got {amount}")
    return amount


def _account_id_subquery(address: str):
    return select(Account.id).where(Account.address == address).scalar_subquery()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_balance(session: Session, address: str, community_id: int | None = None) -> int:
    """Current balance, global or in one community.

    Raises
    ------
    NotFound
        If the account (or its membership in *community_id*) doesn't exist.
    """
    if community_id is None:
        balance = session.scalar(
            select(Account.token_balance).where(Account.address == address)
        )
        if balance is None:
            raise NotFound("account", address)
        return balance

    balance = session.scalar(
        select(Membership.balance).where(
            Membership.community_id == community_id,
            Membership.account_id == _account_id_subquery(address),
        )
    )
    if balance is None:
        raise NotFound("membership", f"{address}@{community_id}")
    return balance


# ---------------------------------------------------------------------------
# Atomic mutations
# ---------------------------------------------------------------------------

def credit(
    session: Session, address: str, amount: int, *, community_id: int | None = None,
) -> int:
    """Atomically add *amount* and return the new balance."""
    amount = _check_amount(amount)
    if community_id is None:
        stmt = (
            update(Account)
            .where(Account.address == address)
            .values(token_balance=Account.token_balance + amount)
            .returning(Account.token_balance)
        )
    else:
        stmt = (
            update(Membership)
            .where(
                Membership.community_id == community_id,
                Membership.account_id == _account_id_subquery(address),
            )
            .values(balance=Membership.balance + amount)
            .returning(Membership.balance)
        )

    new_balance = session.execute(stmt, execution_options=_SYNC).scalar_one_or_none()
    if new_balance is None:
        kind = "account" if community_id is None else "membership"
        raise NotFound(kind, address if community_id is None else f"{address}@{community_id}")
    return new_balance


def debit(
    session: Session, address: str, amount: int, *, community_id: int | None = None,
) -> int:
    """Atomically subtract *amount* and return the new balance.

    Raises
    ------
    InsufficientFunds
        If the balance is lower than *amount*.  Nothing changes.
    NotFound
        If the account or membership doesn't exist.
    """
    amount = _check_amount(amount)
    if community_id is None:
        stmt = (
            update(Account)
            .where(Account.address == address, Account.token_balance >= amount)
            .values(token_balance=Account.token_balance - amount)
            .returning(Account.token_balance)
        )
    else:
        stmt = (
            update(Membership)
            .where(
                Membership.community_id == community_id,
                Membership.account_id == _account_id_subquery(address),
                Membership.balance >= amount,
            )
            .values(balance=Membership.balance - amount)
            .returning(Membership.balance)
        )

    new_balance = session.execute(stmt, execution_options=_SYNC).scalar_one_or_none()
    if new_balance is None:
        available = get_balance(session, address, community_id)  # raises NotFound
        raise InsufficientFunds(address, amount, available)
    return new_balance


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def record_transaction(
    session: Session,
    *,
    from_address: str,
    to_address: str,
    amount: int,
    kind: TransactionKind,
    reference: str,
    tx_hash: str | None = None,
    community_id: int | None = None,
) -> TokenTransaction:
    """Append a ledger row.

    Raises
    ------
    DuplicateIgnored
        If a row with the same *reference* already exists.  The SAVEPOINT
        is rolled back; the caller's transaction is still usable.
    """
    row = TokenTransaction(
        from_address=from_address,
        to_address=to_address,
        amount=_check_amount(amount),
        kind=kind.value,
        reference=reference,
        tx_hash=tx_hash,
        community_id=community_id,
    )
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError as exc:
        raise DuplicateIgnored(f"Ledger reference already recorded: {reference}") from exc
    return row


def transfer(
    session: Session,
    *,
    from_address: str,
    to_address: str,
    amount: int,
    reference: str,
    community_id: int | None = None,
) -> TokenTransaction:
    """Move tokens between two accounts with a single ledger row."""
    if from_address == to_address:
        raise ValueError("Cannot transfer to the same account")
    row = record_transaction(
        session,
        from_address=from_address,
        to_address=to_address,
        amount=amount,
        kind=TransactionKind.TRANSFER,
        reference=reference,
        community_id=community_id,
    )
    debit(session, from_address, amount, community_id=community_id)
    credit(session, to_address, amount, community_id=community_id)
    logger.info(
        "Transfer %d %s → %s (ref=%s, community=%s)",
        row.amount, from_address, to_address, reference, community_id,
    )
    return row
