"""
tokengate.services.membership_service — Membership Registry
=============================================================

At most one membership per (account, community), enforced by
``uq_memberships_account_community``.  Joining twice is a successful
no-op that returns the existing row.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.database.models import Account, Community, Membership
from tokengate.errors import DuplicateIgnored, NotFound

logger = logging.getLogger(__name__)


def get_community(session: Session, community_id: int) -> Community:
    community = session.get(Community, community_id)
    if community is None:
        raise NotFound("community", community_id)
    return community


def find_membership(session: Session, account_id: int, community_id: int) -> Membership | None:
    return session.scalar(
        select(Membership).where(
            Membership.account_id == account_id,
            Membership.community_id == community_id,
        )
    )


def _insert_membership(session: Session, account: Account, community: Community) -> Membership:
    membership = Membership(
        account_id=account.id,
        community_id=community.id,
        balance=community.initial_member_balance,
    )
    try:
        with session.begin_nested():
            session.add(membership)
            session.flush()
    except IntegrityError as exc:
        raise DuplicateIgnored(
            f"{account.address} is already a member of {community.name}"
        ) from exc
    return membership


def join(session: Session, account: Account, community: Community) -> tuple[Membership, bool]:
    """Enroll *account* in *community*.

    Returns (membership, created).  The starting balance is the
    community's ``initial_member_balance``.
    """
    existing = find_membership(session, account.id, community.id)
    if existing is not None:
        return existing, False

    try:
        membership = _insert_membership(session, account, community)
    except DuplicateIgnored:
        # Lost a race with a concurrent join of the same pair.
        return find_membership(session, account.id, community.id), False

    logger.info(
        "%s joined %s with %d %s",
        account.address, community.name,
        community.initial_member_balance, community.token_symbol,
    )
    return membership, True


def member_count(session: Session, community_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(Membership)
        .where(Membership.community_id == community_id)
    ) or 0


def member_counts(session: Session) -> dict[int, int]:
    """community_id → member count, for list views."""
    rows = session.execute(
        select(Membership.community_id, func.count().label("cnt"))
        .group_by(Membership.community_id)
    ).all()
    return {row.community_id: row.cnt for row in rows}


def list_memberships(session: Session, account_id: int) -> list[Membership]:
    return list(session.scalars(
        select(Membership)
        .where(Membership.account_id == account_id)
        .order_by(Membership.joined_at, Membership.id)
    ).all())


def membership_dict(membership: Membership, community: Community) -> dict:
    return {
        "community_id": community.id,
        "community_name": community.name,
        "token_symbol": community.token_symbol,
        "balance": str(membership.balance),
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }
