"""
tokengate.services.community_service — Community Creation & Listing
=====================================================================

Creating a community provisions its token:

* chain configured — the creator supplies an already-deployed ERC-20
  contract; the treasury mints ``initial_supply`` on it and the mint is
  recorded in the ledger with its tx hash.
* no chain — an off-chain token id (``offchain:<hex>``) is synthesized and
  balances live in the database only.

The mint happens *before* anything is written: if it fails no community
exists and the caller gets :class:`~tokengate.errors.ExternalUnavailable`
(or a contract error).  The creator is enrolled as the first member.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from tokengate.config import TokengateConfig
from tokengate.constants import normalize_address
from tokengate.database.engine import get_session
from tokengate.database.models import Community, TransactionKind
from tokengate.errors import ActionRejected
from tokengate.services import (
    account_service,
    achievement_service,
    balance_service,
    membership_service,
    settings_service,
)
from tokengate.services.token_contract import TokenGateway

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MAX_SYMBOL_LENGTH = 5


def _validate(name: str, token_name: str, token_symbol: str) -> tuple[str, str, str]:
    name = (name or "").strip()
    token_name = (token_name or "").strip()
    token_symbol = (token_symbol or "").strip().upper()
    if len(name) < MIN_NAME_LENGTH:
        raise ActionRejected(f"Community name must be at least {MIN_NAME_LENGTH} characters")
    if not token_name:
        raise ActionRejected("Token name is required")
    if not 1 <= len(token_symbol) <= MAX_SYMBOL_LENGTH:
        raise ActionRejected(f"Token symbol must be 1-{MAX_SYMBOL_LENGTH} characters")
    return name, token_name, token_symbol


def _provision_token(
    gateway: TokenGateway | None,
    token_contract: str | None,
    initial_supply: int,
) -> tuple[str, str | None]:
    """Return (token_contract, mint_tx_hash)."""
    if gateway is None:
        if token_contract:
            return normalize_address(token_contract), None
        return f"offchain:{uuid.uuid4().hex}", None

    if not token_contract:
        raise ActionRejected("token_contract is required when the chain is configured")
    token_contract = normalize_address(token_contract)
    if initial_supply <= 0:
        return token_contract, None
    tx_hash = gateway.contract(token_contract).mint(initial_supply)
    return token_contract, tx_hash


def create_community(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    creator_address: str,
    name: str,
    token_name: str,
    token_symbol: str,
    description: str | None = None,
    token_contract: str | None = None,
    initial_member_balance: int | None = None,
    required_token_amount: int = 0,
    initial_supply: int = 0,
) -> dict:
    """Create a community, provision its token and enroll the creator.

    Raises
    ------
    ActionRejected
        Invalid fields, or a name / token contract already in use.
    ExternalUnavailable, ContractCallFailed
        If the mint fails.  Nothing is created.
    """
    name, token_name, token_symbol = _validate(name, token_name, token_symbol)
    if required_token_amount < 0 or initial_supply < 0:
        raise ActionRejected("Token amounts must be >= 0")
    if initial_member_balance is not None and initial_member_balance < 0:
        raise ActionRejected("initial_member_balance must be >= 0")

    with get_session(engine) as session:
        if session.scalar(select(Community.id).where(Community.name == name)) is not None:
            raise ActionRejected(f"Community {name!r} already exists")

    contract, tx_hash = _provision_token(gateway, token_contract, initial_supply)

    with get_session(engine, expire_on_commit=False) as session:
        creator, _ = account_service.get_or_create_account(session, creator_address)
        if initial_member_balance is None:
            initial_member_balance = settings_service.get_int(
                session, "economy.initial_member_balance", 1000,
            )

        community = Community(
            name=name,
            description=description,
            token_name=token_name,
            token_symbol=token_symbol,
            token_contract=contract,
            initial_member_balance=initial_member_balance,
            required_token_amount=required_token_amount,
            creator_id=creator.id,
        )
        try:
            with session.begin_nested():
                session.add(community)
                session.flush()
        except IntegrityError as exc:
            if tx_hash:
                logger.error(
                    "Minted %d on %s (tx %s) but community %r was not created",
                    initial_supply, contract, tx_hash, name,
                )
            raise ActionRejected(
                f"Community name or token contract already in use: {name!r}"
            ) from exc

        if tx_hash:
            balance_service.record_transaction(
                session,
                from_address=config.system_address,
                to_address=gateway.sender,
                amount=initial_supply,
                kind=TransactionKind.MINT,
                reference=f"mint:community:{community.id}",
                tx_hash=tx_hash,
                community_id=community.id,
            )

        membership_service.join(session, creator, community)
        logger.info(
            "Community %r created by %s (token %s %s)",
            name, creator.address, token_symbol, contract,
        )
        data = community_dict(community, member_count=1)
        creator_address = creator.address

    data["achievement_failures"] = []
    data["achievements_unlocked"] = achievement_service.evaluate_account(
        engine, config, gateway, creator_address, data["achievement_failures"],
    )
    return data


def join_community(session, address: str, community_id: int) -> tuple[dict, bool]:
    """Enroll *address*; joining twice returns the existing membership."""
    community = membership_service.get_community(session, community_id)
    account, _ = account_service.get_or_create_account(session, address)
    membership, created = membership_service.join(session, account, community)
    return membership_service.membership_dict(membership, community), created


def list_communities(session) -> list[dict]:
    counts = membership_service.member_counts(session)
    communities = session.scalars(
        select(Community).order_by(Community.created_at.desc(), Community.id.desc())
    ).all()
    return [community_dict(c, member_count=counts.get(c.id, 0)) for c in communities]


def community_dict(community: Community, *, member_count: int = 0) -> dict:
    return {
        "id": community.id,
        "name": community.name,
        "description": community.description,
        "token_name": community.token_name,
        "token_symbol": community.token_symbol,
        "token_contract": community.token_contract,
        "initial_member_balance": str(community.initial_member_balance),
        "required_token_amount": str(community.required_token_amount),
        "creator_id": community.creator_id,
        "member_count": member_count,
        "created_at": community.created_at.isoformat() if community.created_at else None,
    }
