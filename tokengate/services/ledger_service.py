"""
tokengate.services.ledger_service — Reward Application Boundary
=================================================================

One reward = one transaction:

    1. Insert the ledger row (unique ``reference`` → duplicate guard)
    2. Atomically credit the beneficiary's balance
    3. Settle on-chain (optional) and stamp the tx hash on the ledger row
    4. Commit

If step 3 fails or times out, steps 1-2 roll back and the caller gets
:class:`~tokengate.errors.RewardApplicationFailed`.  The content mutation
that earned the reward was committed earlier and is never touched here.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tokengate.config import TokengateConfig
from tokengate.database.models import Community, TokenTransaction
from tokengate.engine.reward import RewardResult
from tokengate.errors import ExternalUnavailable, RewardApplicationFailed
from tokengate.services import balance_service
from tokengate.services.token_contract import ContractCallFailed, TokenGateway

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    """What a qualifying action produced."""

    action: dict
    reward: RewardResult | None = None
    reward_status: str = "none"  # none | applied | duplicate
    achievements_unlocked: list[dict] = field(default_factory=list)
    # Unlocks whose token settlement failed; retry with action_type "achievement".
    achievement_failures: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "action": self.action,
            "reward": self.reward.as_dict() if self.reward else None,
            "reward_status": self.reward_status,
            "achievements_unlocked": self.achievements_unlocked,
            "achievement_failures": self.achievement_failures,
        }


@contextmanager
def reward_transaction(engine: Engine, *, action: dict):
    """Yield a session whose work commits as one reward transaction.

    Chain failures are converted into :class:`RewardApplicationFailed`
    carrying *action*; everything else propagates unchanged after rollback.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except (ExternalUnavailable, ContractCallFailed) as exc:
        session.rollback()
        logger.warning("Reward for %s not applied: %s", action, exc)
        raise RewardApplicationFailed(f"Reward not applied: {exc}", action=action) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def settlement_token(
    session: Session, config: TokengateConfig, community_id: int | None,
) -> str | None:
    """Contract to settle a reward on, or None to keep it off-chain."""
    if not config.settle_rewards_on_chain:
        return None
    if community_id is None:
        return config.platform_token_address
    contract = session.scalar(
        select(Community.token_contract).where(Community.id == community_id)
    )
    if contract and contract.startswith("0x"):
        return contract
    return None


def apply_credit(
    session: Session,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    reward: RewardResult,
) -> TokenTransaction:
    """Ledger row + balance credit + optional on-chain transfer.

    Raises
    ------
    DuplicateIgnored
        If this reward's reference was already recorded.
    ExternalUnavailable, ContractCallFailed
        If on-chain settlement fails.  Use inside :func:`reward_transaction`.
    """
    row = balance_service.record_transaction(
        session,
        from_address=config.system_address,
        to_address=reward.beneficiary_address,
        amount=reward.amount,
        kind=reward.kind,
        reference=reward.reference,
        community_id=reward.community_id,
    )
    new_balance = balance_service.credit(
        session, reward.beneficiary_address, reward.amount,
        community_id=reward.community_id,
    )

    token = settlement_token(session, config, reward.community_id)
    if token and gateway is not None:
        row.tx_hash = gateway.contract(token).transfer(
            reward.beneficiary_address, reward.amount,
        )

    logger.info(
        "Reward %s: +%d to %s (community=%s) → %d",
        reward.reference, reward.amount, reward.beneficiary_address,
        reward.community_id, new_balance,
    )
    return row


def transaction_dict(tx: TokenTransaction) -> dict:
    return {
        "id": tx.id,
        "from_address": tx.from_address,
        "to_address": tx.to_address,
        "amount": str(tx.amount),
        "kind": tx.kind,
        "reference": tx.reference,
        "tx_hash": tx.tx_hash,
        "community_id": tx.community_id,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }


def transaction_history(session: Session, address: str, limit: int = 50) -> list[TokenTransaction]:
    """Most recent ledger rows involving *address*, newest first."""
    return list(session.scalars(
        select(TokenTransaction)
        .where(
            (TokenTransaction.to_address == address)
            | (TokenTransaction.from_address == address)
        )
        .order_by(TokenTransaction.id.desc())
        .limit(limit)
    ).all())
