"""
tokengate.engine.reward — Reward Calculation Pipeline
=======================================================

Pure calculation.  No database I/O, no chain I/O inside the engine.

Pipeline stages:
  ActionEvent → First-time filter → Policy amount → RewardResult

Reward amounts are flat policy values per action type; content quality
never influences them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tokengate.constants import XP_PER_LEVEL, levels_gained
from tokengate.database.models import TransactionKind
from tokengate.engine.events import ActionEvent, ActionType

logger = logging.getLogger(__name__)

__all__ = [
    "LevelUpResult",
    "RewardPolicy",
    "RewardResult",
    "calculate_level_up",
    "calculate_reward",
]


# ---------------------------------------------------------------------------
# Policy — flat amounts per action
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardPolicy:
    post_created: int = 1
    comment_created: int = 1
    first_vote_received: int = 1

    def amount_for(self, action_type: ActionType) -> int:
        return {
            ActionType.POST_CREATED: self.post_created,
            ActionType.COMMENT_CREATED: self.comment_created,
            ActionType.VOTE_CAST: self.first_vote_received,
        }.get(action_type, 0)


# ---------------------------------------------------------------------------
# RewardResult — output of the pipeline
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardResult:
    """A balance delta ready to be applied by the reward service."""

    beneficiary_address: str
    amount: int
    kind: TransactionKind
    reference: str
    community_id: int | None = None

    def as_dict(self) -> dict:
        return {
            "beneficiary": self.beneficiary_address,
            "amount": str(self.amount),
            "kind": self.kind.value,
            "reference": self.reference,
            "community_id": self.community_id,
        }


def calculate_reward(event: ActionEvent, policy: RewardPolicy) -> RewardResult | None:
    """Map an action onto the reward it earns, or None if it earns nothing.

    Re-votes and repeat challenge completions never earn anything.
    """
    if not event.first_time:
        return None

    if event.action_type is ActionType.CHALLENGE_COMPLETED:
        amount = event.amount or 0
        kind = TransactionKind.CHALLENGE_COMPLETION
    else:
        amount = event.amount if event.amount is not None else policy.amount_for(event.action_type)
        kind = TransactionKind.REWARD

    if amount <= 0:
        return None

    return RewardResult(
        beneficiary_address=event.beneficiary_address,
        amount=amount,
        kind=kind,
        reference=event.reference,
        community_id=event.community_id,
    )


# ---------------------------------------------------------------------------
# Level-up — XP threshold is current level × xp_per_level
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LevelUpResult:
    old_level: int
    new_level: int
    xp: int
    bonus: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def calculate_level_up(
    level: int,
    xp: int,
    xp_delta: int,
    *,
    bonus_per_level: int,
    xp_per_level: int = XP_PER_LEVEL,
) -> LevelUpResult:
    """Apply *xp_delta* to a cumulative XP total and count level-ups.

    Every level gained is worth *bonus_per_level* tokens.
    """
    new_xp = xp + max(xp_delta, 0)
    gained = levels_gained(level, new_xp, xp_per_level)
    return LevelUpResult(
        old_level=level,
        new_level=level + gained,
        xp=new_xp,
        bonus=gained * bonus_per_level,
    )
