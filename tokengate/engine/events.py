"""
tokengate.engine.events — ActionEvent and ActionType
======================================================

The universal envelope for qualifying actions.  Every post, comment, vote
and challenge completion is normalised into an :class:`ActionEvent` before
the reward pipeline looks at it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

__all__ = ["ActionEvent", "ActionType", "REWARD_SETTING_KEYS"]


class ActionType(enum.StrEnum):
    """Actions that can produce a reward."""
    POST_CREATED = "post"
    COMMENT_CREATED = "comment"
    VOTE_CAST = "vote"
    CHALLENGE_COMPLETED = "challenge"


# Settings key holding the flat reward for each action type.  Challenge
# rewards come from the challenge row instead.
REWARD_SETTING_KEYS: dict[ActionType, str] = {
    ActionType.POST_CREATED: "reward.post_created",
    ActionType.COMMENT_CREATED: "reward.comment_created",
    ActionType.VOTE_CAST: "reward.first_vote_received",
}


@dataclass(frozen=True, slots=True)
class ActionEvent:
    """A recorded action, ready for reward calculation.

    Parameters
    ----------
    action_type : What happened.
    actor_address : Wallet that performed the action.
    beneficiary_address : Wallet that earns the reward (the author of the
        voted post for votes, the actor otherwise).
    entity_id : Primary key of the row the action created (post, comment,
        vote or challenge).
    community_id : Community whose balance the reward lands in, or None
        for the global balance.
    first_time : False for re-votes and repeat completions.
    amount : Explicit reward amount (challenge rewards); None means the
        flat policy amount for the action type.
    """

    action_type: ActionType
    actor_address: str
    beneficiary_address: str
    entity_id: int
    community_id: int | None = None
    first_time: bool = True
    amount: int | None = None

    @property
    def reference(self) -> str:
        """Idempotency key of the reward this action earns."""
        if self.action_type is ActionType.VOTE_CAST:
            return f"vote:{self.entity_id}:{self.actor_address}"
        if self.action_type is ActionType.CHALLENGE_COMPLETED:
            return f"challenge:{self.entity_id}:{self.beneficiary_address}"
        return f"{self.action_type.value}:{self.entity_id}"
