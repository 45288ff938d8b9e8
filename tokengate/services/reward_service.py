"""
tokengate.services.reward_service — Action → Reward Orchestration
===================================================================

Every qualifying action runs in three steps:

    1. Content mutation            (own transaction, committed first)
    2. Reward application          (ledger_service.reward_transaction)
    3. Achievement evaluation      (achievement_service.evaluate_account)

If step 2 fails on-chain the action stays recorded and
:class:`~tokengate.errors.RewardApplicationFailed` is raised with the action
attached.  :func:`retry_reward` re-runs step 2 for that action only; the
ledger's unique reference makes a retry of an already-applied reward a
harmless duplicate.

An achievement unlocked in step 3 whose payout fails is rolled back on its
own and listed in ``achievement_failures``; the action and its reward
stand.  Retry it with action type ``achievement``.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select

from tokengate.config import TokengateConfig
from tokengate.database.engine import get_session
from tokengate.database.models import Comment, Post, Vote
from tokengate.engine.events import ActionEvent, ActionType
from tokengate.engine.reward import RewardResult, calculate_reward
from tokengate.errors import ActionRejected, DuplicateIgnored, NotFound
from tokengate.services import (
    account_service,
    achievement_service,
    challenge_service,
    content_service,
    ledger_service,
    membership_service,
    settings_service,
)
from tokengate.services.ledger_service import ActionOutcome
from tokengate.services.token_contract import TokenGateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reward step
# ---------------------------------------------------------------------------

def apply_reward(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    reward: RewardResult,
    *,
    action: dict,
) -> str:
    """Apply one reward in its own transaction.

    Returns ``"applied"`` or ``"duplicate"``.  Raises
    :class:`RewardApplicationFailed` if on-chain settlement fails.
    """
    try:
        with ledger_service.reward_transaction(engine, action=action) as session:
            ledger_service.apply_credit(session, config, gateway, reward)
    except DuplicateIgnored:
        logger.info("Reward %s already applied", reward.reference)
        return "duplicate"
    return "applied"


def _finish(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    event: ActionEvent,
    reward: RewardResult | None,
    action: dict,
    evaluate: list[str],
) -> ActionOutcome:
    outcome = ActionOutcome(action=action, reward=reward)
    if reward is not None:
        outcome.reward_status = apply_reward(engine, config, gateway, reward, action=action)

    for address in dict.fromkeys(evaluate):
        outcome.achievements_unlocked.extend(
            achievement_service.evaluate_account(
                engine, config, gateway, address, outcome.achievement_failures,
            )
        )
    logger.debug("Processed %s %d: %s", event.action_type, event.entity_id, outcome.reward_status)
    return outcome


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def process_post(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    author_address: str,
    content: str,
    community_id: int | None = None,
    is_token_gated: bool = False,
    required_token_amount: int | None = None,
) -> ActionOutcome:
    with get_session(engine, expire_on_commit=False) as session:
        author, _ = account_service.get_or_create_account(session, author_address)
        community = None
        if community_id is not None:
            community = membership_service.get_community(session, community_id)
        post = content_service.create_post(
            session, author,
            content=content,
            community=community,
            is_token_gated=is_token_gated,
            required_token_amount=required_token_amount,
        )
        event = ActionEvent(
            action_type=ActionType.POST_CREATED,
            actor_address=author.address,
            beneficiary_address=author.address,
            entity_id=post.id,
            community_id=post.community_id,
        )
        policy = settings_service.get_reward_policy(session)
        action = {"type": event.action_type.value, "post": content_service.post_dict(post)}

    reward = calculate_reward(event, policy)
    return _finish(engine, config, gateway, event, reward, action, [event.actor_address])


def process_comment(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    author_address: str,
    post_id: int,
    content: str,
) -> ActionOutcome:
    with get_session(engine, expire_on_commit=False) as session:
        author, _ = account_service.get_or_create_account(session, author_address)
        comment = content_service.create_comment(session, author, post_id, content)
        post = session.get(Post, post_id)
        event = ActionEvent(
            action_type=ActionType.COMMENT_CREATED,
            actor_address=author.address,
            beneficiary_address=author.address,
            entity_id=comment.id,
            community_id=_reward_community(session, post, author.id),
        )
        policy = settings_service.get_reward_policy(session)
        action = {"type": event.action_type.value, "comment": content_service.comment_dict(comment)}

    reward = calculate_reward(event, policy)
    return _finish(engine, config, gateway, event, reward, action, [event.actor_address])


def process_vote(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    voter_address: str,
    post_id: int,
    value: int,
) -> ActionOutcome:
    with get_session(engine, expire_on_commit=False) as session:
        voter, _ = account_service.get_or_create_account(session, voter_address)
        post, first_time = content_service.cast_vote(session, voter, post_id, value)
        event = ActionEvent(
            action_type=ActionType.VOTE_CAST,
            actor_address=voter.address,
            beneficiary_address=post.author.address,
            entity_id=post.id,
            community_id=_reward_community(session, post, post.author_id),
            first_time=first_time,
        )
        policy = settings_service.get_reward_policy(session)
        action = {
            "type": event.action_type.value,
            "post_id": post.id,
            "voter": voter.address,
            "value": value,
            "first_time": first_time,
            "curation_score": post.curation_score,
            "like_count": post.like_count,
        }

    reward = calculate_reward(event, policy)
    return _finish(
        engine, config, gateway, event, reward, action,
        [event.beneficiary_address, event.actor_address],
    )


def _reward_community(session, post: Post, beneficiary_id: int) -> int | None:
    """Community balance a reward tied to *post* lands in.

    Falls back to the global balance when the beneficiary holds no
    membership there.
    """
    if post.community_id is None:
        return None
    if membership_service.find_membership(session, beneficiary_id, post.community_id) is None:
        return None
    return post.community_id


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

def _rebuild_event(session, action_type: ActionType, entity_id: int, address: str | None) -> ActionEvent:
    if action_type is ActionType.POST_CREATED:
        post = content_service.get_post(session, entity_id)
        return ActionEvent(
            action_type=action_type,
            actor_address=post.author.address,
            beneficiary_address=post.author.address,
            entity_id=post.id,
            community_id=post.community_id,
        )

    if action_type is ActionType.COMMENT_CREATED:
        comment = session.get(Comment, entity_id)
        if comment is None:
            raise NotFound("comment", entity_id)
        post = session.get(Post, comment.post_id)
        return ActionEvent(
            action_type=action_type,
            actor_address=comment.author.address,
            beneficiary_address=comment.author.address,
            entity_id=comment.id,
            community_id=_reward_community(session, post, comment.author_id),
        )

    if action_type is ActionType.VOTE_CAST:
        if not address:
            raise ActionRejected("Retrying a vote reward needs the voter address")
        voter = account_service.require_account(session, address)
        post = content_service.get_post(session, entity_id)
        vote = session.scalar(
            select(Vote).where(Vote.post_id == post.id, Vote.account_id == voter.id)
        )
        if vote is None:
            raise NotFound("vote", f"{post.id}:{voter.address}")
        return ActionEvent(
            action_type=action_type,
            actor_address=voter.address,
            beneficiary_address=post.author.address,
            entity_id=post.id,
            community_id=_reward_community(session, post, post.author_id),
        )

    raise ActionRejected(f"Unsupported action type {action_type.value!r}")


def retry_reward(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    action_type: str,
    entity_id: int,
    *,
    address: str | None = None,
) -> ActionOutcome:
    """Re-apply only the reward of an already-recorded action.

    Never touches the content row.  A reward that was already applied
    comes back with ``reward_status == "duplicate"``.  An ``achievement``
    retry unlocks ``entity_id`` for *address* if it still qualifies.
    """
    if action_type == achievement_service.UNLOCK_ACTION:
        if not address:
            raise ActionRejected("Retrying an achievement needs the account address")
        outcome = ActionOutcome(action={
            "type": action_type, "achievement_id": entity_id, "address": address, "retry": True,
        })
        try:
            outcome.achievements_unlocked.append(
                achievement_service.retry_unlock(engine, config, gateway, address, entity_id)
            )
            outcome.reward_status = "applied"
        except DuplicateIgnored:
            outcome.reward_status = "duplicate"
        return outcome

    try:
        kind = ActionType(action_type)
    except ValueError:
        raise ActionRejected(f"Unknown action type {action_type!r}") from None

    if kind is ActionType.CHALLENGE_COMPLETED:
        if not address:
            raise ActionRejected("Retrying a challenge reward needs the participant address")
        return challenge_service.retry_completion(engine, config, gateway, address, entity_id)

    with get_session(engine) as session:
        event = _rebuild_event(session, kind, entity_id, address)
        policy = settings_service.get_reward_policy(session)

    reward = calculate_reward(event, policy)
    action = {"type": kind.value, "entity_id": entity_id, "retry": True}
    return _finish(
        engine, config, gateway, event, reward, action, [event.beneficiary_address],
    )
