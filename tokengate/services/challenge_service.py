"""
tokengate.services.challenge_service — Challenges & Completion Rewards
========================================================================

Progress is stored as 0-100.  Reaching 100 completes the challenge:

    UPDATE challenge_participations SET completed = TRUE
    WHERE id = :id AND completed IS FALSE AND progress >= 100

runs in the same transaction as the reward credit, so only the request
whose UPDATE matched pays the reward and a failed reward leaves the row
incomplete (and retryable).  Once completed, progress stays at 100.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.config import TokengateConfig
from tokengate.database.engine import get_session
from tokengate.database.models import Account, Challenge, ChallengeParticipation
from tokengate.engine.events import ActionEvent, ActionType
from tokengate.engine.reward import RewardPolicy, calculate_reward
from tokengate.errors import ActionRejected, DuplicateIgnored, NotFound
from tokengate.services import account_service, achievement_service, ledger_service
from tokengate.services.ledger_service import ActionOutcome
from tokengate.services.token_contract import TokenGateway

logger = logging.getLogger(__name__)

COMPLETE = 100

_SYNC = {"synchronize_session": "fetch"}


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_open(challenge: Challenge, now: datetime | None = None) -> bool:
    now = now or datetime.now(UTC)
    end = _aware(challenge.end_date)
    return challenge.is_active and (end is None or end > now)


def get_challenge(session: Session, challenge_id: int) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFound("challenge", challenge_id)
    return challenge


def create_challenge(
    session: Session,
    *,
    title: str,
    description: str | None = None,
    token_reward: int = 0,
    end_date: datetime | None = None,
    is_active: bool = True,
) -> Challenge:
    title = (title or "").strip()
    if not title:
        raise ActionRejected("Challenge title is required")
    if token_reward < 0:
        raise ActionRejected("token_reward must be >= 0")
    challenge = Challenge(
        title=title,
        description=description,
        token_reward=token_reward,
        end_date=end_date,
        is_active=is_active,
    )
    session.add(challenge)
    session.flush()
    logger.info("Challenge %d created: %s (reward %d)", challenge.id, title, token_reward)
    return challenge


def list_open_challenges(session: Session) -> list[Challenge]:
    challenges = session.scalars(
        select(Challenge)
        .where(Challenge.is_active.is_(True))
        .order_by(Challenge.end_date.is_(None), Challenge.end_date, Challenge.id)
    ).all()
    now = datetime.now(UTC)
    return [c for c in challenges if is_open(c, now)]


def find_participation(
    session: Session, account_id: int, challenge_id: int,
) -> ChallengeParticipation | None:
    return session.scalar(
        select(ChallengeParticipation).where(
            ChallengeParticipation.account_id == account_id,
            ChallengeParticipation.challenge_id == challenge_id,
        )
    )


def participations_for(session: Session, account_id: int) -> dict[int, ChallengeParticipation]:
    rows = session.scalars(
        select(ChallengeParticipation).where(ChallengeParticipation.account_id == account_id)
    ).all()
    return {p.challenge_id: p for p in rows}


def challenge_dict(
    challenge: Challenge, participation: ChallengeParticipation | None = None,
) -> dict:
    data = {
        "id": challenge.id,
        "title": challenge.title,
        "description": challenge.description,
        "token_reward": str(challenge.token_reward),
        "is_active": challenge.is_active,
        "end_date": challenge.end_date.isoformat() if challenge.end_date else None,
    }
    if participation is not None:
        data["progress"] = participation.progress
        data["completed"] = participation.completed
    return data


# ---------------------------------------------------------------------------
# Progress & completion
# ---------------------------------------------------------------------------

def _upsert_participation(
    session: Session, account: Account, challenge: Challenge, progress: int,
) -> ChallengeParticipation:
    participation = find_participation(session, account.id, challenge.id)
    if participation is None:
        try:
            with session.begin_nested():
                participation = ChallengeParticipation(
                    account_id=account.id, challenge_id=challenge.id, progress=progress,
                )
                session.add(participation)
                session.flush()
            return participation
        except IntegrityError:
            participation = find_participation(session, account.id, challenge.id)

    if not participation.completed:
        participation.progress = progress
        session.flush()
    return participation


def _complete(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    address: str,
    participation_id: int,
    challenge_id: int,
    token_reward: int,
    action: dict,
) -> ActionOutcome:
    event = ActionEvent(
        action_type=ActionType.CHALLENGE_COMPLETED,
        actor_address=address,
        beneficiary_address=address,
        entity_id=challenge_id,
        amount=token_reward,
    )
    reward = calculate_reward(event, RewardPolicy())
    outcome = ActionOutcome(action=action)

    with ledger_service.reward_transaction(engine, action=action) as session:
        flipped = session.execute(
            update(ChallengeParticipation)
            .where(
                ChallengeParticipation.id == participation_id,
                ChallengeParticipation.completed.is_(False),
                ChallengeParticipation.progress >= COMPLETE,
            )
            .values(completed=True, completed_at=datetime.now(UTC))
            .returning(ChallengeParticipation.id),
            execution_options=_SYNC,
        ).scalar_one_or_none()

        if flipped is not None:
            outcome.reward = reward
            if reward is not None:
                try:
                    ledger_service.apply_credit(session, config, gateway, reward)
                    outcome.reward_status = "applied"
                except DuplicateIgnored:
                    outcome.reward_status = "duplicate"
            logger.info("Challenge %d completed by %s", challenge_id, address)

    if flipped is not None:
        action["completed"] = True
    outcome.achievements_unlocked = achievement_service.evaluate_account(
        engine, config, gateway, address, outcome.achievement_failures,
    )
    return outcome


def record_progress(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    *,
    address: str,
    challenge_id: int,
    progress: int,
) -> ActionOutcome:
    """Store *address*'s progress; reaching 100 completes and rewards once.

    Raises
    ------
    ActionRejected
        Progress outside 0-100, or the challenge is closed.
    NotFound
        Unknown challenge.
    RewardApplicationFailed
        The completion reward could not be settled; progress is kept and
        the completion can be retried.
    """
    if not 0 <= progress <= COMPLETE:
        raise ActionRejected(f"Progress must be between 0 and {COMPLETE}")

    with get_session(engine, expire_on_commit=False) as session:
        account, _ = account_service.get_or_create_account(session, address)
        challenge = get_challenge(session, challenge_id)
        if not is_open(challenge):
            raise ActionRejected(f"Challenge {challenge_id} is not open")
        participation = _upsert_participation(session, account, challenge, progress)
        action = {
            "type": ActionType.CHALLENGE_COMPLETED.value,
            "challenge_id": challenge.id,
            "address": account.address,
            "progress": participation.progress,
            "completed": participation.completed,
        }
        pending = participation.progress >= COMPLETE and not participation.completed
        participation_id = participation.id
        token_reward = challenge.token_reward
        address = account.address

    if not pending:
        return ActionOutcome(action=action)
    return _complete(
        engine, config, gateway,
        address=address,
        participation_id=participation_id,
        challenge_id=challenge_id,
        token_reward=token_reward,
        action=action,
    )


def retry_completion(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    address: str,
    challenge_id: int,
) -> ActionOutcome:
    """Re-run a completion whose reward failed.  No-op once completed."""
    with get_session(engine) as session:
        account = account_service.require_account(session, address)
        challenge = get_challenge(session, challenge_id)
        participation = find_participation(session, account.id, challenge.id)
        if participation is None:
            raise NotFound("challenge participation", f"{challenge_id}:{account.address}")
        action = {
            "type": ActionType.CHALLENGE_COMPLETED.value,
            "challenge_id": challenge.id,
            "address": account.address,
            "progress": participation.progress,
            "completed": participation.completed,
            "retry": True,
        }
        if participation.progress < COMPLETE:
            raise ActionRejected(f"Challenge {challenge_id} is not at {COMPLETE}% yet")
        if participation.completed:
            return ActionOutcome(action=action, reward_status="duplicate")
        participation_id = participation.id
        token_reward = challenge.token_reward
        address = account.address

    return _complete(
        engine, config, gateway,
        address=address,
        participation_id=participation_id,
        challenge_id=challenge_id,
        token_reward=token_reward,
        action=action,
    )
