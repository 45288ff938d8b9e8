"""
tokengate.services.achievement_service — Achievement Unlocks & Progress
=========================================================================

Evaluation flow for one account::

    collect_statistics()  →  check_achievements()  →  unlock() per match

Statistics are recomputed from aggregate queries on every evaluation and
captured once, so every achievement is judged against the same snapshot.

Each unlock is one transaction:

    1. Insert AchievementUnlock (SAVEPOINT; duplicate → silent skip)
    2. Add points
    3. Add XP; every level gained credits ``economy.level_up_bonus``
    4. Credit the achievement's token reward
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.config import TokengateConfig
from tokengate.constants import xp_for_level
from tokengate.database.models import (
    Account,
    Achievement,
    AchievementUnlock,
    Comment,
    Community,
    Post,
    TransactionKind,
)
from tokengate.engine.achievements import AccountStatistics, check_achievements
from tokengate.engine.reward import RewardResult, calculate_level_up
from tokengate.errors import (
    ActionRejected,
    DuplicateIgnored,
    NotFound,
    RewardApplicationFailed,
)
from tokengate.services import account_service, ledger_service, settings_service
from tokengate.services.profile_directory import ProfileDirectory, resolve_display_name
from tokengate.services.token_contract import TokenGateway

logger = logging.getLogger(__name__)

_SYNC = {"synchronize_session": "fetch"}

UNLOCK_ACTION = "achievement"


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def collect_statistics(session: Session, account: Account) -> AccountStatistics:
    post_count = session.scalar(
        select(func.count()).select_from(Post).where(Post.author_id == account.id)
    ) or 0
    comment_count = session.scalar(
        select(func.count()).select_from(Comment).where(Comment.author_id == account.id)
    ) or 0
    like_count = session.scalar(
        select(func.coalesce(func.sum(Post.like_count), 0)).where(Post.author_id == account.id)
    ) or 0
    community_count = session.scalar(
        select(func.count()).select_from(Community).where(Community.creator_id == account.id)
    ) or 0
    token_balance = session.scalar(
        select(Account.token_balance).where(Account.id == account.id)
    ) or 0
    return AccountStatistics(
        post_count=post_count,
        comment_count=comment_count,
        like_count=int(like_count),
        community_count=community_count,
        token_balance=token_balance,
    )


def unlocked_ids(session: Session, account_id: int) -> set[int]:
    return set(session.scalars(
        select(AchievementUnlock.achievement_id)
        .where(AchievementUnlock.account_id == account_id)
    ).all())


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_account(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    address: str,
    failures: list[dict] | None = None,
) -> list[dict]:
    """Unlock every achievement *address* newly qualifies for.

    Returns the unlocked achievements as dicts.  Running it again with no
    new activity unlocks nothing.

    An unlock whose token credit cannot be settled on-chain is rolled back
    and skipped; its failed action is appended to *failures* so the caller
    can report it without failing the action that triggered evaluation.
    """
    with Session(engine) as session:
        account = account_service.find_account(session, address)
        if account is None:
            return []
        stats = collect_statistics(session, account)
        achievements = session.scalars(
            select(Achievement).where(Achievement.active.is_(True)).order_by(Achievement.id)
        ).all()
        candidates = check_achievements(achievements, stats, unlocked_ids(session, account.id))
        address = account.address

    unlocked = []
    for achievement_id in candidates:
        try:
            unlocked.append(unlock(engine, config, gateway, address, achievement_id))
        except DuplicateIgnored:
            continue
        except RewardApplicationFailed as exc:
            logger.warning("Achievement %d for %s not unlocked: %s", achievement_id, address, exc)
            if failures is not None:
                failures.append({**exc.action, "detail": str(exc), "retryable": True})
    return unlocked


def _insert_unlock(session: Session, account: Account, achievement: Achievement) -> None:
    try:
        with session.begin_nested():
            session.add(AchievementUnlock(account_id=account.id, achievement_id=achievement.id))
            session.flush()
    except IntegrityError as exc:
        raise DuplicateIgnored(
            f"{account.address} already holds achievement {achievement.id}"
        ) from exc


def _add_xp(
    session: Session,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    account: Account,
    xp_reward: int,
) -> int:
    """Add XP and apply any level-ups.  Returns the number of levels gained."""
    row = session.execute(
        update(Account)
        .where(Account.id == account.id)
        .values(xp=Account.xp + xp_reward)
        .returning(Account.xp, Account.level),
        execution_options=_SYNC,
    ).one()

    bonus = settings_service.get_int(session, "economy.level_up_bonus", 50)
    xp_per_level = settings_service.get_int(session, "economy.xp_per_level", 1000)
    result = calculate_level_up(
        row.level, row.xp, 0, bonus_per_level=bonus, xp_per_level=xp_per_level,
    )
    if not result.leveled_up:
        return 0

    moved = session.execute(
        update(Account)
        .where(Account.id == account.id, Account.level == result.old_level)
        .values(level=result.new_level)
        .returning(Account.level),
        execution_options=_SYNC,
    ).scalar_one_or_none()
    if moved is None:
        # A concurrent unlock already applied these level-ups.
        return 0

    for level in range(result.old_level + 1, result.new_level + 1):
        if bonus > 0:
            ledger_service.apply_credit(session, config, gateway, RewardResult(
                beneficiary_address=account.address,
                amount=bonus,
                kind=TransactionKind.LEVEL_UP,
                reference=f"level:{account.address}:{level}",
            ))
    logger.info(
        "%s leveled up %d → %d (xp=%d)",
        account.address, result.old_level, result.new_level, result.xp,
    )
    return result.new_level - result.old_level


def unlock(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    address: str,
    achievement_id: int,
) -> dict:
    """Unlock one achievement and apply its points, XP and token reward.

    Raises
    ------
    DuplicateIgnored
        If the account already holds it.  Nothing is applied twice.
    RewardApplicationFailed
        If settling a token credit on-chain fails.  Nothing is applied.
    """
    action = {"type": UNLOCK_ACTION, "achievement_id": achievement_id, "address": address}
    with ledger_service.reward_transaction(engine, action=action) as session:
        account = account_service.require_account(session, address)
        achievement = session.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFound("achievement", achievement_id)

        _insert_unlock(session, account, achievement)

        if achievement.points:
            session.execute(
                update(Account)
                .where(Account.id == account.id)
                .values(achievement_points=Account.achievement_points + achievement.points),
                execution_options=_SYNC,
            )

        levels = 0
        if achievement.xp_reward > 0:
            levels = _add_xp(session, config, gateway, account, achievement.xp_reward)

        if achievement.token_reward > 0:
            ledger_service.apply_credit(session, config, gateway, RewardResult(
                beneficiary_address=account.address,
                amount=achievement.token_reward,
                kind=TransactionKind.ACHIEVEMENT,
                reference=f"achievement:{achievement.id}:{account.address}",
            ))

        logger.info("Achievement unlocked: %s → %s", achievement.name, account.address)
        data = achievement_dict(achievement)
        data["levels_gained"] = levels
        return data


def retry_unlock(
    engine: Engine,
    config: TokengateConfig,
    gateway: TokenGateway | None,
    address: str,
    achievement_id: int,
) -> dict:
    """Unlock an achievement whose settlement failed during evaluation.

    The account must still qualify against a fresh statistics snapshot.

    Raises
    ------
    ActionRejected
        If the account does not meet the achievement's criterion.
    DuplicateIgnored
        If the account already holds it.
    """
    with Session(engine) as session:
        account = account_service.require_account(session, address)
        achievement = session.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFound("achievement", achievement_id)
        held = unlocked_ids(session, account.id)
        if achievement.id in held:
            raise DuplicateIgnored(f"{account.address} already holds achievement {achievement.id}")
        stats = collect_statistics(session, account)
        if not check_achievements([achievement], stats, held):
            raise ActionRejected(f"{account.address} does not qualify for achievement {achievement.id}")
        address = account.address

    return unlock(engine, config, gateway, address, achievement_id)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

def achievement_dict(achievement: Achievement) -> dict:
    return {
        "id": achievement.id,
        "name": achievement.name,
        "description": achievement.description,
        "category": achievement.category,
        "icon": achievement.icon,
        "criterion_kind": achievement.criterion_kind,
        "criterion_threshold": str(achievement.criterion_threshold),
        "points": achievement.points,
        "xp_reward": achievement.xp_reward,
        "token_reward": str(achievement.token_reward),
        "active": achievement.active,
    }


def list_achievements(session: Session, *, include_inactive: bool = False) -> list[Achievement]:
    stmt = select(Achievement).order_by(Achievement.category, Achievement.id)
    if not include_inactive:
        stmt = stmt.where(Achievement.active.is_(True))
    return list(session.scalars(stmt).all())


def get_user_progress(session: Session, address: str) -> dict:
    """Level, XP and achievement completion for one account."""
    account = account_service.require_account(session, address)
    xp_per_level = settings_service.get_int(session, "economy.xp_per_level", 1000)
    held = unlocked_ids(session, account.id)
    achievements = list_achievements(session)
    stats = collect_statistics(session, account)

    items = []
    for achievement in achievements:
        item = achievement_dict(achievement)
        item["is_completed"] = achievement.id in held
        items.append(item)

    return {
        "address": account.address,
        "level": account.level,
        "xp": account.xp,
        "next_level_xp": xp_for_level(account.level, xp_per_level),
        "achievement_points": account.achievement_points,
        "statistics": stats.as_dict(),
        "achievements": items,
        "completed_count": sum(1 for item in items if item["is_completed"]),
        "total_count": len(items),
    }


def get_leaderboard(
    session: Session,
    directory: ProfileDirectory | None = None,
    *,
    limit: int = 10,
    offset: int = 0,
) -> list[dict]:
    """Accounts ranked by achievement points, balance as tie-breaker."""
    accounts = session.scalars(
        select(Account)
        .order_by(
            Account.achievement_points.desc(),
            Account.token_balance.desc(),
            Account.id,
        )
        .limit(limit)
        .offset(offset)
    ).all()
    if not accounts:
        return []

    rows = session.execute(
        select(AchievementUnlock.account_id, Achievement)
        .join(Achievement, Achievement.id == AchievementUnlock.achievement_id)
        .where(AchievementUnlock.account_id.in_([a.id for a in accounts]))
        .order_by(AchievementUnlock.unlocked_at, Achievement.id)
    ).all()
    by_account: dict[int, list[dict]] = {}
    for account_id, achievement in rows:
        by_account.setdefault(account_id, []).append({
            "id": achievement.id,
            "name": achievement.name,
            "description": achievement.description,
            "icon": achievement.icon,
            "points": achievement.points,
        })

    return [
        {
            "rank": offset + i + 1,
            "address": account.address,
            "display_name": resolve_display_name(directory, account.address, account.handle),
            "achievement_points": account.achievement_points,
            "level": account.level,
            "token_balance": str(account.token_balance),
            "achievements": by_account.get(account.id, []),
        }
        for i, account in enumerate(accounts)
    ]
