"""
tokengate.database.seed — Default Settings & Achievement Seeder
=================================================================

Baseline settings and achievements seeded on first startup so the ledger
is immediately usable.

Idempotent — only inserts keys / achievement names that don't already
exist.  Rows edited by operators are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tokengate.database.models import Achievement, CriterionKind, Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "reward.post_created": (1, "reward", "Tokens credited to the author of a new post"),
    "reward.comment_created": (1, "reward", "Tokens credited to the author of a new comment"),
    "reward.first_vote_received": (
        1, "reward", "Tokens credited to a post's author on each first-time vote",
    ),
    "economy.min_vote_balance": (1, "economy", "Minimum balance required to vote"),
    "economy.min_post_balance": (0, "economy", "Minimum balance required to post"),
    "economy.initial_member_balance": (
        1000, "economy", "Default starting balance for members of a new community",
    ),
    "economy.level_up_bonus": (50, "economy", "Tokens credited on every level-up"),
    "economy.xp_per_level": (1000, "economy", "XP per level (threshold = level × this)"),
    "gating.balance_scope": (
        "community", "gating",
        "Balance checked for gated community posts: 'community' or 'global'",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Default achievement catalogue
# ---------------------------------------------------------------------------
DEFAULT_ACHIEVEMENTS: list[dict] = [
    {
        "name": "First Post",
        "description": "Publish your first post.",
        "category": "onboarding",
        "icon": "pen",
        "criterion_kind": CriterionKind.POST_COUNT.value,
        "criterion_threshold": 1,
        "points": 10,
        "xp_reward": 100,
        "token_reward": 10,
    },
    {
        "name": "Conversationalist",
        "description": "Leave 10 comments.",
        "category": "engagement",
        "icon": "message",
        "criterion_kind": CriterionKind.COMMENT_COUNT.value,
        "criterion_threshold": 10,
        "points": 25,
        "xp_reward": 250,
        "token_reward": 0,
    },
    {
        "name": "Crowd Favorite",
        "description": "Receive 25 likes across your posts.",
        "category": "engagement",
        "icon": "heart",
        "criterion_kind": CriterionKind.LIKE_COUNT.value,
        "criterion_threshold": 25,
        "points": 50,
        "xp_reward": 500,
        "token_reward": 25,
    },
    {
        "name": "Community Builder",
        "description": "Create a community.",
        "category": "onboarding",
        "icon": "users",
        "criterion_kind": CriterionKind.COMMUNITY_COUNT.value,
        "criterion_threshold": 1,
        "points": 50,
        "xp_reward": 500,
        "token_reward": 0,
    },
    {
        "name": "Prolific Contributor",
        "description": "Make 50 posts or comments.",
        "category": "engagement",
        "icon": "award",
        "criterion_kind": CriterionKind.CONTRIBUTION_COUNT.value,
        "criterion_threshold": 50,
        "points": 100,
        "xp_reward": 1000,
        "token_reward": 50,
    },
    {
        "name": "Token Holder",
        "description": "Hold 1000 tokens.",
        "category": "economy",
        "icon": "coins",
        "criterion_kind": CriterionKind.TOKEN_BALANCE.value,
        "criterion_threshold": 1000,
        "points": 75,
        "xp_reward": 0,
        "token_reward": 0,
    },
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)


def seed_default_achievements(engine: Engine) -> None:
    """Insert default achievements whose names don't yet exist."""
    with Session(engine) as session:
        existing = set(session.scalars(select(Achievement.name)).all())
        inserted = 0
        for fields in DEFAULT_ACHIEVEMENTS:
            if fields["name"] in existing:
                continue
            session.add(Achievement(**fields))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default achievements.", inserted)
