"""
tokengate.services.settings_service — Gameplay Tuning
=======================================================

Reward amounts, economy thresholds and the gating scope live in the
``settings`` table as JSON values.  Readers take the caller's session so a
request sees the values current when it runs; there is no cache to
invalidate.

Writes go through :func:`update_settings`, which validates every known key
before touching the table.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from tokengate.database.models import Setting
from tokengate.engine.events import REWARD_SETTING_KEYS, ActionType
from tokengate.engine.gating import BalanceScope
from tokengate.engine.reward import RewardPolicy

logger = logging.getLogger(__name__)


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"expected a non-negative integer, got {value!r}")
    return value


def _positive_int(value: Any) -> int:
    if _non_negative_int(value) == 0:
        raise ValueError("expected a positive integer")
    return value


def _scope(value: Any) -> str:
    return BalanceScope(value).value


VALIDATORS: dict[str, Callable[[Any], Any]] = {
    "reward.post_created": _non_negative_int,
    "reward.comment_created": _non_negative_int,
    "reward.first_vote_received": _non_negative_int,
    "economy.min_vote_balance": _non_negative_int,
    "economy.min_post_balance": _non_negative_int,
    "economy.initial_member_balance": _non_negative_int,
    "economy.level_up_bonus": _non_negative_int,
    "economy.xp_per_level": _positive_int,
    "gating.balance_scope": _scope,
}
"""Keys with a known meaning.  Unknown keys are stored as given."""


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Parsed JSON value of *key*, or *default* if missing or unreadable."""
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Setting %r holds invalid JSON; using default", key)
        return default


def get_int(session: Session, key: str, default: int = 0) -> int:
    value = get_setting_value(session, key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_reward_policy(session: Session) -> RewardPolicy:
    keys = REWARD_SETTING_KEYS
    return RewardPolicy(
        post_created=get_int(session, keys[ActionType.POST_CREATED], 1),
        comment_created=get_int(session, keys[ActionType.COMMENT_CREATED], 1),
        first_vote_received=get_int(session, keys[ActionType.VOTE_CAST], 1),
    )


def get_gating_scope(session: Session) -> BalanceScope:
    raw = get_setting_value(session, "gating.balance_scope", BalanceScope.COMMUNITY.value)
    try:
        return BalanceScope(raw)
    except ValueError:
        logger.warning("Unknown gating.balance_scope %r; using community", raw)
        return BalanceScope.COMMUNITY


def setting_dict(row: Setting) -> dict:
    try:
        value = json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        value = None
    return {
        "key": row.key,
        "value": value,
        "category": row.category,
        "description": row.description,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def list_settings(session: Session) -> list[dict]:
    rows = session.scalars(select(Setting).order_by(Setting.category, Setting.key))
    return [setting_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def update_settings(engine: Engine, items: list[dict]) -> int:
    """Validate and store many settings in one transaction.

    Each item carries ``key`` and ``value`` plus optional ``category`` and
    ``description``.  Nothing is written if any value is invalid.

    Raises
    ------
    ValueError
        Naming the first key whose value fails validation.
    """
    staged = []
    for item in items:
        key = item["key"]
        value = item["value"]
        validate = VALIDATORS.get(key)
        if validate is not None:
            try:
                value = validate(value)
            except ValueError as exc:
                raise ValueError(f"Invalid value for {key}: {exc}") from exc
        staged.append((key, json.dumps(value), item.get("category"), item.get("description")))

    with Session(engine) as session:
        for key, value_json, category, description in staged:
            row = session.get(Setting, key)
            if row is None:
                row = Setting(key=key, category=category or key.split(".", 1)[0])
                session.add(row)
            elif category:
                row.category = category
            row.value_json = value_json
            if description is not None:
                row.description = description
        session.commit()

    logger.info("Updated settings: %s", ", ".join(key for key, *_ in staged))
    return len(staged)


def upsert_setting(
    engine: Engine,
    *,
    key: str,
    value: Any,
    category: str | None = None,
    description: str | None = None,
) -> None:
    """Store a single setting; see :func:`update_settings`."""
    update_settings(engine, [{
        "key": key, "value": value, "category": category, "description": description,
    }])
