"""
tokengate.engine.achievements — Achievement Check Pipeline
============================================================

Every achievement carries a :class:`Criterion`: a closed
:class:`~tokengate.database.models.CriterionKind` plus a numeric
threshold.  :func:`criterion_met` is the single dispatch point; each kind
maps to one reader on :class:`AccountStatistics` and every kind qualifies
when ``statistic >= threshold``.

All achievements are checked against the same statistics snapshot, so no
achievement's outcome depends on another being unlocked first, and the
result is the same whatever order they are evaluated in.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from tokengate.database.models import CriterionKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Statistics snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AccountStatistics:
    """Aggregates for one account, recomputed on every qualifying action."""

    post_count: int = 0
    comment_count: int = 0
    like_count: int = 0
    community_count: int = 0
    token_balance: int = 0

    @property
    def contribution_count(self) -> int:
        return self.post_count + self.comment_count

    def as_dict(self) -> dict[str, int]:
        return {
            CriterionKind.POST_COUNT.value: self.post_count,
            CriterionKind.COMMENT_COUNT.value: self.comment_count,
            CriterionKind.LIKE_COUNT.value: self.like_count,
            CriterionKind.COMMUNITY_COUNT.value: self.community_count,
            CriterionKind.CONTRIBUTION_COUNT.value: self.contribution_count,
            CriterionKind.TOKEN_BALANCE.value: self.token_balance,
        }


# ---------------------------------------------------------------------------
# Criterion — closed tagged variant
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Criterion:
    kind: CriterionKind
    threshold: int

    @classmethod
    def parse(cls, kind: str, threshold: int) -> Criterion:
        """Build a criterion from stored values.

        Raises
        ------
        ValueError
            If *kind* is not a known criterion kind or *threshold* is negative.
        """
        if threshold < 0:
            raise ValueError(f"Criterion threshold must be >= 0, got {threshold}")
        return cls(kind=CriterionKind(kind), threshold=int(threshold))


STATISTIC_READERS: dict[CriterionKind, Callable[[AccountStatistics], int]] = {
    CriterionKind.POST_COUNT: lambda s: s.post_count,
    CriterionKind.COMMENT_COUNT: lambda s: s.comment_count,
    CriterionKind.LIKE_COUNT: lambda s: s.like_count,
    CriterionKind.COMMUNITY_COUNT: lambda s: s.community_count,
    CriterionKind.CONTRIBUTION_COUNT: lambda s: s.contribution_count,
    CriterionKind.TOKEN_BALANCE: lambda s: s.token_balance,
}


def criterion_met(criterion: Criterion, stats: AccountStatistics) -> bool:
    return STATISTIC_READERS[criterion.kind](stats) >= criterion.threshold


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
class AchievementLike(Protocol):
    id: int
    name: str
    criterion_kind: str
    criterion_threshold: int
    active: bool


def check_achievements(
    achievements: Iterable[AchievementLike],
    stats: AccountStatistics,
    already_unlocked: set[int],
) -> list[int]:
    """Return the IDs of achievements the account newly qualifies for.

    Parameters
    ----------
    achievements : Achievement rows (or anything shaped like one).
    stats : Statistics snapshot for the account.
    already_unlocked : IDs the account already holds.
    """
    newly_earned: list[int] = []

    for achievement in achievements:
        if not achievement.active or achievement.id in already_unlocked:
            continue

        try:
            criterion = Criterion.parse(
                achievement.criterion_kind, achievement.criterion_threshold,
            )
        except ValueError:
            logger.warning(
                "Skipping achievement %r (id=%d): bad criterion %r/%r",
                achievement.name, achievement.id,
                achievement.criterion_kind, achievement.criterion_threshold,
            )
            continue

        if criterion_met(criterion, stats):
            newly_earned.append(achievement.id)
            logger.info(
                "Achievement qualified: %s (id=%d)", achievement.name, achievement.id,
            )

    return newly_earned
