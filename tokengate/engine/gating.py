"""
tokengate.engine.gating — Gated Content Visibility
====================================================

Decides, per request, whether a viewer may read a gated post.  Balances
change over time so nothing here is cached; callers pass in balances read
in the same request.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from tokengate.constants import LOCKED_CONTENT_PLACEHOLDER


class BalanceScope(enum.StrEnum):
    """Which balance a community-scoped gated post is checked against."""
    GLOBAL = "global"
    COMMUNITY = "community"


@dataclass(frozen=True, slots=True)
class ViewerBalances:
    """Everything the gate needs to know about one viewer.

    An anonymous viewer has zero balances everywhere.
    """

    global_balance: int = 0
    community_balances: dict[int, int] = field(default_factory=dict)

    def for_post(self, community_id: int | None, scope: BalanceScope) -> int:
        if community_id is None or scope is BalanceScope.GLOBAL:
            return self.global_balance
        return self.community_balances.get(community_id, 0)


def can_view(
    *,
    is_token_gated: bool,
    required_amount: int,
    community_id: int | None,
    viewer: ViewerBalances,
    scope: BalanceScope = BalanceScope.COMMUNITY,
) -> bool:
    if not is_token_gated:
        return True
    return viewer.for_post(community_id, scope) >= required_amount


def redact(post: dict) -> dict:
    """Return a copy of a serialized post with its body replaced."""
    return {**post, "content": LOCKED_CONTENT_PLACEHOLDER, "locked": True}
