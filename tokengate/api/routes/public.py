"""
tokengate.api.routes.public — Leaderboard & reward retry
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.api.deps import (
    get_config,
    get_engine,
    get_profile_directory,
    get_session,
    get_token_gateway,
)
from tokengate.api.schemas import Address
from tokengate.config import TokengateConfig
from tokengate.services import achievement_service, reward_service
from tokengate.services.profile_directory import ProfileDirectory
from tokengate.services.token_contract import TokenGateway

router = APIRouter(tags=["public"])


class RewardRetry(BaseModel):
    action_type: str
    entity_id: int
    address: Address | None = None


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
    directory: ProfileDirectory | None = Depends(get_profile_directory),
):
    """Accounts ranked by achievement points, with balance and achievements."""
    return achievement_service.get_leaderboard(
        session, directory, limit=limit, offset=offset,
    )


# ---------------------------------------------------------------------------
# POST /rewards/retry
# ---------------------------------------------------------------------------
@router.post("/rewards/retry")
def retry_reward(
    body: RewardRetry,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    """Re-apply only the reward of an action that answered 502.

    ``entity_id`` is the post, comment, voted post, challenge or
    achievement id; ``address`` is required for votes (voter), challenges
    (participant) and achievements (the account listed in
    ``achievement_failures``).
    """
    outcome = reward_service.retry_reward(
        engine, config, gateway,
        body.action_type, body.entity_id,
        address=body.address,
    )
    return outcome.as_dict()
