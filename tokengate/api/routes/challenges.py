"""
tokengate.api.routes.challenges — Challenges & progress
=========================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.api.deps import (
    get_config,
    get_current_admin,
    get_engine,
    get_session,
    get_token_gateway,
)
from tokengate.api.schemas import Address, TokenAmountField, parse_address
from tokengate.config import TokengateConfig
from tokengate.services import account_service, challenge_service
from tokengate.services.token_contract import TokenGateway

router = APIRouter(tags=["challenges"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProgressUpdate(BaseModel):
    address: Address
    progress: int = Field(ge=0, le=100)


class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    token_reward: TokenAmountField = 0
    end_date: datetime | None = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------
@router.get("/challenges")
def list_challenges(
    address: str | None = Query(None, description="Attach this wallet's progress"),
    session: Session = Depends(get_session),
):
    participations = {}
    if address:
        account = account_service.find_account(session, parse_address(address))
        if account is not None:
            participations = challenge_service.participations_for(session, account.id)
    return [
        challenge_service.challenge_dict(c, participations.get(c.id))
        for c in challenge_service.list_open_challenges(session)
    ]


@router.post("/challenges/{challenge_id}/progress")
def update_progress(
    challenge_id: int,
    body: ProgressUpdate,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    """Record progress; reaching 100 completes the challenge and pays once."""
    outcome = challenge_service.record_progress(
        engine, config, gateway,
        address=body.address,
        challenge_id=challenge_id,
        progress=body.progress,
    )
    return outcome.as_dict()


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("/admin/challenges", status_code=status.HTTP_201_CREATED)
def create_challenge(
    body: ChallengeCreate,
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    challenge = challenge_service.create_challenge(
        session,
        title=body.title,
        description=body.description,
        token_reward=body.token_reward,
        end_date=body.end_date,
        is_active=body.is_active,
    )
    session.commit()
    logger.info("Admin %s created challenge %d", admin.get("sub"), challenge.id)
    return challenge_service.challenge_dict(challenge)
