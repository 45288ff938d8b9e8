"""
tokengate.api.routes.achievements — Achievement catalogue
===========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from tokengate.api.deps import get_current_admin, get_session
from tokengate.api.schemas import TokenAmountField
from tokengate.database.models import Achievement
from tokengate.engine.achievements import Criterion
from tokengate.services import achievement_service

router = APIRouter(tags=["achievements"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AchievementCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category: str = "general"
    icon: str | None = None
    criterion_kind: str
    criterion_threshold: TokenAmountField
    points: int = Field(default=0, ge=0)
    xp_reward: int = Field(default=0, ge=0)
    token_reward: TokenAmountField = 0
    active: bool = True


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("/achievements")
def list_achievements(session: Session = Depends(get_session)):
    return [
        achievement_service.achievement_dict(a)
        for a in achievement_service.list_achievements(session)
    ]


@router.post("/admin/achievements", status_code=status.HTTP_201_CREATED)
def create_achievement(
    body: AchievementCreate,
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    try:
        criterion = Criterion.parse(body.criterion_kind, body.criterion_threshold)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    if session.scalar(select(Achievement.id).where(Achievement.name == body.name)):
        raise HTTPException(status.HTTP_409_CONFLICT, "Achievement name already exists")

    achievement = Achievement(
        name=body.name,
        description=body.description,
        category=body.category,
        icon=body.icon,
        criterion_kind=criterion.kind.value,
        criterion_threshold=criterion.threshold,
        points=body.points,
        xp_reward=body.xp_reward,
        token_reward=body.token_reward,
        active=body.active,
    )
    session.add(achievement)
    session.commit()
    logger.info("Admin %s created achievement %r", admin.get("sub"), achievement.name)
    return achievement_service.achievement_dict(achievement)
