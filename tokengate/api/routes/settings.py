"""
tokengate.api.routes.settings — Gameplay tuning (admin)
=========================================================

Reward amounts, balance thresholds and the gating scope.  Changes take
effect on the next request.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.api.deps import get_current_admin, get_engine, get_session
from tokengate.services import settings_service

router = APIRouter(prefix="/admin/settings", tags=["admin"])
logger = logging.getLogger(__name__)


class SettingChange(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


@router.get("")
def list_settings(
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
):
    return {"settings": settings_service.list_settings(session)}


@router.put("")
def change_settings(
    body: list[SettingChange],
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    try:
        count = settings_service.update_settings(engine, [c.model_dump() for c in body])
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    logger.info("Admin %s changed %d setting(s)", admin.get("sub"), count)
    return {"updated": count}
