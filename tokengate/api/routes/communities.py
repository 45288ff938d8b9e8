"""
tokengate.api.routes.communities — Community creation, listing & joins
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.api.deps import get_config, get_engine, get_session, get_token_gateway
from tokengate.api.schemas import Address, TokenAmountField
from tokengate.config import TokengateConfig
from tokengate.services import community_service, membership_service
from tokengate.services.token_contract import TokenGateway

router = APIRouter(prefix="/communities", tags=["communities"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CommunityCreate(BaseModel):
    creator_address: Address
    name: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=2_000)
    token_name: str = Field(min_length=1, max_length=100)
    token_symbol: str = Field(min_length=1, max_length=5)
    token_contract: Address | None = None
    initial_member_balance: TokenAmountField | None = None
    required_token_amount: TokenAmountField = 0
    initial_supply: TokenAmountField = 0


class JoinRequest(BaseModel):
    address: Address


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_communities(session: Session = Depends(get_session)):
    return community_service.list_communities(session)


@router.get("/{community_id}")
def get_community(community_id: int, session: Session = Depends(get_session)):
    community = membership_service.get_community(session, community_id)
    return community_service.community_dict(
        community,
        member_count=membership_service.member_count(session, community.id),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_community(
    body: CommunityCreate,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    """Create a community, provision its token and enroll the creator."""
    return community_service.create_community(
        engine, config, gateway,
        creator_address=body.creator_address,
        name=body.name,
        description=body.description,
        token_name=body.token_name,
        token_symbol=body.token_symbol,
        token_contract=body.token_contract,
        initial_member_balance=body.initial_member_balance,
        required_token_amount=body.required_token_amount,
        initial_supply=body.initial_supply,
    )


@router.post("/{community_id}/join", status_code=status.HTTP_201_CREATED)
def join_community(
    community_id: int,
    body: JoinRequest,
    response: Response,
    session: Session = Depends(get_session),
):
    """Join a community.  Joining again returns the existing membership (200)."""
    membership, created = community_service.join_community(
        session, body.address, community_id,
    )
    session.commit()
    if not created:
        response.status_code = status.HTTP_200_OK
    return {**membership, "created": created}
