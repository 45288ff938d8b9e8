"""
tokengate.api.routes.posts — Posts, comments & votes
======================================================

Mutations return the recorded action plus the reward it earned.  If the
reward could not be applied the response is 502 with the recorded action
attached; retry it through ``POST /api/rewards/retry``.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.api.deps import get_config, get_engine, get_session, get_token_gateway
from tokengate.api.schemas import Address, TokenAmountField, parse_address
from tokengate.config import TokengateConfig
from tokengate.services import account_service, content_service, reward_service
from tokengate.services.token_contract import TokenGateway

router = APIRouter(prefix="/posts", tags=["posts"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PostCreate(BaseModel):
    author_address: Address
    content: str = Field(min_length=1, max_length=10_000)
    community_id: int | None = None
    is_token_gated: bool = False
    required_token_amount: TokenAmountField | None = None


class CommentCreate(BaseModel):
    author_address: Address
    content: str = Field(min_length=1, max_length=5_000)


class VoteCast(BaseModel):
    voter_address: Address
    value: Literal[1, -1]


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
@router.get("")
def list_posts(
    viewer: str | None = Query(None, description="Wallet address of the reader"),
    community_id: int | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
):
    """Newest first.  Gated bodies are redacted unless *viewer* holds enough."""
    viewer_account = None
    if viewer:
        viewer_account = account_service.find_account(session, parse_address(viewer))
    return content_service.list_posts(
        session,
        viewer=viewer_account,
        community_id=community_id,
        limit=limit,
        offset=offset,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_post(
    body: PostCreate,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    outcome = reward_service.process_post(
        engine, config, gateway,
        author_address=body.author_address,
        content=body.content,
        community_id=body.community_id,
        is_token_gated=body.is_token_gated,
        required_token_amount=body.required_token_amount,
    )
    return outcome.as_dict()


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.get("/{post_id}/comments")
def list_comments(post_id: int, session: Session = Depends(get_session)):
    return [
        content_service.comment_dict(c)
        for c in content_service.list_comments(session, post_id)
    ]


@router.post("/{post_id}/comments", status_code=status.HTTP_201_CREATED)
def create_comment(
    post_id: int,
    body: CommentCreate,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    outcome = reward_service.process_comment(
        engine, config, gateway,
        author_address=body.author_address,
        post_id=post_id,
        content=body.content,
    )
    return outcome.as_dict()


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------
@router.post("/{post_id}/vote")
def cast_vote(
    post_id: int,
    body: VoteCast,
    engine: Engine = Depends(get_engine),
    config: TokengateConfig = Depends(get_config),
    gateway: TokenGateway | None = Depends(get_token_gateway),
):
    """Upsert a vote.  Only an account's first vote on a post pays the author."""
    outcome = reward_service.process_vote(
        engine, config, gateway,
        voter_address=body.voter_address,
        post_id=post_id,
        value=body.value,
    )
    return outcome.as_dict()
