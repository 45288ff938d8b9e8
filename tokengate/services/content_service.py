"""
tokengate.services.content_service — Posts, Comments, Votes
=============================================================

Content mutations only; rewards are applied afterwards by
:mod:`tokengate.services.reward_service` in their own transaction.

Votes are upserts on ``(post_id, account_id)``.  After every vote the
post's ``curation_score`` (sum of values) and ``like_count`` (positive
votes) are recomputed from the votes table in a single UPDATE, so
concurrent votes on the same post cannot leave stale counters behind.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tokengate.database.models import Account, Comment, Community, Membership, Post, Vote
from tokengate.engine.gating import ViewerBalances, can_view, redact
from tokengate.errors import ActionRejected, InsufficientFunds, NotFound
from tokengate.services import membership_service, settings_service

logger = logging.getLogger(__name__)

VOTE_VALUES = (1, -1)

_SYNC = {"synchronize_session": "fetch"}


def get_post(session: Session, post_id: int) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise NotFound("post", post_id)
    return post


def _clean_content(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise ActionRejected("Content must not be empty")
    return content


def _scoped_balance(session: Session, account: Account, community_id: int | None) -> int:
    """Balance an action is checked against: the membership balance inside
    a community (0 when not a member), the global balance outside one."""
    if community_id is None:
        return account.token_balance
    membership = membership_service.find_membership(session, account.id, community_id)
    return membership.balance if membership is not None else 0


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

def create_post(
    session: Session,
    author: Account,
    *,
    content: str,
    community: Community | None = None,
    is_token_gated: bool = False,
    required_token_amount: int | None = None,
) -> Post:
    """Insert a post.

    Posting into a community requires membership.  The author's balance
    (scoped like the reward) must meet ``economy.min_post_balance``.  A
    gated post without an explicit threshold inherits the community's
    ``required_token_amount``.

    Raises
    ------
    ActionRejected
        Empty content, not a member, or a negative threshold.
    InsufficientFunds
        Balance below ``economy.min_post_balance``.
    """
    content = _clean_content(content)
    community_id = community.id if community is not None else None

    if community is not None:
        if membership_service.find_membership(session, author.id, community.id) is None:
            raise ActionRejected(f"{author.address} is not a member of {community.name}")

    min_balance = settings_service.get_int(session, "economy.min_post_balance", 0)
    balance = _scoped_balance(session, author, community_id)
    if balance < min_balance:
        raise InsufficientFunds(author.address, min_balance, balance)

    if required_token_amount is None:
        required_token_amount = community.required_token_amount if community is not None else 0
    if required_token_amount < 0:
        raise ActionRejected("required_token_amount must be >= 0")

    post = Post(
        author_id=author.id,
        community_id=community_id,
        content=content,
        is_token_gated=is_token_gated,
        required_token_amount=required_token_amount if is_token_gated else 0,
    )
    session.add(post)
    session.flush()
    logger.info(
        "Post %d by %s (community=%s, gated=%s)",
        post.id, author.address, community_id, is_token_gated,
    )
    return post


def post_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "author_address": post.author.address,
        "community_id": post.community_id,
        "content": post.content,
        "like_count": post.like_count,
        "comment_count": post.comment_count,
        "curation_score": post.curation_score,
        "is_token_gated": post.is_token_gated,
        "required_token_amount": str(post.required_token_amount),
        "locked": False,
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


def viewer_balances(session: Session, viewer: Account | None) -> ViewerBalances:
    """Read the viewer's balances for this request only."""
    if viewer is None:
        return ViewerBalances()
    rows = session.execute(
        select(Membership.community_id, Membership.balance)
        .where(Membership.account_id == viewer.id)
    ).all()
    return ViewerBalances(
        global_balance=viewer.token_balance,
        community_balances={row.community_id: row.balance for row in rows},
    )


def list_posts(
    session: Session,
    *,
    viewer: Account | None = None,
    community_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """Newest posts first, gated bodies redacted for viewers below threshold."""
    stmt = select(Post).order_by(Post.created_at.desc(), Post.id.desc())
    if community_id is not None:
        stmt = stmt.where(Post.community_id == community_id)
    posts = session.scalars(stmt.limit(limit).offset(offset)).all()

    balances = viewer_balances(session, viewer)
    scope = settings_service.get_gating_scope(session)

    result = []
    for post in posts:
        data = post_dict(post)
        visible = can_view(
            is_token_gated=post.is_token_gated,
            required_amount=post.required_token_amount,
            community_id=post.community_id,
            viewer=balances,
            scope=scope,
        )
        # Authors always see their own posts.
        if not visible and not (viewer is not None and viewer.id == post.author_id):
            data = redact(data)
        result.append(data)
    return result


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

def create_comment(session: Session, author: Account, post_id: int, content: str) -> Comment:
    """Attach a comment to *post_id* and bump its comment counter.

    Raises
    ------
    NotFound
        If the post does not exist.
    """
    post = get_post(session, post_id)
    comment = Comment(post_id=post.id, author_id=author.id, content=_clean_content(content))
    session.add(comment)
    session.flush()

    session.execute(
        update(Post)
        .where(Post.id == post.id)
        .values(comment_count=Post.comment_count + 1),
        execution_options=_SYNC,
    )
    logger.info("Comment %d on post %d by %s", comment.id, post.id, author.address)
    return comment


def list_comments(session: Session, post_id: int) -> list[Comment]:
    get_post(session, post_id)
    return list(session.scalars(
        select(Comment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at, Comment.id)
    ).all())


def comment_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "author_address": comment.author.address,
        "content": comment.content,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------

def _find_vote(session: Session, post_id: int, account_id: int) -> Vote | None:
    return session.scalar(
        select(Vote).where(Vote.post_id == post_id, Vote.account_id == account_id)
    )


def recompute_curation(session: Session, post_id: int) -> None:
    """Set curation_score = SUM(value) and like_count = COUNT(value > 0)."""
    score = (
        select(func.coalesce(func.sum(Vote.value), 0))
        .where(Vote.post_id == post_id)
        .scalar_subquery()
    )
    likes = (
        select(func.count())
        .select_from(Vote)
        .where(Vote.post_id == post_id, Vote.value > 0)
        .scalar_subquery()
    )
    session.execute(
        update(Post)
        .where(Post.id == post_id)
        .values(curation_score=score, like_count=likes),
        execution_options=_SYNC,
    )


def cast_vote(session: Session, voter: Account, post_id: int, value: int) -> tuple[Post, bool]:
    """Record *voter*'s vote on *post_id*, replacing any earlier value.

    Returns (post, first_time).  ``first_time`` is False for re-votes,
    which never earn the author another reward.

    Raises
    ------
    NotFound
        If the post does not exist.
    ActionRejected
        If *value* is not +1 or -1.
    InsufficientFunds
        If the voter's balance is below ``economy.min_vote_balance``.
    """
    if value not in VOTE_VALUES:
        raise ActionRejected(f"Vote value must be 1 or -1, got {value}")
    post = get_post(session, post_id)

    min_balance = settings_service.get_int(session, "economy.min_vote_balance", 1)
    balance = _scoped_balance(session, voter, post.community_id)
    if balance < min_balance:
        raise InsufficientFunds(voter.address, min_balance, balance)

    first_time = False
    existing = _find_vote(session, post.id, voter.id)
    if existing is None:
        try:
            with session.begin_nested():
                session.add(Vote(post_id=post.id, account_id=voter.id, value=value))
                session.flush()
            first_time = True
        except IntegrityError:
            # A concurrent first vote from the same account won; update it.
            existing = _find_vote(session, post.id, voter.id)

    if existing is not None and existing.value != value:
        existing.value = value
        session.flush()

    recompute_curation(session, post.id)
    logger.info(
        "Vote %+d on post %d by %s (%s)",
        value, post.id, voter.address, "new" if first_time else "re-vote",
    )
    return post, first_time
