"""
tokengate.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- accounts              — Wallet-identified participants (global balance, points, XP)
- communities           — Named groups, each backed by its own token contract
- memberships           — Account × Community with a per-community balance
- posts                 — Authored content, optionally community-scoped and gated
- comments              — Replies attached to exactly one post
- votes                 — One signed vote per (account, post)
- achievements          — Criterion-gated one-time rewards
- achievement_unlocks   — Earned achievements (the "already awarded" guard)
- challenges            — Time-boxed tasks with a token reward
- challenge_participations — Per-account challenge progress
- token_transactions    — Append-only token ledger
- settings              — Admin-configurable key-value store

Token amounts are arbitrary-precision integers in the token's smallest
unit, stored as ``NUMERIC(78, 0)`` (wide enough for any ``uint256``).
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Tokengate ORM models."""


# ---------------------------------------------------------------------------
# Column types
# ---------------------------------------------------------------------------
class TokenAmount(TypeDecorator):
    """Exact integer token amount backed by ``NUMERIC(78, 0)``.

    Python side is always ``int``; nothing is ever routed through ``float``
    on dialects with native decimals.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionKind(enum.StrEnum):
    """Classification tag on every ledger row."""
    REWARD = "reward"
    TRANSFER = "transfer"
    MINT = "mint"
    CHALLENGE_COMPLETION = "challenge_completion"
    ACHIEVEMENT = "achievement"
    LEVEL_UP = "level_up"


class CriterionKind(enum.StrEnum):
    """What aggregate statistic an achievement is measured against."""
    POST_COUNT = "post_count"
    COMMENT_COUNT = "comment_count"
    LIKE_COUNT = "like_count"
    COMMUNITY_COUNT = "community_count"
    CONTRIBUTION_COUNT = "contribution_count"
    TOKEN_BALANCE = "token_balance"


# ---------------------------------------------------------------------------
# Accounts — one row per wallet address
# ---------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    handle: Mapped[str | None] = mapped_column(String(100), default=None)
    token_balance: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    achievement_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    memberships: Mapped[list[Membership]] = relationship(back_populates="account")
    unlocks: Mapped[list[AchievementUnlock]] = relationship(back_populates="account")

    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_accounts_balance_nonneg"),
        CheckConstraint("achievement_points >= 0", name="ck_accounts_points_nonneg"),
        Index("ix_accounts_points_desc", "achievement_points"),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} address={self.address!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Communities — each backed by its own token
# ---------------------------------------------------------------------------
class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    token_name: Mapped[str] = mapped_column(String(100), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(16), nullable=False)
    token_contract: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    initial_member_balance: Mapped[int] = mapped_column(
        TokenAmount, nullable=False, default=0
    )
    required_token_amount: Mapped[int] = mapped_column(
        TokenAmount, nullable=False, default=0
    )
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    creator: Mapped[Account] = relationship()
    memberships: Mapped[list[Membership]] = relationship(back_populates="community")

    __table_args__ = (
        Index("ix_communities_creator", "creator_id"),
    )

    def __repr__(self) -> str:
        return f"<Community id={self.id} name={self.name!r} symbol={self.token_symbol!r}>"


# ---------------------------------------------------------------------------
# Memberships — Account × Community
# ---------------------------------------------------------------------------
class Membership(Base):
    __tablename__ = "memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    balance: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="memberships")
    community: Mapped[Community] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("account_id", "community_id", name="uq_memberships_account_community"),
        CheckConstraint("balance >= 0", name="ck_memberships_balance_nonneg"),
        Index("ix_memberships_community", "community_id"),
    )

    def __repr__(self) -> str:
        return f"<Membership account={self.account_id} community={self.community_id}>"


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    curation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_token_gated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    required_token_amount: Mapped[int] = mapped_column(
        TokenAmount, nullable=False, default=0
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    author: Mapped[Account] = relationship()
    community: Mapped[Community | None] = relationship()

    __table_args__ = (
        Index("ix_posts_author", "author_id"),
        Index("ix_posts_community_time", "community_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} author={self.author_id} gated={self.is_token_gated}>"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    author: Mapped[Account] = relationship()

    __table_args__ = (
        Index("ix_comments_post_time", "post_id", "created_at"),
        Index("ix_comments_author", "author_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} post={self.post_id} author={self.author_id}>"


# ---------------------------------------------------------------------------
# Votes — one per (account, post)
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("post_id", "account_id", name="uq_votes_post_account"),
        CheckConstraint("value IN (1, -1)", name="ck_votes_value"),
    )

    def __repr__(self) -> str:
        return f"<Vote post={self.post_id} account={self.account_id} value={self.value}>"


# ---------------------------------------------------------------------------
# Achievements — criterion-gated one-time rewards
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    icon: Mapped[str | None] = mapped_column(String(50), default=None)

    criterion_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    criterion_threshold: Mapped[int] = mapped_column(TokenAmount, nullable=False)

    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_reward: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    unlocks: Mapped[list[AchievementUnlock]] = relationship(back_populates="achievement")

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} name={self.name!r} kind={self.criterion_kind}>"


# ---------------------------------------------------------------------------
# AchievementUnlock — earned achievements
# ---------------------------------------------------------------------------
class AchievementUnlock(Base):
    __tablename__ = "achievement_unlocks"

    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="unlocks")
    achievement: Mapped[Achievement] = relationship(back_populates="unlocks")

    def __repr__(self) -> str:
        return f"<AchievementUnlock account={self.account_id} achievement={self.achievement_id}>"


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    token_reward: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} title={self.title!r} active={self.is_active}>"


class ChallengeParticipation(Base):
    __tablename__ = "challenge_participations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "challenge_id", name="uq_challenge_participations_pair",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_challenge_progress_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChallengeParticipation account={self.account_id} "
            f"challenge={self.challenge_id} progress={self.progress}>"
        )


# ---------------------------------------------------------------------------
# TokenTransaction — append-only ledger
# ---------------------------------------------------------------------------
class TokenTransaction(Base):
    """One row per token movement.  Never updated, never deleted.

    ``reference`` is the idempotency key of the movement (``post:12``,
    ``vote:12:7``, ...) and is unique, so the same reward can never be
    recorded twice.  ``tx_hash`` is set when the movement was settled
    on-chain.
    """
    __tablename__ = "token_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(TokenAmount, nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    reference: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    tx_hash: Mapped[str | None] = mapped_column(String(100), default=None)
    community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_token_transactions_amount_pos"),
        Index("ix_token_transactions_to_time", "to_address", "created_at"),
        Index("ix_token_transactions_from_time", "from_address", "created_at"),
        Index("ix_token_transactions_kind", "kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenTransaction id={self.id} {self.from_address}→{self.to_address} "
            f"amount={self.amount} kind={self.kind}>"
        )


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Every gameplay tuning knob (reward amounts, vote threshold, level-up
    bonus, gating scope) lives here so operators can adjust values without
    redeploying.  Values are stored as JSON strings; typed reads live in
    :mod:`tokengate.services.settings_service`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
