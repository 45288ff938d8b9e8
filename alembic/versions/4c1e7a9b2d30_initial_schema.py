"""Initial schema: accounts, communities, content, achievements, ledger

Revision ID: 4c1e7a9b2d30
Revises:
Create Date: 2026-10-19 09:12:41.508113

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c1e7a9b2d30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

AMOUNT = sa.Numeric(78, 0)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # --- accounts ---
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("address", sa.String(64), nullable=False, unique=True),
        sa.Column("handle", sa.String(100), nullable=True),
        sa.Column("token_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("achievement_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        _created_at(),
        sa.CheckConstraint("token_balance >= 0", name="ck_accounts_balance_nonneg"),
        sa.CheckConstraint("achievement_points >= 0", name="ck_accounts_points_nonneg"),
    )
    op.create_index("ix_accounts_points_desc", "accounts", ["achievement_points"])

    # --- communities ---
    op.create_table(
        "communities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("token_name", sa.String(100), nullable=False),
        sa.Column("token_symbol", sa.String(16), nullable=False),
        sa.Column("token_contract", sa.String(100), nullable=False, unique=True),
        sa.Column("initial_member_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("required_token_amount", AMOUNT, nullable=False, server_default="0"),
        sa.Column("creator_id", sa.Integer, sa.ForeignKey("accounts.id"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_communities_creator", "communities", ["creator_id"])

    # --- memberships ---
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "account_id", sa.Integer,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "community_id", sa.Integer,
            sa.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("balance", AMOUNT, nullable=False, server_default="0"),
        _created_at("joined_at"),
        sa.UniqueConstraint(
            "account_id", "community_id", name="uq_memberships_account_community",
        ),
        sa.CheckConstraint("balance >= 0", name="ck_memberships_balance_nonneg"),
    )
    op.create_index("ix_memberships_community", "memberships", ["community_id"])

    # --- posts ---
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("author_id", sa.Integer, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column(
            "community_id", sa.Integer, sa.ForeignKey("communities.id"), nullable=True,
        ),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("like_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("curation_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_token_gated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("required_token_amount", AMOUNT, nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("ix_posts_author", "posts", ["author_id"])
    op.create_index("ix_posts_community_time", "posts", ["community_id", "created_at"])

    # --- comments ---
    op.create_table(
        "comments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.Integer,
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.Integer, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        _created_at(),
    )
    op.create_index("ix_comments_post_time", "comments", ["post_id", "created_at"])
    op.create_index("ix_comments_author", "comments", ["author_id"])

    # --- votes ---
    op.create_table(
        "votes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.Integer,
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("account_id", sa.Integer, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("value", sa.Integer, nullable=False),
        _created_at(),
        _created_at("updated_at"),
        sa.UniqueConstraint("post_id", "account_id", name="uq_votes_post_account"),
        sa.CheckConstraint("value IN (1, -1)", name="ck_votes_value"),
    )

    # --- achievements ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("criterion_kind", sa.String(30), nullable=False),
        sa.Column("criterion_threshold", AMOUNT, nullable=False),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("xp_reward", sa.Integer, nullable=False, server_default="0"),
        sa.Column("token_reward", AMOUNT, nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "achievement_unlocks",
        sa.Column(
            "account_id", sa.Integer,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achievement_id", sa.Integer,
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at("unlocked_at"),
    )

    # --- challenges ---
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("token_reward", AMOUNT, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "challenge_participations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "account_id", sa.Integer,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "challenge_id", sa.Integer,
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "account_id", "challenge_id", name="uq_challenge_participations_pair",
        ),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_challenge_progress_range"),
    )

    # --- token_transactions (append-only ledger) ---
    op.create_table(
        "token_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("from_address", sa.String(64), nullable=False),
        sa.Column("to_address", sa.String(64), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("reference", sa.String(200), nullable=False, unique=True),
        sa.Column("tx_hash", sa.String(100), nullable=True),
        sa.Column(
            "community_id", sa.Integer,
            sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_token_transactions_amount_pos"),
    )
    op.create_index(
        "ix_token_transactions_to_time", "token_transactions", ["to_address", "created_at"],
    )
    op.create_index(
        "ix_token_transactions_from_time", "token_transactions", ["from_address", "created_at"],
    )
    op.create_index("ix_token_transactions_kind", "token_transactions", ["kind"])

    # --- settings ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        _created_at("updated_at"),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_token_transactions_kind", table_name="token_transactions")
    op.drop_index("ix_token_transactions_from_time", table_name="token_transactions")
    op.drop_index("ix_token_transactions_to_time", table_name="token_transactions")
    op.drop_table("token_transactions")
    op.drop_table("challenge_participations")
    op.drop_table("challenges")
    op.drop_table("achievement_unlocks")
    op.drop_table("achievements")
    op.drop_table("votes")
    op.drop_index("ix_comments_author", table_name="comments")
    op.drop_index("ix_comments_post_time", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_posts_community_time", table_name="posts")
    op.drop_index("ix_posts_author", table_name="posts")
    op.drop_table("posts")
    op.drop_index("ix_memberships_community", table_name="memberships")
    op.drop_table("memberships")
    op.drop_index("ix_communities_creator", table_name="communities")
    op.drop_table("communities")
    op.drop_index("ix_accounts_points_desc", table_name="accounts")
    op.drop_table("accounts")
