"""Initial WorkLob schema.

Creates users, blogs (likes, comments, saves, follows, earnings), referrals, transactions,
the staking mirror, governance, config_entries and notifications.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.Numeric(20, 8)


def _id() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True)


def _user_fk(name: str, *, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(name, sa.BigInteger(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def _ts(name: str, *, nullable: bool = True) -> sa.Column:
    default = None if nullable else sa.func.now()
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, server_default=default)


def upgrade() -> None:
    """Create all tables."""
    # --- users ---
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(30), nullable=False),
        sa.Column("username_normalized", sa.String(30), nullable=False),
        sa.Column("auth_method", sa.String(16), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("password_hash", sa.String(256), nullable=True),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column("connected_wallet_address", sa.String(42), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="talent"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("activity_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("votes_cast", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("proposals_submitted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("disputes_resolved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wallet_balance", MONEY, nullable=False, server_default="1000"),
        sa.Column("escrow_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("referral_code", sa.String(48), nullable=False),
        _user_fk("referred_by_id", nullable=True, ondelete="SET NULL"),
        sa.Column("referral_bonus", MONEY, nullable=False, server_default="0"),
        sa.Column("lob_pending", MONEY, nullable=False, server_default="0"),
        sa.Column("lob_available", MONEY, nullable=False, server_default="0"),
        sa.Column("lob_withdrawn", MONEY, nullable=False, server_default="0"),
        _ts("created_at", nullable=False),
        _ts("last_seen"),
        sa.UniqueConstraint("username_normalized", name="uq_users_username_normalized"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("wallet_address", name="uq_users_wallet_address"),
        sa.UniqueConstraint("connected_wallet_address", name="uq_users_connected_wallet_address"),
        sa.UniqueConstraint("referral_code", name="uq_users_referral_code"),
        sa.CheckConstraint(
            "(auth_method = 'email' AND email IS NOT NULL AND password_hash IS NOT NULL"
            " AND wallet_address IS NULL)"
            " OR (auth_method = 'wallet' AND wallet_address IS NOT NULL"
            " AND email IS NULL AND password_hash IS NULL)",
            name="ck_users_identity_variant",
        ),
        sa.CheckConstraint("lob_available >= 0", name="ck_users_lob_available_non_negative"),
        sa.CheckConstraint("lob_pending >= 0", name="ck_users_lob_pending_non_negative"),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
        sa.CheckConstraint("escrow_balance >= 0", name="ck_users_escrow_balance_non_negative"),
    )

    # --- blogs ---
    op.create_table(
        "blogs",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(240), nullable=False),
        sa.Column("excerpt", sa.String(300), nullable=True),
        sa.Column("thumbnail", sa.Text(), nullable=False),
        _user_fk("author_id"),
        sa.Column("category", sa.String(32), nullable=False, server_default="News"),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("sections", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("featured", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sponsored", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("action_button", postgresql.JSONB(), nullable=True),
        sa.Column("views", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("likes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("earnings_total", MONEY, nullable=False, server_default="0"),
        sa.Column("earnings_available", MONEY, nullable=False, server_default="0"),
        sa.Column("earnings_withdrawn", MONEY, nullable=False, server_default="0"),
        _ts("published_at"),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
        sa.UniqueConstraint("slug", name="uq_blogs_slug"),
        sa.CheckConstraint("earnings_available >= 0", name="ck_blogs_earnings_available_non_negative"),
    )
    op.create_index("ix_blogs_author_id", "blogs", ["author_id"])
    op.create_index("ix_blogs_status", "blogs", ["status"])
    op.create_index("ix_blogs_status_published_at", "blogs", ["status", sa.text("published_at DESC")])

    op.create_table(
        "blog_likes",
        _id(),
        sa.Column("blog_id", sa.BigInteger(), sa.ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("blog_id", "user_id", name="uq_blog_likes_blog_user"),
    )

    op.create_table(
        "blog_comments",
        _id(),
        sa.Column("blog_id", sa.BigInteger(), sa.ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_blog_comments_blog_id", "blog_comments", ["blog_id"])

    op.create_table(
        "blog_saves",
        _id(),
        sa.Column("blog_id", sa.BigInteger(), sa.ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("blog_id", "user_id", name="uq_blog_saves_blog_user"),
    )
    op.create_index("ix_blog_saves_user_id", "blog_saves", ["user_id"])

    op.create_table(
        "blog_follows",
        _id(),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_blog_follows_pair"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_blog_follows_not_self"),
    )
    op.create_index("ix_blog_follows_follower_id", "blog_follows", ["follower_id"])
    op.create_index("ix_blog_follows_following_id", "blog_follows", ["following_id"])

    op.create_table(
        "blog_earnings",
        _id(),
        _user_fk("user_id"),
        sa.Column("blog_id", sa.BigInteger(), sa.ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="available"),
        _ts("created_at", nullable=False),
        _ts("withdrawn_at"),
        sa.CheckConstraint("type IN ('view', 'impression')", name="ck_blog_earnings_type"),
    )
    op.create_index("ix_blog_earnings_user_id", "blog_earnings", ["user_id"])
    op.create_index("ix_blog_earnings_blog_id", "blog_earnings", ["blog_id"])

    # --- referrals ---
    op.create_table(
        "referrals",
        _id(),
        _user_fk("referrer_id"),
        _user_fk("referred_user_id"),
        sa.Column("bonus_earned", MONEY, nullable=False, server_default="10"),
        sa.Column("lob_tokens", MONEY, nullable=False, server_default="100"),
        sa.Column("activity_points", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("tokens_withdrawn", MONEY, nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        _ts("approved_at"),
        _ts("withdrawn_at"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("referrer_id", "referred_user_id", name="uq_referrals_referrer_referred"),
        sa.CheckConstraint("referrer_id <> referred_user_id", name="ck_referrals_not_self"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])
    op.create_index("ix_referrals_referred_user_id", "referrals", ["referred_user_id"])
    op.create_index("ix_referrals_status", "referrals", ["status"])

    # --- transactions ---
    op.create_table(
        "transactions",
        _id(),
        _user_fk("from_user_id", nullable=True, ondelete="SET NULL"),
        _user_fk("to_user_id", nullable=True, ondelete="SET NULL"),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="USD"),
        sa.Column("fees", MONEY, nullable=False, server_default="0"),
        sa.Column("direction", sa.String(8), nullable=False, server_default="credit"),
        sa.Column("is_on_chain", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("tx_hash", sa.String(128), nullable=True),
        sa.Column("token_symbol", sa.String(16), nullable=True),
        sa.Column("token_address", sa.String(64), nullable=True),
        sa.Column("from_address", sa.String(64), nullable=True),
        sa.Column("to_address", sa.String(64), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("gas_used", sa.BigInteger(), nullable=True),
        sa.Column("gas_price", sa.BigInteger(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("tx_hash", name="uq_transactions_tx_hash"),
        sa.CheckConstraint("direction IN ('credit', 'debit')", name="ck_transactions_direction"),
    )
    op.create_index("ix_transactions_from_user_id", "transactions", ["from_user_id"])
    op.create_index("ix_transactions_to_user_id", "transactions", ["to_user_id"])
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    # --- staking mirror ---
    op.create_table(
        "stakings",
        _id(),
        sa.Column("stake_id", sa.BigInteger(), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        _ts("staked_at", nullable=False),
        _ts("unlock_time"),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _ts("unstaked_at"),
        sa.Column("tx_hash", sa.String(128), nullable=False),
        sa.Column("unstake_tx_hash", sa.String(128), nullable=True),
        sa.UniqueConstraint("stake_id", name="uq_stakings_stake_id"),
        sa.UniqueConstraint("tx_hash", name="uq_stakings_tx_hash"),
    )
    op.create_index("ix_stakings_wallet_address", "stakings", ["wallet_address"])
    op.create_index("ix_stakings_staked_at", "stakings", ["staked_at"])
    op.create_index("ix_stakings_is_active", "stakings", ["is_active"])

    op.create_table(
        "stakers",
        _id(),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("total_staked", MONEY, nullable=False, server_default="0"),
        sa.Column("total_locked", MONEY, nullable=False, server_default="0"),
        sa.Column("claimable_rewards", MONEY, nullable=False, server_default="0"),
        _ts("last_synced_at", nullable=False),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("wallet_address", name="uq_stakers_wallet_address"),
    )

    # --- governance ---
    op.create_table(
        "governance_proposals",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        _user_fk("initiator_id"),
        sa.Column("status", sa.String(16), nullable=False, server_default="voting"),
        sa.Column("proposal_data", postgresql.JSONB(), nullable=True),
        sa.Column("total_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("yes_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("abstain_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_quorum", sa.Integer(), nullable=False, server_default="10"),
        _ts("voting_starts_at", nullable=False),
        sa.Column("voting_ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolution", postgresql.JSONB(), nullable=True),
        _user_fk("dispute_client_id", nullable=True, ondelete="SET NULL"),
        _user_fk("dispute_talent_id", nullable=True, ondelete="SET NULL"),
        sa.Column("disputed_amount", MONEY, nullable=True),
        sa.Column("settlement", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
        sa.CheckConstraint(
            "status IN ('draft', 'voting', 'passed', 'rejected', 'implementation', 'resolved')",
            name="ck_governance_proposals_status",
        ),
    )
    op.create_index("ix_governance_proposals_category", "governance_proposals", ["category"])
    op.create_index("ix_governance_proposals_initiator_id", "governance_proposals", ["initiator_id"])
    op.create_index("ix_governance_proposals_status", "governance_proposals", ["status"])

    op.create_table(
        "governance_votes",
        _id(),
        sa.Column(
            "proposal_id",
            sa.BigInteger(),
            sa.ForeignKey("governance_proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        sa.Column("vote", sa.String(8), nullable=False),
        sa.Column("activity_points", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("proposal_id", "user_id", name="uq_governance_votes_proposal_user"),
        sa.CheckConstraint("vote IN ('yes', 'no', 'abstain')", name="ck_governance_votes_vote"),
    )

    # --- runtime config ---
    op.create_table(
        "config_entries",
        _id(),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("value", postgresql.JSONB(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        _user_fk("updated_by_id", nullable=True, ondelete="SET NULL"),
        _ts("updated_at", nullable=False),
        sa.UniqueConstraint("key", name="uq_config_entries_key"),
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        _id(),
        _user_fk("user_id"),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index(
        "ix_notifications_user_unread",
        "notifications",
        ["user_id"],
        postgresql_where=sa.text("is_read = false"),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        "notifications",
        "config_entries",
        "governance_votes",
        "governance_proposals",
        "stakers",
        "stakings",
        "transactions",
        "referrals",
        "blog_earnings",
        "blog_follows",
        "blog_saves",
        "blog_comments",
        "blog_likes",
        "blogs",
        "users",
    ):
        op.drop_table(table)
