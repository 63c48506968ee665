"""ORM models for the WorkLob marketplace.

Balances and counters on these rows are only ever changed through SQL update
operators (``col = col + :x``) in the feature services, never by assigning a
value computed in Python.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worklob.db.base import Base, BigIntPK, JSONType, Money


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailIdentity:
    """Account that signs in with email + password."""

    email: str
    kind: Literal["email"] = "email"


@dataclass(frozen=True)
class WalletIdentity:
    """Account that signs in with an EVM wallet address. Has no email or password."""

    wallet_address: str
    kind: Literal["wallet"] = "wallet"


Identity = EmailIdentity | WalletIdentity


class User(Base):
    """Marketplace account plus its ledger balances."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(auth_method = 'email' AND email IS NOT NULL AND password_hash IS NOT NULL"
            " AND wallet_address IS NULL)"
            " OR (auth_method = 'wallet' AND wallet_address IS NOT NULL"
            " AND email IS NULL AND password_hash IS NULL)",
            name="identity_variant",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(30), nullable=False)
    username_normalized: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    auth_method: Mapped[str] = mapped_column(String(16), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)
    wallet_address: Mapped[str | None] = mapped_column(String(42), unique=True, nullable=True)
    # External wallet linked by an email account; not a sign-in identity.
    connected_wallet_address: Mapped[str | None] = mapped_column(String(42), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="talent", server_default="talent")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")

    # --- Stats ---
    activity_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    votes_cast: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    proposals_submitted: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    disputes_resolved: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # --- Wallet (USD) ---
    wallet_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("1000"), server_default="1000")
    escrow_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")

    # --- Referral / LOB tokens ---
    referral_code: Mapped[str] = mapped_column(String(48), unique=True, nullable=False)
    referred_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    referral_bonus: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    lob_pending: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    lob_available: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    lob_withdrawn: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def identity(self) -> Identity:
        """The sign-in variant of this account."""
        if self.auth_method == "wallet":
            return WalletIdentity(wallet_address=self.wallet_address or "")
        return EmailIdentity(email=self.email or "")


# ---------------------------------------------------------------------------
# Blogs
# ---------------------------------------------------------------------------


class Blog(Base):
    """Monetized blog post. earnings_total == earnings_available + earnings_withdrawn."""

    __tablename__ = "blogs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(240), unique=True, nullable=False)
    excerpt: Mapped[str | None] = mapped_column(String(300), nullable=True)
    thumbnail: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="News")
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    sections: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", index=True)
    featured: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    sponsored: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    priority: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    action_button: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    views: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    impressions: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    likes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    earnings_total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    earnings_available: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    earnings_withdrawn: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    author: Mapped[User] = relationship("User", lazy="joined")


class BlogLike(Base):
    """One like per user per blog."""

    __tablename__ = "blog_likes"
    __table_args__ = (UniqueConstraint("blog_id", "user_id", name="uq_blog_likes_blog_user"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    blog_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class BlogComment(Base):
    """Reader comment on a blog."""

    __tablename__ = "blog_comments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    blog_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user: Mapped[User] = relationship("User", lazy="joined")


class BlogSave(Base):
    """A user's bookmark of a blog."""

    __tablename__ = "blog_saves"
    __table_args__ = (UniqueConstraint("blog_id", "user_id", name="uq_blog_saves_blog_user"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    blog_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class BlogFollow(Base):
    """Follower -> blogger edge."""

    __tablename__ = "blog_follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_blog_follows_pair"),
        CheckConstraint("follower_id <> following_id", name="not_self"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    follower_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    following_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class BlogEarning(Base):
    """A single positive marginal earning credited to a blog's author."""

    __tablename__ = "blog_earnings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    blog_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("blogs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="available")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class Referral(Base):
    """Referrer → referred user edge with the reward it carries."""

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_user_id", name="uq_referrals_referrer_referred"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referred_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bonus_earned: Mapped[Decimal] = mapped_column(Money, default=Decimal("10"))
    lob_tokens: Mapped[Decimal] = mapped_column(Money, default=Decimal("100"))
    activity_points: Mapped[int] = mapped_column(Integer, default=5)
    tokens_withdrawn: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    referred_user: Mapped[User] = relationship("User", foreign_keys=[referred_user_id], lazy="joined")


# ---------------------------------------------------------------------------
# Transactions (append-only ledger log)
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Ledger row. A log of what happened, not the source of truth for balances."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    from_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    to_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    fees: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    direction: Mapped[str] = mapped_column(String(8), nullable=False, default="credit")

    is_on_chain: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    tx_hash: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    token_symbol: Mapped[str | None] = mapped_column(String(16), nullable=True)
    token_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    from_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_used: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_price: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


# ---------------------------------------------------------------------------
# Staking mirror
# ---------------------------------------------------------------------------


class Staking(Base):
    """Off-chain copy of one on-chain stake, trusted from the client's tx hash."""

    __tablename__ = "stakings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    stake_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    staked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    unlock_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true", index=True)
    unstaked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tx_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    unstake_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)


class Staker(Base):
    """Per-wallet staking aggregate."""

    __tablename__ = "stakers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    total_staked: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    total_locked: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    claimable_rewards: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), server_default="0")
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# Governance
# ---------------------------------------------------------------------------


class GovernanceProposal(Base):
    """
    DAO proposal. Status: draft -> voting -> passed|rejected -> implementation.

    Conflict proposals may name the disputing parties. Those disputes can end
    early in a settlement both parties approve, then ``resolved``.
    """

    __tablename__ = "governance_proposals"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    initiator_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="voting", index=True)
    proposal_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    total_votes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    yes_votes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    no_votes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    abstain_votes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    required_quorum: Mapped[int] = mapped_column(Integer, default=10, server_default="10")

    voting_starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    voting_ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    dispute_client_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    dispute_talent_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    disputed_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    settlement: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    votes: Mapped[list[GovernanceVote]] = relationship(
        "GovernanceVote",
        back_populates="proposal",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GovernanceVote.id",
    )


class GovernanceVote(Base):
    """One vote per user per proposal; re-voting updates this row."""

    __tablename__ = "governance_votes"
    __table_args__ = (
        UniqueConstraint("proposal_id", "user_id", name="uq_governance_votes_proposal_user"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("governance_proposals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    vote: Mapped[str] = mapped_column(String(8), nullable=False)
    activity_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    proposal: Mapped[GovernanceProposal] = relationship("GovernanceProposal", back_populates="votes")


# ---------------------------------------------------------------------------
# Runtime config
# ---------------------------------------------------------------------------


class ConfigEntry(Base):
    """Runtime-tunable rate or threshold."""

    __tablename__ = "config_entries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    value: Mapped[Any] = mapped_column(JSONType, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", server_default="")
    updated_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """In-app notification."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, default="")
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
