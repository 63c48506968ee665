"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from worklob.auth.address_validation import validate_wallet_address
from worklob.schemas import CamelModel

# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class RegisterEmailRequest(CamelModel):
    """Email registration. ``referredBy`` is another user's referral code."""

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    referred_by: str | None = Field(None, max_length=64)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            msg = "Username must be at least 3 characters"
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RegisterWalletRequest(CamelModel):
    """Wallet registration. No email or password is stored."""

    username: str = Field(..., min_length=3, max_length=30)
    wallet_address: str = Field(..., min_length=42, max_length=42)
    referred_by: str | None = Field(None, max_length=64)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            msg = "Username must be at least 3 characters"
            raise ValueError(msg)
        return v

    @field_validator("wallet_address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_wallet_address(v)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class LoginRequest(CamelModel):
    """Login by email + password, or by wallet address alone."""

    email: str | None = None
    wallet_address: str | None = None
    password: str | None = Field(None, max_length=128)

    @property
    def identifier(self) -> str | None:
        return self.wallet_address or self.email


class ChangePasswordRequest(CamelModel):
    """Change password (requires current password)."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class LobTokenBalances(CamelModel):
    pending: float = 0
    available: float = 0
    withdrawn: float = 0


class UserStats(CamelModel):
    activity_points: int = 0
    votes_cast: int = 0
    proposals_submitted: int = 0
    disputes_resolved: int = 0


class UserWallet(CamelModel):
    balance: float = 0
    escrow_balance: float = 0


class UserResponse(CamelModel):
    """Full account view, returned only to its owner."""

    id: int
    username: str
    auth_method: str
    email: str | None = None
    wallet_address: str | None = None
    connected_wallet_address: str | None = None
    role: str
    referral_code: str
    stats: UserStats
    wallet: UserWallet
    lob_tokens: LobTokenBalances
    created_at: datetime | None = None
    last_seen: datetime | None = None


class AuthResponse(CamelModel):
    """Token response returned after successful auth."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    login_method: str
    user: UserResponse
