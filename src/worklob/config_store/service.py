"""Runtime-tunable rates and thresholds stored in ``config_entries``.

Every key has exactly one registered default and one set of bounds here;
readers never carry their own fallback values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from worklob.db.models import ConfigEntry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class ConfigValidationError(ValueError):
    """Raised when a config value is missing, non-numeric or out of range."""


@dataclass(frozen=True)
class ConfigKey:
    """Registered config key: default value plus validation bounds."""

    default: int | float
    description: str
    minimum: float = 0
    maximum: float | None = None
    integer: bool = False


REGISTRY: dict[str, ConfigKey] = {
    "blog_earnings_views_rate": ConfigKey(100, "LOB tokens earned per views threshold"),
    "blog_earnings_views_threshold": ConfigKey(
        1000, "Number of views required to earn the views rate", minimum=1, integer=True
    ),
    "blog_earnings_impressions_rate": ConfigKey(100, "LOB tokens earned per impressions threshold"),
    "blog_earnings_impressions_threshold": ConfigKey(
        100, "Number of impressions required to earn the impressions rate", minimum=1, integer=True
    ),
    "referral_lob_tokens": ConfigKey(100, "LOB tokens granted to a referrer per approved referral"),
    "referral_activity_points": ConfigKey(5, "Activity points granted to a referrer on approval", integer=True),
    "referral_bonus": ConfigKey(10, "Legacy USD bonus recorded on each referral"),
    "referral_approval_activity_points": ConfigKey(
        20, "Activity points a referred user needs before the referral is approved", integer=True
    ),
    "governance_vote_reward_points": ConfigKey(5, "Activity points granted for a first vote", integer=True),
    "dispute_settlement_percentage": ConfigKey(
        50, "Default share of a disputed amount settled to the talent", maximum=100
    ),
}


@dataclass(frozen=True)
class BlogEarningsConfig:
    """Threshold/rate pairs used by the blog monetization rule."""

    views_rate: float
    views_threshold: int
    impressions_rate: float
    impressions_threshold: int

    def as_dict(self) -> dict[str, float | int]:
        return {
            "viewsRate": self.views_rate,
            "viewsThreshold": self.views_threshold,
            "impressionsRate": self.impressions_rate,
            "impressionsThreshold": self.impressions_threshold,
        }


def default_for(key: str) -> Any:  # noqa: ANN401
    """Registered default for a key, or None for unregistered keys."""
    config_key = REGISTRY.get(key)
    return config_key.default if config_key else None


def validate_value(key: str, value: Any) -> int | float:  # noqa: ANN401
    """
    Validate and normalize a value for a registered key.

    Raises:
        ConfigValidationError: Unknown key, non-numeric value, or out of range.
    """
    config_key = REGISTRY.get(key)
    if config_key is None:
        msg = f"Unknown config key: {key}"
        raise ConfigValidationError(msg)

    if isinstance(value, bool) or value is None:
        msg = f"{key} must be a number"
        raise ConfigValidationError(msg)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        msg = f"{key} must be a number"
        raise ConfigValidationError(msg) from e

    if not math.isfinite(number):
        msg = f"{key} must be a finite number"
        raise ConfigValidationError(msg)
    if config_key.integer and not number.is_integer():
        msg = f"{key} must be a whole number"
        raise ConfigValidationError(msg)
    if number < config_key.minimum:
        msg = f"{key} must be at least {config_key.minimum:g}"
        raise ConfigValidationError(msg)
    if config_key.maximum is not None and number > config_key.maximum:
        msg = f"{key} must be at most {config_key.maximum:g}"
        raise ConfigValidationError(msg)

    if config_key.integer or number.is_integer():
        return int(number)
    return number


async def get_entry(db: AsyncSession, key: str) -> ConfigEntry | None:
    """Fetch the stored row for a key."""
    result = await db.execute(select(ConfigEntry).where(ConfigEntry.key == key))
    return result.scalar_one_or_none()


async def get_value(db: AsyncSession, key: str, default: Any = None) -> Any:  # noqa: ANN401
    """Return the stored value, else ``default``, else the registered default."""
    entry = await get_entry(db, key)
    if entry is not None:
        return entry.value
    if default is not None:
        return default
    return default_for(key)


async def get_values(db: AsyncSession, keys: list[str]) -> dict[str, Any]:
    """Fetch several keys in one query, filling gaps with registered defaults."""
    result = await db.execute(select(ConfigEntry).where(ConfigEntry.key.in_(keys)))
    stored = {entry.key: entry.value for entry in result.scalars().all()}
    return {key: stored.get(key, default_for(key)) for key in keys}


async def set_value(
    db: AsyncSession,
    key: str,
    value: Any,  # noqa: ANN401
    description: str = "",
    updated_by: int | None = None,
) -> ConfigEntry:
    """Insert or update a config value. Caller commits."""
    entry = await get_entry(db, key)
    now = datetime.now(timezone.utc)
    if entry is None:
        entry = ConfigEntry(
            key=key,
            value=value,
            description=description or (REGISTRY[key].description if key in REGISTRY else ""),
            updated_by_id=updated_by,
            updated_at=now,
        )
        db.add(entry)
    else:
        entry.value = value
        if description:
            entry.description = description
        entry.updated_by_id = updated_by
        entry.updated_at = now
    await db.flush()
    logger.info("config_updated", key=key, value=value, updated_by=updated_by)
    return entry


async def get_blog_earnings_config(db: AsyncSession) -> BlogEarningsConfig:
    """Load the four blog earnings keys."""
    values = await get_values(
        db,
        [
            "blog_earnings_views_rate",
            "blog_earnings_views_threshold",
            "blog_earnings_impressions_rate",
            "blog_earnings_impressions_threshold",
        ],
    )
    return BlogEarningsConfig(
        views_rate=values["blog_earnings_views_rate"],
        views_threshold=int(values["blog_earnings_views_threshold"]),
        impressions_rate=values["blog_earnings_impressions_rate"],
        impressions_threshold=int(values["blog_earnings_impressions_threshold"]),
    )
