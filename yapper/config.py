"""
yapper.config — YAML Configuration Loader
==========================================

**Why this file exists:**
This module reads ``config.yaml`` for infrastructure settings (Discord
identity, admin role) and for the tuning knobs of the write-behind XP
pipeline (sync cadence, transaction timeout, leaderboard overfetch).
Secrets (``DISCORD_TOKEN``, ``DATABASE_URL``, ``REDIS_URL``) stay in the
environment and are loaded from ``.env`` by the entry point.

Usage::

    from yapper.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.xp.sync_interval_seconds)  # 20
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# XP pipeline tuning
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class XpConfig:
    """Tunables for the buffer → database sync and live leaderboard reads."""

    # Seconds between two sync cycles.  The next cycle never starts before
    # the previous one finished.
    sync_interval_seconds: float = 20.0

    # Upper bound for one guild's batch transaction.
    sync_timeout_seconds: float = 10.0

    # Extra durable rows fetched past the requested page so buffered deltas
    # can re-order the page without a full table scan.
    overfetch_margin: int = 20

    # Rows per leaderboard page.
    page_size: int = 10

    # Cap on XP granted for a single message (0 disables the cap).
    message_xp_cap: int = 0

    # Applied-snapshot log rows older than this are pruned.
    flush_log_retention_days: int = 7

    # Day the weekly board is zeroed at 00:00 UTC (0 = Monday … 6 = Sunday).
    # The daily board is zeroed every day at 00:00 UTC.
    weekly_reset_weekday: int = 0

    def __post_init__(self) -> None:
        if self.sync_interval_seconds <= 0:
            raise ValueError("xp.sync_interval_seconds must be positive")
        if self.sync_timeout_seconds <= 0:
            raise ValueError("xp.sync_timeout_seconds must be positive")
        if self.overfetch_margin < 0:
            raise ValueError("xp.overfetch_margin must be >= 0")
        if self.page_size <= 0:
            raise ValueError("xp.page_size must be positive")
        if self.message_xp_cap < 0:
            raise ValueError("xp.message_xp_cap must be >= 0")
        if self.flush_log_retention_days <= 0:
            raise ValueError("xp.flush_log_retention_days must be positive")
        if not 0 <= self.weekly_reset_weekday <= 6:
            raise ValueError("xp.weekly_reset_weekday must be between 0 and 6")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class YapperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str

    # Admin
    admin_role_id: int  # Discord role required for admin commands

    # XP pipeline
    xp: XpConfig = field(default_factory=XpConfig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> YapperConfig:
    """Read *path* and return a :class:`YapperConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If an ``xp`` tunable is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return YapperConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        admin_role_id=int(raw["admin_role_id"]),
        xp=_parse_xp(raw.get("xp") or {}),
    )


def _parse_xp(raw: dict) -> XpConfig:
    defaults = XpConfig()
    return XpConfig(
        sync_interval_seconds=float(
            raw.get("sync_interval_seconds", defaults.sync_interval_seconds)
        ),
        sync_timeout_seconds=float(
            raw.get("sync_timeout_seconds", defaults.sync_timeout_seconds)
        ),
        overfetch_margin=int(raw.get("overfetch_margin", defaults.overfetch_margin)),
        page_size=int(raw.get("page_size", defaults.page_size)),
        message_xp_cap=int(raw.get("message_xp_cap", defaults.message_xp_cap)),
        flush_log_retention_days=int(
            raw.get("flush_log_retention_days", defaults.flush_log_retention_days)
        ),
        weekly_reset_weekday=int(
            raw.get("weekly_reset_weekday", defaults.weekly_reset_weekday)
        ),
    )
