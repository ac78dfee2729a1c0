"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclass for safety and clarity
- Single source of truth for all configurable values

EXTENSIBILITY:
- To tune spam scoring: override REVIEWTRUST_SPAM_THRESHOLD or build a
  SpamPolicy with different weights
- To deliver notifications: set the email and realtime endpoint URLs
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from ...domain.spam import SpamPolicy

# Load .env file if present (development convenience)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class PipelineSettings:
    """Duplicate, rate limit and token lifetime settings."""

    # SAFETY: one review per email/IP/device per business per window
    duplicate_cooldown_hours: int = field(
        default_factory=lambda: _env_int("REVIEWTRUST_COOLDOWN_HOURS", 24)
    )

    # SAFETY: submissions per IP across all businesses
    ip_submission_limit: int = field(
        default_factory=lambda: _env_int("REVIEWTRUST_IP_LIMIT", 3)
    )
    rate_limit_window_hours: int = 24

    token_ttl_hours: int = field(
        default_factory=lambda: _env_int("REVIEWTRUST_TOKEN_TTL_HOURS", 24)
    )
    max_verification_resends: int = 5


@dataclass(frozen=True)
class AlertSettings:
    """Low-rating alert settings."""

    average_threshold: float = field(
        default_factory=lambda: _env_float("REVIEWTRUST_ALERT_AVERAGE", 4.0)
    )
    max_triggering_rating: int = 3
    snippet_length: int = 160


@dataclass(frozen=True)
class NotificationSettings:
    """Email and realtime delivery endpoints."""

    email_api_url: str = field(default_factory=lambda: os.getenv("EMAIL_API_URL", ""))
    email_api_key: str = field(default_factory=lambda: os.getenv("EMAIL_API_KEY", ""))
    email_sender: str = field(
        default_factory=lambda: os.getenv("EMAIL_SENDER", "reviews@reviewtrust.local")
    )

    realtime_url: str = field(default_factory=lambda: os.getenv("REALTIME_URL", ""))
    realtime_api_key: str = field(default_factory=lambda: os.getenv("REALTIME_API_KEY", ""))

    # Base URL for links inside emails
    client_url: str = field(
        default_factory=lambda: os.getenv("CLIENT_URL", "http://127.0.0.1:8000")
    )

    timeout_seconds: int = 10

    # Outbox relay
    max_attempts: int = 5
    relay_batch_size: int = 50
    relay_poll_seconds: int = 5


def _default_spam_policy() -> SpamPolicy:
    return SpamPolicy(threshold=_env_int("REVIEWTRUST_SPAM_THRESHOLD", 70))


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from reviewtrust.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.pipeline.duplicate_cooldown_hours)
    """

    # Sub-settings groups
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    spam: SpamPolicy = field(default_factory=_default_spam_policy)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    database_file: Path = field(
        default_factory=lambda: Path(os.getenv("REVIEWTRUST_DB", "reviewtrust.db"))
    )

    # Protects the moderation listing endpoints
    admin_api_key: str = field(default_factory=lambda: os.getenv("ADMIN_API_KEY", ""))

    # Root logger level for the web app and the relay runner
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.notifications.email_api_url:
            issues.append(
                "WARNING: EMAIL_API_URL not set. "
                "Verification emails will only be logged."
            )

        if not self.notifications.realtime_url:
            issues.append(
                "WARNING: REALTIME_URL not set. "
                "Dashboard push notifications will only be logged."
            )

        if not self.admin_api_key:
            issues.append(
                "WARNING: ADMIN_API_KEY not set. "
                "Moderation listing endpoints are disabled."
            )

        if not 0 < self.spam.threshold <= 100:
            issues.append(
                f"ERROR: spam threshold {self.spam.threshold} must be within 1..100."
            )

        if not isinstance(logging.getLevelName(self.log_level), int):
            issues.append(
                f"ERROR: LOG_LEVEL {self.log_level!r} is not a logging level."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
