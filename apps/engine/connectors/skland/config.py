"""Configuration model for the Skland connector and session engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from os import getenv


@dataclass(frozen=True)
class RetryConfig:
    """Retry controls for the token exchange chain."""

    max_retries: int = 2
    delay_seconds: float = 1.0


@dataclass(frozen=True)
class SessionPolicy:
    """Lifetimes and limits governing cached and persisted session state."""

    freshness_window_seconds: float = 600.0
    session_expiry_seconds: float = 30 * 24 * 60 * 60
    save_debounce_seconds: float = 0.3
    max_restore_attempts: int = 3


@dataclass(frozen=True)
class SklandConfig:
    """Centralized connector configuration."""

    hg_auth_base_url: str = "https://as.hypergryph.com"
    skland_base_url: str = "https://zonai.skland.com"
    app_code: str = "4ca99fa6b56cc2ba"
    game_app_code: str = "arknights"
    platform: str = "3"
    version_name: str = "1.0.0"
    timeout_seconds: float = 10.0
    state_db_path: str = "~/.skland/session.db"
    retry: RetryConfig = field(default_factory=RetryConfig)
    session: SessionPolicy = field(default_factory=SessionPolicy)

    @classmethod
    def from_env(cls) -> "SklandConfig":
        """Build config from environment variables."""

        defaults = cls()
        return cls(
            hg_auth_base_url=getenv("SKLAND_HG_AUTH_BASE_URL", defaults.hg_auth_base_url),
            skland_base_url=getenv("SKLAND_BASE_URL", defaults.skland_base_url),
            app_code=getenv("SKLAND_APP_CODE", defaults.app_code),
            game_app_code=getenv("SKLAND_GAME_APP_CODE", defaults.game_app_code),
            platform=getenv("SKLAND_PLATFORM", defaults.platform),
            version_name=getenv("SKLAND_VERSION_NAME", defaults.version_name),
            timeout_seconds=float(getenv("SKLAND_TIMEOUT_SECONDS", "10.0")),
            state_db_path=getenv("SKLAND_STATE_DB", defaults.state_db_path),
            retry=RetryConfig(
                max_retries=int(getenv("SKLAND_RETRY_MAX_RETRIES", "2")),
                delay_seconds=float(getenv("SKLAND_RETRY_DELAY_SECONDS", "1.0")),
            ),
            session=SessionPolicy(
                freshness_window_seconds=float(getenv("SKLAND_FRESHNESS_WINDOW_SECONDS", "600")),
                session_expiry_seconds=float(getenv("SKLAND_SESSION_EXPIRY_SECONDS", str(30 * 24 * 60 * 60))),
                save_debounce_seconds=float(getenv("SKLAND_SAVE_DEBOUNCE_SECONDS", "0.3")),
                max_restore_attempts=int(getenv("SKLAND_MAX_RESTORE_ATTEMPTS", "3")),
            ),
        )
