"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

DISCORD_API_BASE = "https://discord.com/api/v10"
STEAM_API_BASE = "https://store.steampowered.com/api"


class Settings(BaseSettings):
    """Gamenight configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Discord application
    discord_application_id: str = ""
    discord_public_key: str = ""
    discord_bot_token: str = ""
    discord_api_base: str = DISCORD_API_BASE
    discord_max_retries: int = 3  # retries on HTTP 429 before giving up

    # External services
    steam_api_base: str = STEAM_API_BASE

    # Database
    database_url: str = "sqlite+aiosqlite:///gamenight.db"

    # Environment
    gamenight_env: str = "development"

    # Interactions
    gamenight_verify_signatures: bool = True
    # How long lfg/poll wait on link resolution before deferring the response.
    # Discord drops interactions that are not acknowledged within 3 seconds.
    gamenight_resolve_budget_seconds: float = 2.0

    # Logging
    gamenight_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _require_signatures_in_production(self) -> Settings:
        """Reject unsigned interaction handling in production."""
        if self.gamenight_env != "production":
            return self
        if not self.gamenight_verify_signatures:
            msg = "GAMENIGHT_VERIFY_SIGNATURES cannot be disabled in production."
            raise ValueError(msg)
        if not self.discord_public_key:
            msg = "DISCORD_PUBLIC_KEY must be set in production."
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _clamp_resolve_budget(self) -> Settings:
        """Keep the resolve budget inside Discord's acknowledgment window."""
        if self.gamenight_resolve_budget_seconds < 0:
            self.gamenight_resolve_budget_seconds = 0.0
        elif self.gamenight_resolve_budget_seconds > 2.5:
            self.gamenight_resolve_budget_seconds = 2.5
        return self
