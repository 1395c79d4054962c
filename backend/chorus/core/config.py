"""Chorus bot configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models.identifiers import UserIdentifier

logger = logging.getLogger(__name__)

# === Path Configuration ===
CHORUS_DIR = Path(__file__).parent.parent
BACKEND_DIR = CHORUS_DIR.parent
DATA_DIR = BACKEND_DIR / "data"
ENV_FILE = BACKEND_DIR / ".env"


class ChorusSettings(BaseSettings):
    """Chorus bot settings"""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")

    # Dispatch
    admin_user: str = Field(default="", description="Global admin, as platform:id")
    command_prefix: str = Field(default="!", description="Default command prefix")
    default_cooldown: int = Field(default=5, ge=0, description="Custom command cooldown (s)")
    base_url: str = Field(default="", description="Public dashboard URL")
    allow_shell: bool = Field(default=False, description="Enable the admin shell builtin")
    max_sleep: float = Field(default=60.0, ge=0, description="Cap for the template sleep helper")

    # Scripting
    script_timeout: float = Field(default=10.0, gt=0, description="Lua evaluation timeout (s)")
    lua_modules_url: str = Field(default="", description="Git repository with Lua modules")
    lua_modules_dir: Path = Field(default=DATA_DIR / "lua_modules")

    # Twitch
    twitch_client_id: str = Field(default="", description="Twitch OAuth Client ID")
    twitch_client_secret: str = Field(default="", description="Twitch OAuth Client Secret")
    twitch_bot_id: str = Field(default="", description="Bot User ID")
    twitch_bot_token: str = Field(default="", description="Bot user access token")
    twitch_bot_refresh: str = Field(default="", description="Bot user refresh token")
    eventsub_callback_url: str = Field(default="", description="Public EventSub webhook URL")
    eventsub_secret: str = Field(default="", description="EventSub webhook secret")

    # Discord
    discord_token: str = Field(default="", description="Discord bot token")

    # Template integrations
    spotify_client_id: str = Field(default="")
    spotify_client_secret: str = Field(default="")
    owm_api_key: str = Field(default="", description="OpenWeatherMap API key")
    finnhub_api_key: str = Field(default="")
    lastfm_api_key: str = Field(default="")
    lingva_url: str = Field(default="https://lingva.ml")

    # Local TCP listener
    local_host: str = Field(default="127.0.0.1")
    local_port: int | None = Field(default=None, description="Disabled when unset")

    # Environment
    health_port: int = Field(default=4344)
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("admin_user")
    @classmethod
    def validate_admin_user(cls, v: str) -> str:
        if v:
            UserIdentifier.from_str(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def admin_identifier(self) -> UserIdentifier | None:
        return UserIdentifier.from_str(self.admin_user) if self.admin_user else None

    @property
    def twitch_enabled(self) -> bool:
        return bool(self.twitch_client_id and self.twitch_client_secret and self.twitch_bot_id)


@lru_cache
def get_settings() -> ChorusSettings:
    """Get cached settings instance"""
    return ChorusSettings()  # type: ignore[call-arg]
