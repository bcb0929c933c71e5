"""Configuration settings for the roadmap gate."""

# Load .env into os.environ so store credentials (e.g. SUPABASE_URL) resolve
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Global settings for the roadmap gate.

    Settings can be overridden via environment variables with ROADMAP_ prefix.
    Example: ROADMAP_PROFILE_STORE=supabase
    """

    # Persistence
    profile_store: str = Field(
        default="json",
        description="Profile store backend: memory, json or supabase"
    )
    json_store_path: str = Field(
        default="./data/profiles.json",
        description="File backing the json profile store"
    )
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (env: ROADMAP_SUPABASE_URL)",
    )
    supabase_key: str = Field(
        default="",
        description="Supabase service or anon key (env: ROADMAP_SUPABASE_KEY)",
    )
    profiles_table: str = Field(
        default="profiles",
        description="Table holding current_stage / stage_progress columns"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for the Supabase store"
    )
    max_write_retries: int = Field(
        default=3,
        ge=0,
        description="Retries of a read-modify-write after a version conflict"
    )

    # Gate policy
    allow_unknown_tasks: bool = Field(
        default=False,
        description="Record task ids the stage does not declare instead of rejecting them"
    )
    enforce_stage_order: bool = Field(
        default=False,
        description="Reject advance_stage jumps past the next stage or over an unverified stage"
    )
    roadmap_config_path: Optional[str] = Field(
        default=None,
        description="JSON file overriding the built-in roadmap"
    )

    log_level: str = Field(
        default="INFO",
        description="Log level for the CLI"
    )

    model_config = {
        "env_prefix": "ROADMAP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def get_json_store_path(self) -> Path:
        """Get json store path as Path object."""
        return Path(self.json_store_path)

    def get_roadmap_config_path(self) -> Optional[Path]:
        """Get roadmap override path as Path object, if configured."""
        if not self.roadmap_config_path:
            return None
        return Path(self.roadmap_config_path)


# Create singleton instance
settings = Settings()
