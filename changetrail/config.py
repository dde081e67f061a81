"""Application settings loaded from environment variables."""
from typing import Annotated, Dict, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: str = "development"
    database_url: str = "sqlite:///./changetrail.db"
    log_level: str = "INFO"
    cors_origins: Annotated[List[str], NoDecode] = ["*"]

    # Site-local zone used to anchor naive "YYYY-MM-DD HH:MM:SS" values
    timezone: str = "UTC"

    roles_to_track: Annotated[List[str], NoDecode] = ["administrator", "editor", "author", "contributor", "subscriber"]

    # Keys whose "0"/"1" values are booleans rather than integers
    boolean_keys: Annotated[List[str], NoDecode] = [
        "show_admin_bar_front",
        "rich_editing",
        "syntax_highlighting",
        "comment_shortcuts",
        "use_ssl",
        "show_ui",
        "ping_status",
    ]

    # Foreign-key-like property keys and the entity kind they point at
    reference_keys: Dict[str, str] = {
        "post_author": "user",
        "user_id": "user",
        "post_parent": "post",
        "post_id": "post",
        "comment_post_ID": "post",
        "comment_parent": "comment",
        "parent": "term",
    }

    # Noise keys never recorded as changes
    suppressed_keys: Annotated[List[str], NoDecode] = ["post_date_gmt", "post_modified_gmt", "comment_date_gmt"]

    session_continuation_seconds: int = 300
    items_per_page: int = 20

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        # Render/Heroku use postgres:// but SQLAlchemy needs postgresql://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value

    @field_validator("roles_to_track", "boolean_keys", "suppressed_keys", "cors_origins", mode="before")
    @classmethod
    def parse_comma_separated(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


settings = Settings()
