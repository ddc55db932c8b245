"""Application settings loaded from the environment."""

from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# backend/.env.local, next to the package
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

_TRUTHY = {"1", "true", "yes", "on"}


class ResourceConfig(BaseModel):
    collection: str
    path: str
    index_key: Optional[str] = None
    overwrite_on_duplicated: bool = False


def parse_resources(raw: str) -> List[ResourceConfig]:
    """Parse ``collection:path[:index_key[:overwrite]]`` entries separated by commas.

    Example: ``posts:/api/posts,tags:/api/tags:name:true``
    """
    resources: List[ResourceConfig] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) < 2 or len(parts) > 4 or not parts[0] or not parts[1]:
            raise ValueError(f"Invalid resource entry: {entry!r}")
        collection, path = parts[0], parts[1]
        if not path.startswith("/"):
            raise ValueError(f"Resource path must start with '/': {entry!r}")
        index_key = parts[2] if len(parts) > 2 and parts[2] else None
        overwrite = len(parts) > 3 and parts[3].lower() in _TRUTHY
        if overwrite and not index_key:
            raise ValueError(f"Overwrite on duplicate requires an index key: {entry!r}")
        resources.append(ResourceConfig(
            collection=collection,
            path=path.rstrip("/"),
            index_key=index_key,
            overwrite_on_duplicated=overwrite,
        ))
    return resources


class Settings(BaseSettings):
    """Settings read from ``MONGOREST_*`` variables and ``backend/.env.local``."""

    model_config = SettingsConfigDict(
        env_prefix="MONGOREST_",
        env_file=_ENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    mongo_uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URI")
    db_name: str = Field(default="mongorest", description="Default database")
    admin_id: Optional[str] = Field(default=None, description="Subject id allowed to patch 'system' and delete anything")
    # comma list of collection:path[:index_key[:overwrite]]
    resources: Annotated[List[ResourceConfig], NoDecode] = Field(default_factory=list)
    no_login: bool = Field(default=False, description="Skip the login guard on mutating routes")
    server_selection_timeout_ms: int = 5000
    connect_retries: int = 3
    connect_backoff_s: float = 1.0
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = None
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("resources", mode="before")
    @classmethod
    def _parse_resources(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_resources(value)
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @field_validator("admin_id", "log_file", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return value or None


def load_settings() -> Settings:
    return Settings()
