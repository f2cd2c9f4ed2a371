from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from lesson_corpus.utils.years import validate_academic_year


class PathsConfig(BaseModel):
    """Filesystem layout for the local cache."""

    cache_dir: Path = Field(Path("data/cache"), description="Directory holding one JSON file per cache key.")


class RemoteConfig(BaseModel):
    """Connection settings for the PostgREST-style remote mirror."""

    enabled: bool = False
    url: Optional[str] = Field(None, description="Base URL of the remote project, e.g. https://xyz.supabase.co")
    api_key: Optional[str] = Field(None, description="Anon or service key sent as apikey and bearer token.")
    user_id: Optional[str] = Field(None, description="Tenant id every remote row is scoped by.")
    timeout: float = Field(10.0, gt=0)
    rest_path: str = Field("/rest/v1")

    @model_validator(mode="after")
    def require_credentials_when_enabled(self) -> "RemoteConfig":
        """An enabled remote needs somewhere to go and someone to be."""
        if self.enabled:
            missing = [name for name in ("url", "api_key", "user_id") if not getattr(self, name)]
            if missing:
                raise ValueError(f"remote is enabled but missing: {', '.join(missing)}")
        return self


class PlannerConfig(BaseModel):
    """Defaults for the active partition and half-term auto-assignment."""

    default_collection: str = Field("LKG", min_length=1)
    academic_year: Optional[str] = Field(
        None, description="Active academic year; computed from today's date when omitted."
    )
    half_term_capacity: int = Field(10, ge=1, description="Bucket size used by auto-assignment.")

    @field_validator("academic_year")
    def check_academic_year(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_academic_year(value)


class LoggingConfig(BaseModel):
    """Controls for logging output and format."""

    level: str = Field("INFO")
    use_json: bool = False


class Settings(BaseModel):
    """Top-level project configuration aggregating all sub-settings."""

    project_name: str = Field("Lesson Corpus")
    paths: PathsConfig = Field(default_factory=PathsConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
