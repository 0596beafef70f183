import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from collegemate.duration import parse_duration
from collegemate.types import Duration

DEFAULT_BASE_URL = "https://college-mate-backend-1.onrender.com/api/v1"


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Backend origin; every endpoint path is relative to it
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="COLLEGEMATE_BASE_URL")

    # Transport timeout; a timeout surfaces as NetworkError
    timeout: Duration = Field(default="30s", alias="COLLEGEMATE_TIMEOUT")

    # How long unsubscribed cache entries are kept
    cache_retention: Duration = Field(default="60s", alias="COLLEGEMATE_CACHE_RETENTION")

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return value.rstrip("/")

    @field_validator("timeout", "cache_retention")
    @classmethod
    def _check_duration(cls, value: Duration) -> Duration:
        parse_duration(value)
        return value

    @property
    def timeout_seconds(self) -> float:
        return parse_duration(self.timeout)

    @property
    def cache_retention_seconds(self) -> float:
        return parse_duration(self.cache_retention)

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        """Load ``.env`` (if present) and read settings from the environment."""
        load_dotenv(env_file)
        return cls.model_validate(dict(os.environ))
