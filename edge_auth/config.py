"""Application configuration via environment variables."""

import json
import re
from typing import Annotated, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

LOCAL_ORIGINS = ("http://localhost:*", "https://localhost:*")


class ConfigurationError(RuntimeError):
    """A required platform binding is missing or unusable."""


class Settings(BaseSettings):
    environment: Literal["local", "staging", "production"] = "local"
    auth_secret: str = "change-me-in-production"
    base_url: str = "http://localhost:8787"
    public_origin: str = ""
    # Comma-separated or a JSON array
    extra_trusted_origins: Annotated[list[str], NoDecode] = []
    edge_origin_secret: str = ""  # X-Origin-Verify value CloudFront injects
    database_binding: str = "HYPERDRIVE"
    database_echo: bool = False
    database_auto_create: bool = False
    rate_limit_storage: str = "memory://"
    session_backend: str = "memory"  # "memory" or "dynamodb"
    session_https_only: bool = False
    dynamodb_table: str = "edge_auth_ui_sessions"
    dynamodb_endpoint: str = ""  # For local DynamoDB
    aws_region: str = "us-east-1"
    log_level: str = "INFO"
    port: int = 8787

    @field_validator("extra_trusted_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            if v.lstrip().startswith("["):
                return json.loads(v)
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @property
    def trusted_origins(self) -> list[str]:
        """Origin patterns accepted by the auth engine and CORS, per tier."""
        origins = [] if self.environment == "production" else list(LOCAL_ORIGINS)
        if self.public_origin:
            origins.append(self.public_origin)
        origins.extend(o for o in self.extra_trusted_origins if o not in origins)
        return origins

    @property
    def trusted_origin_regex(self) -> str:
        """The trusted origin patterns as one regex, for CORSMiddleware."""
        parts = [re.escape(o).replace(r"\*", "[^/]*") for o in self.trusted_origins]
        return "^(" + "|".join(parts) + ")$" if parts else "^$"

    model_config = {"env_prefix": "", "case_sensitive": False}


settings: Settings | None = None


def get_settings() -> Settings:
    global settings
    if settings is None:
        settings = Settings()
    return settings


def override_settings(s: Settings) -> None:
    """For testing: inject a Settings instance."""
    global settings
    settings = s
