"""
Shared configuration management for the Harness MCP server.
"""

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class Unconfigured:
    """No shared secret is set; the API runs in open development mode."""


@dataclass(frozen=True)
class Configured:
    """A shared secret every API caller must present."""

    secret: str

    def __repr__(self) -> str:
        return "Configured(secret='***')"


Credential = Union[Unconfigured, Configured]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="HARNESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    version: str = Field(default="3.0.0")

    # Security
    api_key: Optional[SecretStr] = Field(default=None)
    trusted_proxy_hops: int = Field(default=3, ge=0)
    enable_ip_debug: bool = Field(default=False)

    # Rate limiting
    general_rate_limit: int = Field(default=100, gt=0)
    api_rate_limit: int = Field(default=50, gt=0)
    rate_limit_window_seconds: float = Field(default=15 * 60, gt=0)

    # Request limits
    max_body_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    # Methodology documents
    docs_root: str = Field(default=".")

    # Vision API
    vision_api_url: str = Field(default="https://api.novita.ai/v3/openai/chat/completions")
    vision_api_key: Optional[SecretStr] = Field(default=None)
    vision_model: str = Field(default="meta-llama/llama-3.2-11b-vision-instruct")
    vision_timeout_seconds: float = Field(default=30.0)

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    def credential(self) -> Credential:
        """Resolve the configured API key into an explicit credential state."""
        if self.api_key is None:
            return Unconfigured()
        secret = self.api_key.get_secret_value()
        if not secret:
            return Unconfigured()
        return Configured(secret)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "mcp"
    port: int = 3000
    host: str = "0.0.0.0"


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``port`` is only applied when given so that ``HARNESS_PORT`` wins otherwise.
    """
    if port is not None:
        overrides["port"] = port
    return ServiceConfig(service_name=service_name, **overrides)
