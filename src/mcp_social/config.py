"""Configuration management."""
from typing import Literal, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy database URL (required to serve)"
    )
    store_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound on waiting for a store lock or pooled connection"
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    cors_origins: list[str] = Field(default=["*"])
    log_level: str = Field(default="INFO")

    # Identity
    identity_mode: Literal["any", "basic", "token"] = Field(
        default="any",
        description="Which caller credentials write tools accept"
    )
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # MCP protocol
    require_mcp_session: bool = Field(default=True)
    sse_keepalive_seconds: float = Field(default=15.0)
    server_name: str = Field(default="mcp-social-network")
    server_version: str = Field(default="1.0.0")
    protocol_version: str = Field(default="2025-03-26")

    class Config:
        env_prefix = "MCP_SOCIAL_"
        env_file = ".env"


def get_settings() -> Settings:
    """Get settings - environment variables take priority over .env."""
    return Settings()


settings = get_settings()
