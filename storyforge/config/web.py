"""HTTP API configuration models."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from storyforge.config.base import BaseConfig


class WebAuthConfig(BaseConfig):
    """Header token protection for the job API."""

    enabled: bool = Field(False, description="Whether header token authentication is enforced.")
    header_name: str = Field(
        "X-Storyforge-Token",
        description="Header to read the authentication token from.",
        min_length=1,
    )
    token: str | None = Field(
        default=None,
        description="Shared secret token required when enabled.",
        min_length=1,
    )

    @field_validator("token")
    @classmethod
    def _strip_token(cls, token: str | None) -> str | None:
        if token is None:
            return None
        return token.strip() or None

    @model_validator(mode="after")
    def _ensure_token_when_enabled(self) -> "WebAuthConfig":
        if self.enabled and not self.token:
            raise ValueError("Authentication token must be provided when web auth is enabled.")
        return self


class WebConfig(BaseConfig):
    """Settings for the FastAPI job surface."""

    title: str = Field("Storyforge API", min_length=1, description="OpenAPI title of the service.")
    auth: WebAuthConfig | None = Field(
        default=None,
        description="Authentication settings for the job endpoints.",
    )


__all__ = ["WebAuthConfig", "WebConfig"]
