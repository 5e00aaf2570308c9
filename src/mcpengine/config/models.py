"""Pydantic models for the server YAML consumed by ``mcpengine serve``."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from mcpengine.protocol.models import ServerCapabilities
from mcpengine.protocol.ratelimit import RateLimitConfig


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    console: bool = False
    otlp_endpoint: str | None = None


class CapabilitySettings(BaseModel):
    """Capability flags the server advertises."""

    tools_list_changed: bool = True
    resources_subscribe: bool = False
    resources_list_changed: bool = False
    prompts_list_changed: bool = False
    roots_list_changed: bool = False
    logging: bool = False
    experimental: dict[str, Any] | None = None

    def to_capabilities(self) -> ServerCapabilities:
        return ServerCapabilities(
            tools=True,
            tools_list_changed=self.tools_list_changed,
            resources_subscribe=self.resources_subscribe,
            resources_list_changed=self.resources_list_changed,
            prompts_list_changed=self.prompts_list_changed,
            roots_list_changed=self.roots_list_changed,
            logging=self.logging,
            experimental=self.experimental,
        )


class ServerSettings(BaseModel):
    """Top-level server specification parsed from YAML."""

    name: str = "mcpengine"
    version: str = "0.1.0"
    instructions: str | None = None
    capabilities: CapabilitySettings = Field(default_factory=CapabilitySettings)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig.default)
    admission_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds a request may wait for a rate-limit token before failing.",
    )
    tools: list[str] = Field(
        default_factory=list,
        description="Import references ('package.module:attribute') to Tool objects or factories.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    telemetry: TelemetrySettings | None = None

    @field_validator("tools")
    @classmethod
    def _check_references(cls, value: list[str]) -> list[str]:
        for ref in value:
            module, _, attr = ref.partition(":")
            if not module or not attr:
                msg = f"tool reference '{ref}' must look like 'package.module:attribute'"
                raise ValueError(msg)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value
