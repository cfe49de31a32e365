"""Configuration schema using Pydantic.

Single data model and defaults for every context, persisted to
~/.xtwallet/config.json.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from xtwallet.intercom.types import DAPP_NOTIFICATION_TYPES
from xtwallet.liveness import requires_keepalive


class IntercomConfig(BaseModel):
    """Correlation client settings."""
    request_timeout_seconds: float | None = None  # None waits until a reply or teardown


class KeepAliveConfig(BaseModel):
    """Wakeup ping toward an ephemeral privileged context."""
    interval_seconds: float = Field(default=10.0, gt=0)
    enabled: bool | None = None  # None follows host.manifest_version


class RelayConfig(BaseModel):
    """Page relay settings."""
    accepted_notifications: list[str] = Field(default_factory=lambda: sorted(DAPP_NOTIFICATION_TYPES))


class HostConfig(BaseModel):
    """Host runtime the contexts live in."""
    manifest_version: int = 3
    host: str = "127.0.0.1"
    port: int = 8765


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Config(BaseSettings):
    """Root configuration for xtwallet."""
    intercom: IntercomConfig = Field(default_factory=IntercomConfig)
    keepalive: KeepAliveConfig = Field(default_factory=KeepAliveConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    host: HostConfig = Field(default_factory=HostConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def keepalive_enabled(self) -> bool:
        """Effective keep-alive switch after manifest auto-detection."""
        if self.keepalive.enabled is not None:
            return self.keepalive.enabled
        return requires_keepalive(self.host.manifest_version)

    model_config = ConfigDict(
        env_prefix="XTWALLET_",
        env_nested_delimiter="__"
    )
