"""Configuration management using Pydantic Settings."""

import socket
from typing import Annotated, Any, List, Optional

import orjson
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ENDPOINT = "https://notify.bugsnag.com"


def _default_hostname() -> Optional[str]:
    try:
        return socket.gethostname()
    except OSError:
        return None


def _split_list(v: Any) -> Any:
    if isinstance(v, str) and v.strip().startswith("["):
        return orjson.loads(v)
    if isinstance(v, str):
        return [x.strip() for x in v.split(",") if x.strip()]
    return v


class Configuration(BaseModel):
    """
    Per-notifier configuration.

    A notifier owns one Configuration. Individual calls may pass a partial
    Configuration as raw data; only the fields set on it are applied, on a
    copy, for that call.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    # Delivery
    api_key: str = ""
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 10.0

    # Release stages
    release_stage: str = "production"
    notify_release_stages: Optional[List[str]] = None  # None = notify everywhere

    # App & device
    app_type: Optional[str] = None
    app_version: Optional[str] = None
    hostname: Optional[str] = Field(default_factory=_default_hostname)

    # Stack traces
    project_packages: List[str] = ["__main__*"]
    source_root: Optional[str] = None

    # Metadata keys whose values are never sent
    params_filters: List[str] = ["password", "secret", "authorization", "cookie"]

    # Largest request body attached to a report, in bytes
    max_request_body_size: int = 64 * 1024

    # Behaviour
    synchronous: bool = False
    flush_sessions_on_repanic: bool = True

    logger: Any = Field(default_factory=lambda: structlog.get_logger("faultwire"))

    def clone(self) -> "Configuration":
        """Return an independent copy of this configuration."""
        return self.model_copy(deep=False, update={
            "notify_release_stages": (
                list(self.notify_release_stages)
                if self.notify_release_stages is not None
                else None
            ),
            "project_packages": list(self.project_packages),
            "params_filters": list(self.params_filters),
        })

    def merge(self, other: "Configuration") -> "Configuration":
        """Return a copy of this configuration overridden by fields set on other."""
        merged = self.clone()
        for name in other.model_fields_set:
            setattr(merged, name, getattr(other, name))
        return merged

    def notify_in_release_stage(self) -> bool:
        """Check if the current release stage should send reports."""
        if self.notify_release_stages is None:
            return True
        if not self.release_stage:
            return True
        return self.release_stage in self.notify_release_stages


class Settings(BaseSettings):
    """Notifier settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FAULTWIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str = ""
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 10.0
    release_stage: str = "production"
    notify_release_stages: Annotated[Optional[List[str]], NoDecode] = None
    app_type: Optional[str] = None
    app_version: Optional[str] = None
    hostname: Optional[str] = None
    project_packages: Annotated[List[str], NoDecode] = ["__main__*"]
    source_root: Optional[str] = None
    params_filters: Annotated[List[str], NoDecode] = [
        "password", "secret", "authorization", "cookie",
    ]
    synchronous: bool = False
    max_request_body_size: int = 64 * 1024
    flush_sessions_on_repanic: bool = True
    log_level: str = "INFO"

    @field_validator("notify_release_stages", mode="before")
    @classmethod
    def parse_notify_release_stages(cls, v: Any) -> Optional[List[str]]:
        """Parse notify_release_stages from string or list. Empty means unset."""
        if v is None or v == "":
            return None
        return _split_list(v)

    @field_validator("project_packages", "params_filters", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> List[str]:
        """Parse comma-separated strings into lists."""
        if v is None or v == "":
            return []
        return _split_list(v)

    def to_configuration(self) -> Configuration:
        """Build a notifier Configuration from these settings."""
        values = self.model_dump(exclude={"log_level"})
        if values["hostname"] is None:
            values.pop("hostname")
        return Configuration(**values)
