"""Configuration models using Pydantic."""
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from shellbridge.rpc.framing import DEFAULT_MAX_LINE_BYTES


class ProxyConfig(BaseModel):
    """Timing and limits for the stdio proxy.

    Intervals and timeouts are in seconds.
    """

    socket_ready_timeout: float = Field(default=3.0, gt=0)
    socket_ready_interval: float = Field(default=0.2, gt=0)
    connect_timeout: float = Field(default=2.0, gt=0)
    connect_interval: float = Field(default=0.2, gt=0)
    # How long to wait for in-flight replies after stdin closes
    shutdown_grace: float = Field(default=1.0, ge=0)
    max_line_bytes: int | None = Field(default=DEFAULT_MAX_LINE_BYTES, gt=0)


class ListenerConfig(BaseModel):
    """Configuration for the daemon socket listener."""

    idle_timeout: float = Field(default=1.0, gt=0)
    max_line_bytes: int | None = Field(default=DEFAULT_MAX_LINE_BYTES, gt=0)


class ConfigError(Exception):
    """Configuration error."""

    pass


class BridgeConfig(BaseModel):
    """Root configuration model."""

    # None means: discover (proxy) or use the default path (daemon)
    socket_path: Path | None = None
    default_workdir: Path | None = None
    allowed_workdirs: list[Path] = Field(default_factory=list)
    # Consulted by the session handler layer, not by the transport
    disabled_methods: list[str] = Field(default_factory=list)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)

    @field_validator("socket_path", "default_workdir")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @field_validator("allowed_workdirs")
    @classmethod
    def _resolve_allowed(cls, value: list[Path]) -> list[Path]:
        return [p.expanduser().resolve() for p in value]

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _validate_default_workdir(self) -> "BridgeConfig":
        """Default working directory must be inside the allowed list, if any."""
        if self.default_workdir is not None and self.allowed_workdirs:
            if not self.is_workdir_allowed(self.default_workdir):
                raise ValueError(
                    f"default_workdir {self.default_workdir} is outside allowed_workdirs"
                )
        return self

    def is_workdir_allowed(self, cwd: Path) -> bool:
        """Check a working directory against allowed_workdirs.

        An empty list allows everything.
        """
        if not self.allowed_workdirs:
            return True
        resolved = Path(cwd).expanduser().resolve()
        return any(
            resolved == allowed or resolved.is_relative_to(allowed)
            for allowed in self.allowed_workdirs
        )

    def resolve_workdir(self, cwd: Path | None = None) -> Path:
        """Pick the working directory: explicit, configured default, or the process cwd."""
        return (cwd or self.default_workdir or Path.cwd()).expanduser().resolve()
