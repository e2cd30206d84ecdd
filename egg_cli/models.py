"""Pydantic models for build targets, build plans, and port proxies.

All models validate on construction using Pydantic V2. ``BuildTarget`` and
``BuildPlan`` are frozen: a plan is computed fresh for every target and
never mutated afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

Platform = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^[a-z0-9]+/[a-z0-9_]+(/[a-z0-9]+)?$"),
]
"""An ``os/arch[/variant]`` pair such as ``linux/amd64``."""


class ServiceType(str, Enum):
    """Kind of service a build target belongs to."""

    BACKEND = "backend"
    FRONTEND = "frontend"


class BuildTarget(BaseModel):
    """One image to build, derived from project configuration."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    """Service identifier as written in egg.yaml."""

    service_type: ServiceType
    """Backend or frontend."""

    image_name: str
    """Registry-qualified image name without tag."""

    tag: str
    """Image tag (version string)."""

    dockerfile: str
    """Path to the Dockerfile, relative to the working directory."""

    build_context: str
    """Build context path."""

    build_args: dict[str, str] = Field(default_factory=dict)
    """Ordered ``--build-arg`` values."""

    @field_validator("build_args", mode="before")
    @classmethod
    def _reject_duplicate_args(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            args: dict[str, str] = {}
            for key, val in value:
                if key in args:
                    raise ValueError(f"duplicate build arg: {key}")
                args[key] = val
            return args
        return value

    @property
    def image_ref(self) -> str:
        """Full ``name:tag`` reference."""
        return f"{self.image_name}:{self.tag}"


class BuildPlan(BaseModel):
    """Resolved platform set and push/load decision for one build target.

    Invariants (enforced here, not by callers):
      - a single platform pushes or loads, never both, never neither;
      - several platforms always push and never load.
    """

    model_config = ConfigDict(frozen=True)

    platforms: tuple[Platform, ...] = Field(min_length=1)
    push: bool
    load: bool

    @field_validator("platforms", mode="before")
    @classmethod
    def _dedupe_platforms(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            seen: dict[str, None] = {}
            for item in value:
                seen.setdefault(item.strip() if isinstance(item, str) else item, None)
            return tuple(seen)
        return value

    @model_validator(mode="after")
    def _check_push_load(self) -> "BuildPlan":
        if len(self.platforms) > 1:
            if self.load or not self.push:
                raise ValueError(
                    "multi-platform plans must push and cannot load into the local daemon"
                )
        elif self.push == self.load:
            raise ValueError("single-platform plans must either push or load, exactly one")
        return self

    @property
    def is_multi_platform(self) -> bool:
        return len(self.platforms) > 1

    @property
    def platform_arg(self) -> str:
        """Comma-joined platform list for ``--platform``."""
        return ",".join(self.platforms)


class ProxyInfo(BaseModel):
    """A running relay container bridging a service port to localhost."""

    service_name: str
    service_port: int
    local_port: int
    proxy_name: str
    network_name: str = ""
    requested_port: int | None = None
    """Port the caller asked for; the service port when auto-allocating."""

    @property
    def deviated(self) -> bool:
        """True when the bound local port differs from the requested one."""
        requested = self.requested_port if self.requested_port is not None else self.service_port
        return self.local_port != requested
