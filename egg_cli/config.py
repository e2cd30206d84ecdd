"""Project configuration (egg.yaml) for egg-cli.

Loads egg.yaml with PyYAML, validates it with Pydantic, fills in the
same defaults the rest of the egg toolchain uses, and derives the build
targets and compose names the build and proxy commands need.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from egg_cli.constants import (
    BACKEND_DOCKERFILE,
    CONFIG_FILENAME,
    DEFAULT_HEALTH_PORT,
    DEFAULT_HTTP_PORT,
    DEFAULT_METRICS_PORT,
    DEFAULT_PLATFORMS,
    DEFAULT_REGISTRY,
    DEFAULT_VERSION,
    FRONTEND_DOCKERFILE,
    FRONTEND_PORT,
)
from egg_cli.errors import ConfigError
from egg_cli.models import BuildTarget, Platform, ServiceType
from egg_cli.validate import validate_project_name, validate_service_name


class PortConfig(BaseModel):
    """Ports a backend service listens on inside its container."""

    http: int = DEFAULT_HTTP_PORT
    health: int = DEFAULT_HEALTH_PORT
    metrics: int = DEFAULT_METRICS_PORT

    def as_list(self) -> list[tuple[str, int]]:
        return [("http", self.http), ("health", self.health), ("metrics", self.metrics)]


class BuildConfig(BaseModel):
    platforms: list[Platform] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS))


class BackendDefaults(BaseModel):
    ports: PortConfig = Field(default_factory=PortConfig)


class BackendService(BaseModel):
    ports: PortConfig | None = None


class FrontendService(BaseModel):
    platforms: list[str] = Field(default_factory=lambda: ["web"])


class ProjectConfig(BaseModel):
    """Pydantic model for egg.yaml (only the keys this CLI reads)."""

    project_name: str
    version: str = DEFAULT_VERSION
    docker_registry: str = DEFAULT_REGISTRY
    build: BuildConfig = Field(default_factory=BuildConfig)
    backend_defaults: BackendDefaults = Field(default_factory=BackendDefaults)
    backend: dict[str, BackendService] = Field(default_factory=dict)
    frontend: dict[str, FrontendService] = Field(default_factory=dict)

    @field_validator("project_name")
    @classmethod
    def _check_project_name(cls, value: str) -> str:
        ok, msg = validate_project_name(value)
        if not ok:
            raise ValueError(msg)
        return value

    @field_validator("backend", "frontend", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        # "backend:" with no entries parses as None; bare "name:" entries too.
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: ({} if v is None else v) for k, v in value.items()}
        return value

    @model_validator(mode="after")
    def _check_services(self) -> "ProjectConfig":
        for name in [*self.backend, *self.frontend]:
            ok, msg = validate_service_name(name)
            if not ok:
                raise ValueError(msg)
        overlap = set(self.backend) & set(self.frontend)
        if overlap:
            raise ValueError(
                f"Service defined as both backend and frontend: {', '.join(sorted(overlap))}"
            )
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def network_name(self) -> str:
        return compose_network_name(self.project_name)

    def backend_ports(self, name: str) -> PortConfig:
        return self.backend[name].ports or self.backend_defaults.ports

    def image_name(self, service_name: str) -> str:
        """Registry-qualified image name for a service (without tag)."""
        image = compute_image_name(self.project_name, service_name)
        registry = self.docker_registry.rstrip("/")
        return f"{registry}/{image}" if registry else image

    def service_type(self, name: str) -> ServiceType:
        if name in self.backend:
            return ServiceType.BACKEND
        if name in self.frontend:
            return ServiceType.FRONTEND
        raise ConfigError(f"Service not found: {name}")

    def build_target(self, name: str, tag: str | None = None) -> BuildTarget:
        """Derive the BuildTarget for one configured service."""
        service_type = self.service_type(name)
        if service_type is ServiceType.BACKEND:
            ports = self.backend_ports(name)
            return BuildTarget(
                service_name=name,
                service_type=service_type,
                image_name=self.image_name(name),
                tag=tag or self.version,
                dockerfile=BACKEND_DOCKERFILE,
                build_context=".",
                build_args=[
                    ("BINARY_NAME", name),
                    ("HTTP_PORT", str(ports.http)),
                    ("HEALTH_PORT", str(ports.health)),
                    ("METRICS_PORT", str(ports.metrics)),
                ],
            )
        return BuildTarget(
            service_name=name,
            service_type=service_type,
            image_name=self.image_name(name),
            tag=tag or self.version,
            dockerfile=FRONTEND_DOCKERFILE,
            build_context=f"frontend/{name}",
            build_args=[("SERVICE_NAME", name)],
        )

    def build_targets(
        self,
        scope: str = "all",
        *,
        subset: Iterable[str] | None = None,
        tag: str | None = None,
    ) -> list[BuildTarget]:
        """Build targets for a scope (backend, frontend, all), in file order.

        Args:
            scope: ``backend``, ``frontend`` or ``all``.
            subset: Optional service names to restrict to.
            tag: Image tag; defaults to ``version``.

        Raises:
            ConfigError: On an unknown scope or unknown subset entry.
        """
        if scope == "backend":
            names = list(self.backend)
        elif scope == "frontend":
            names = list(self.frontend)
        elif scope == "all":
            names = [*self.backend, *self.frontend]
        else:
            raise ConfigError(f"Unknown build scope: {scope} (use: backend, frontend, all)")

        if subset:
            wanted = [s.strip() for s in subset if s.strip()]
            for name in wanted:
                if name not in names:
                    raise ConfigError(f"Service not found in {scope} services: {name}")
            names = [n for n in names if n in wanted]

        return [self.build_target(name, tag) for name in names]

    def proxy_ports(self) -> list[tuple[str, str, int]]:
        """(service, port label, port) for every port ``proxy-all`` bridges."""
        entries: list[tuple[str, str, int]] = []
        for name in self.backend:
            for label, port in self.backend_ports(name).as_list():
                entries.append((name, label, port))
        for name in self.frontend:
            entries.append((name, "http", FRONTEND_PORT))
        return entries


# ============================================================================
# Naming Helpers
# ============================================================================


def compute_image_name(project_name: str, service_name: str) -> str:
    """Standard image name: ``<project>-<service>``, normalised.

    Lowercased, slashes and spaces become hyphens, runs of hyphens are
    collapsed, and leading/trailing hyphens are trimmed.
    """
    name = f"{project_name}-{service_name}".lower()
    name = name.replace("/", "-").replace(" ", "-")
    name = re.sub(r"-{2,}", "-", name)
    return name.strip("-")


def compose_network_name(project_name: str) -> str:
    """Actual docker network created by compose: ``<project>_<project>-network``."""
    return f"{project_name}_{project_name}-network"


# ============================================================================
# Loading
# ============================================================================


def find_config_file(path: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the egg.yaml path (explicit path, $EGG_CONFIG, or ./egg.yaml)."""
    if path:
        return Path(path)
    env_path = os.environ.get("EGG_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.cwd() / CONFIG_FILENAME


def parse_config(data: Any, source: str = CONFIG_FILENAME) -> ProjectConfig:
    """Validate already-parsed YAML data.

    Raises:
        ConfigError: If the data is not a mapping or fails validation.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a mapping at the top level")
    try:
        return ProjectConfig.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"{source}: configuration validation failed: {problems}") from exc


def load_config(path: str | os.PathLike[str] | None = None) -> ProjectConfig:
    """Load and validate egg.yaml.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    config_path = find_config_file(path)
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(
            f"{config_path} not found - run this command from an egg project directory"
        ) from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read {config_path}: {exc}") from exc
    return parse_config(data, str(config_path))
