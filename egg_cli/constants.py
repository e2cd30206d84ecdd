"""Configuration defaults for egg-cli.

Every value that a developer may reasonably want to tune can be
overridden through an ``EGG_*`` environment variable.
"""

from __future__ import annotations

import os


def _env_int(key: str, default: int) -> int:
    """Read an integer from an environment variable, returning default on parse failure."""
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_str(key: str, default: str) -> str:
    """Read a non-empty string from an environment variable."""
    return os.environ.get(key, "").strip() or default


# ============================================================================
# Project Configuration
# ============================================================================

CONFIG_FILENAME: str = "egg.yaml"
"""Project configuration file looked up in the working directory."""

DEFAULT_VERSION: str = "v1.0.0"
"""Image tag used when neither --tag nor ``version`` is given."""

DEFAULT_REGISTRY: str = "ghcr.io/eggybyte-technology"
"""Container registry prefix used when ``docker_registry`` is unset."""

DEFAULT_HTTP_PORT: int = 8080
DEFAULT_HEALTH_PORT: int = 8081
DEFAULT_METRICS_PORT: int = 9091

FRONTEND_PORT: int = 3000
"""Port every frontend container serves on inside the compose network."""

NAME_MAX_LENGTH: int = 50
"""Maximum length of project and service names."""

# ============================================================================
# Build Constants
# ============================================================================

PLATFORM_AMD64: str = "linux/amd64"
PLATFORM_ARM64: str = "linux/arm64"

DEFAULT_PLATFORMS: tuple[str, ...] = (PLATFORM_AMD64, PLATFORM_ARM64)
"""Platforms built when neither --platform nor ``build.platforms`` is given."""

FALLBACK_PLATFORM: str = PLATFORM_AMD64
"""Single platform a multi-platform request is narrowed to without --push."""


def get_buildx_builder() -> str:
    """Name of the buildx builder instance used for all builds."""
    return _env_str("EGG_BUILDX_BUILDER", "egg-builder")


BACKEND_DOCKERFILE: str = "build/Dockerfile.backend"
FRONTEND_DOCKERFILE: str = "build/Dockerfile.frontend"

# ============================================================================
# Port Proxy Constants
# ============================================================================


def get_relay_image() -> str:
    """Image that runs the TCP relay (socat) for port proxies."""
    return _env_str("EGG_RELAY_IMAGE", "alpine/socat")


PROXY_NAME_SEGMENT: str = "proxy"
"""Middle segment of relay container names: <project>-proxy-<service>-<port>."""

LABEL_PROJECT: str = "egg.project"
LABEL_SERVICE: str = "egg.service"
LABEL_SERVICE_PORT: str = "egg.service-port"
LABEL_LOCAL_PORT: str = "egg.local-port"

PORT_MIN: int = 1
PORT_MAX: int = 65535


def get_probe_timeout() -> float:
    """Seconds to wait for a TCP connect when probing a local port."""
    return _env_int("EGG_PROBE_TIMEOUT_MS", 100) / 1000.0


def get_port_search_attempts() -> int:
    """How many consecutive ports to probe before giving up."""
    return max(1, _env_int("EGG_PORT_SEARCH_ATTEMPTS", 100))


# ============================================================================
# Subprocess Timeout Constants (seconds)
# ============================================================================

TIMEOUT_DOCKER_QUERY: int = _env_int("EGG_TIMEOUT_DOCKER_QUERY", 10)
"""Timeout for docker ps / inspect / version queries."""

TIMEOUT_DOCKER_RUN: int = _env_int("EGG_TIMEOUT_DOCKER_RUN", 60)
"""Timeout for docker run / stop of relay containers."""

TERMINATE_GRACE_SECONDS: float = 5.0
"""Grace period between SIGTERM and SIGKILL when a command is cancelled."""
