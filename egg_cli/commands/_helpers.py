"""Shared helper functions for egg commands."""
from __future__ import annotations

import functools
import sys
from typing import Any, Callable, TypeVar

import click

from egg_cli.config import ProjectConfig, load_config
from egg_cli.errors import EggError
from egg_cli.portproxy import ProxyManager
from egg_cli.toolrunner import SubprocessRunner, ToolRunner, require_tool
from egg_cli.utils import log_error

F = TypeVar("F", bound=Callable[..., Any])


def exit_on_error(func: F) -> F:
    """Report an ``EggError`` as ``Error: ...`` and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except EggError as exc:
            log_error(str(exc))
            sys.exit(1)

    return wrapper  # type: ignore[return-value]


def resolve_config_path(explicit: str | None) -> str | None:
    """Command-level --config wins over the group-level one."""
    if explicit:
        return explicit
    ctx = click.get_current_context(silent=True)
    while ctx is not None:
        if isinstance(ctx.obj, dict) and ctx.obj.get("config_path"):
            return ctx.obj["config_path"]
        ctx = ctx.parent
    return None


def load_project(config_path: str | None = None) -> ProjectConfig:
    return load_config(resolve_config_path(config_path))


def make_runner() -> ToolRunner:
    """Runner for docker calls, after checking docker is on PATH."""
    require_tool("docker", "install Docker: https://docs.docker.com/get-docker/")
    return SubprocessRunner()


def make_proxy_manager(config: ProjectConfig) -> ProxyManager:
    return ProxyManager(make_runner(), config.project_name, config.network_name)
