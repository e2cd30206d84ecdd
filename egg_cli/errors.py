"""Exception hierarchy for egg-cli.

Provides a structured exception tree so callers can catch broad
categories (``EggError``) or specific failure modes.

This module is a base-layer module: it must NOT import from any
other ``egg_cli`` submodule.
"""

from __future__ import annotations


class EggError(Exception):
    """Base exception for all egg-cli errors."""


class ValidationError(EggError):
    """Input validation failures (bad names, ports, platforms, etc.)."""


class ConfigError(EggError):
    """Project configuration is missing or invalid."""


class ToolUnavailableError(EggError):
    """A required external tool (docker, buildx) is not installed."""

    def __init__(self, tool: str, hint: str = "") -> None:
        message = f"Required tool not found: {tool}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)
        self.tool = tool


class CommandError(EggError):
    """Failures launching or supervising an external command."""


class CommandCancelled(CommandError):
    """The command was terminated because its caller cancelled it."""


class CommandTimeout(CommandError):
    """The command exceeded its timeout and was terminated."""


class BuildFailure(EggError):
    """The image builder exited non-zero for one build target."""

    def __init__(self, service_name: str, image_ref: str, exit_code: int, stderr: str) -> None:
        detail = stderr.strip() or "no diagnostic output"
        super().__init__(
            f"Build failed for {service_name} ({image_ref}), exit code {exit_code}: {detail}"
        )
        self.service_name = service_name
        self.image_ref = image_ref
        self.exit_code = exit_code
        self.stderr = stderr


class PortExhaustionError(EggError):
    """No free local port was found inside the probe window."""

    def __init__(self, start: int, end: int, context: str = "") -> None:
        message = f"No available port found in range [{start}, {end}]"
        if context:
            message = f"{context}: {message}"
        super().__init__(message)
        self.start = start
        self.end = end


class ContainerLifecycleError(EggError):
    """Failures running, listing, or stopping relay containers."""
