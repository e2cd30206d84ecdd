"""Input validation for egg-cli.

Pure validation logic for project names, service names, and relay
container names.

Convention:
- Functions validating user input return (is_valid: bool, error_msg: str).
  An empty error_msg indicates success.
- ``ensure_valid`` turns a failed result into ``ValidationError`` for
  callers that cannot continue.
"""

from __future__ import annotations

import re

from egg_cli.constants import NAME_MAX_LENGTH
from egg_cli.errors import ValidationError

_PROJECT_NAME_RE = re.compile(r"^[a-z0-9-]+$")
_SERVICE_NAME_RE = re.compile(r"^[a-z0-9_-]+$")
_CONTAINER_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate_project_name(name: str) -> tuple[bool, str]:
    """Validate a project name.

    Args:
        name: Project name to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not name:
        return False, "Project name required"
    if len(name) > NAME_MAX_LENGTH:
        return False, f"Project name too long (max {NAME_MAX_LENGTH} characters)"
    if not _PROJECT_NAME_RE.match(name):
        return False, (
            f"Invalid project name '{name}' (allowed: lowercase letters, numbers, '-')"
        )
    return True, ""


def validate_service_name(name: str) -> tuple[bool, str]:
    """Validate a service name.

    Underscores are allowed for Dart/Flutter package naming compatibility;
    they become hyphens in container DNS names.

    Args:
        name: Service name to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not name:
        return False, "Service name required"
    if len(name) > NAME_MAX_LENGTH:
        return False, f"Service name too long (max {NAME_MAX_LENGTH} characters)"
    if not _SERVICE_NAME_RE.match(name):
        return False, (
            f"Invalid service name '{name}' (allowed: lowercase letters, numbers, '-', '_')"
        )
    return True, ""


def validate_container_name(name: str) -> tuple[bool, str]:
    """Validate a Docker container name passed on the command line."""
    if not name:
        return False, "Container name required"
    if not _CONTAINER_NAME_RE.match(name):
        return False, f"Invalid container name '{name}'"
    return True, ""


def ensure_valid(result: tuple[bool, str]) -> None:
    """Raise ValidationError if a validator returned a failure.

    Usage::

        ensure_valid(validate_service_name(name))
    """
    ok, msg = result
    if not ok:
        raise ValidationError(msg)
