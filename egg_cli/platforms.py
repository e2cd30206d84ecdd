"""Platform resolution for multi-architecture image builds.

``resolve_build_plan`` decides which platforms to build and whether the
result is pushed to a registry or loaded into the local daemon. buildx
cannot ``--load`` a multi-platform manifest list, so a multi-platform
request without ``--push`` is narrowed to a single platform with a
warning instead of producing a plan that would fail mid-build.
"""

from __future__ import annotations

import platform as _platform
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError

from egg_cli.constants import DEFAULT_PLATFORMS, FALLBACK_PLATFORM, PLATFORM_AMD64, PLATFORM_ARM64
from egg_cli.errors import ValidationError
from egg_cli.models import BuildPlan
from egg_cli.utils import log_debug, log_warn

MULTI_PLATFORM_WARNING = "Multi-platform builds require --push (buildx limitation)"

_ARM64_MACHINES = {"arm64", "aarch64"}


def detect_host_platform(machine: str | None = None) -> str:
    """Return the Linux platform matching the host CPU.

    Args:
        machine: Override for ``platform.machine()`` (testing).

    Returns:
        ``linux/arm64`` on ARM64 hosts, ``linux/amd64`` otherwise.
    """
    arch = (machine if machine is not None else _platform.machine()).lower()
    if arch in _ARM64_MACHINES:
        return PLATFORM_ARM64
    return PLATFORM_AMD64


def parse_platforms(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Split a ``--platform`` value into an ordered, de-duplicated tuple.

    Accepts ``"linux/amd64,linux/arm64"`` or an iterable of such strings.
    Empty segments are dropped.
    """
    if value is None:
        return ()
    chunks = [value] if isinstance(value, str) else list(value)
    seen: dict[str, None] = {}
    for chunk in chunks:
        for item in chunk.split(","):
            item = item.strip()
            if item:
                seen.setdefault(item, None)
    return tuple(seen)


def resolve_build_plan(
    requested_platforms: Iterable[str] | None,
    push: bool,
    local_only: bool,
    *,
    default_platforms: Iterable[str] = DEFAULT_PLATFORMS,
    host_platform: str | None = None,
) -> BuildPlan:
    """Map a build request onto a valid push/load plan.

    Decision table, first match wins:
      1. local_only          -> host platform, load
      2. >1 platform, !push  -> narrowed to linux/amd64, load (warns)
      3. >1 platform, push   -> unchanged, push
      4. 1 platform          -> unchanged, push or load

    Args:
        requested_platforms: Platforms from --platform; empty means defaults.
        push: Whether --push was given.
        local_only: Whether --local was given.
        default_platforms: Platforms used when nothing was requested.
        host_platform: Override for host detection (testing).

    Returns:
        A BuildPlan that satisfies the push/load invariants.

    Raises:
        ValidationError: If a platform string is malformed.
    """
    platforms = parse_platforms(requested_platforms) or parse_platforms(default_platforms)

    try:
        if local_only:
            host = host_platform or detect_host_platform()
            log_debug(f"Local build: using host platform {host}")
            return BuildPlan(platforms=(host,), push=False, load=True)

        if len(platforms) > 1 and not push:
            log_warn(MULTI_PLATFORM_WARNING)
            log_warn(f"Switching to single platform: {FALLBACK_PLATFORM}")
            return BuildPlan(platforms=(FALLBACK_PLATFORM,), push=False, load=True)

        if len(platforms) > 1:
            return BuildPlan(platforms=platforms, push=True, load=False)

        return BuildPlan(platforms=platforms, push=push, load=not push)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid platform list {','.join(platforms)!r}: {exc.errors()[0]['msg']}"
        ) from exc
