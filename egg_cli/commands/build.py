"""Build command: build backend and frontend images with docker buildx.

Flags:
  --push: Push images to the registry instead of loading them locally
  --local: Build for the host platform only and load into the local daemon
  --platform: Comma-separated target platforms (default: build.platforms)
  --tag: Image tag (default: project version)
  --subset: Comma-separated service names to restrict the build to

Multi-platform builds cannot be loaded into the local daemon, so without
--push they are narrowed to linux/amd64 with a warning.
"""

from __future__ import annotations

import click

from egg_cli.build import BuildExecutor
from egg_cli.commands._helpers import exit_on_error, load_project, make_runner
from egg_cli.models import BuildPlan, BuildTarget
from egg_cli.platforms import parse_platforms, resolve_build_plan
from egg_cli.toolrunner import require_buildx
from egg_cli.utils import format_kv, log_info, log_section, log_success, log_warn


@click.command()
@click.argument(
    "scope",
    type=click.Choice(["backend", "frontend", "all"]),
    default="all",
)
@click.option("--push", is_flag=True, help="Push images to the registry")
@click.option("--local", "local_only", is_flag=True, help="Build for the host platform and load locally")
@click.option("--platform", "platform_list", default="", help="Target platforms, e.g. linux/amd64,linux/arm64")
@click.option("--tag", default="", help="Image tag (default: project version)")
@click.option("--subset", default="", help="Comma-separated service names to build")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to egg.yaml",
)
@exit_on_error
def build(
    scope: str,
    push: bool,
    local_only: bool,
    platform_list: str,
    tag: str,
    subset: str,
    config_path: str | None,
) -> None:
    """Build service images (backend, frontend or all)."""
    config = load_project(config_path)
    subset_names = [s.strip() for s in subset.split(",") if s.strip()]
    targets = config.build_targets(scope, subset=subset_names, tag=tag or None)
    if not targets:
        log_warn(f"No {scope} services defined in configuration")
        return

    if local_only and push:
        log_warn("--push is ignored with --local")

    runner = make_runner()
    require_buildx(runner)

    executor = BuildExecutor(runner)
    executor.ensure_builder()

    requested = parse_platforms(platform_list)
    defaults = tuple(config.build.platforms)

    def plan_for(target: BuildTarget) -> BuildPlan:
        return resolve_build_plan(
            requested,
            push,
            local_only,
            default_platforms=defaults,
        )

    log_section(f"Building {len(targets)} image(s) for {config.project_name}")
    built = executor.build_all(targets, plan_for)

    click.echo()
    log_success(f"Built {len(built)} image(s)")
    for target in built:
        log_info(format_kv(target.service_name, target.image_ref))
