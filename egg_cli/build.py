"""Image builds through docker buildx.

``BuildExecutor`` turns one ``BuildTarget`` plus its ``BuildPlan`` into a
single ``docker buildx build`` invocation. It never retries and never
cleans up after a failed build: a failed build simply leaves no usable
image behind.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from egg_cli.constants import get_buildx_builder
from egg_cli.errors import BuildFailure, ToolUnavailableError
from egg_cli.models import BuildPlan, BuildTarget
from egg_cli.toolrunner import ToolRunner
from egg_cli.utils import log_debug, log_info, log_step, log_success


def build_command(
    target: BuildTarget,
    plan: BuildPlan,
    *,
    builder: str | None = None,
) -> list[str]:
    """Build the docker argument list for one target.

    Layout::

        buildx build [--builder B] -f DOCKERFILE -t IMAGE:TAG
            --platform P1[,P2...] --pull (--load | --push)
            [--build-arg K=V]... CONTEXT

    ``--pull`` always accompanies ``--platform`` so that a cached base image
    of the same tag but a different architecture is never reused.

    Args:
        target: What to build.
        plan: How to build it.
        builder: Optional buildx builder instance name.

    Returns:
        Arguments to pass to ``docker`` (the program name is not included).
    """
    args = ["buildx", "build"]
    if builder:
        args.extend(["--builder", builder])
    args.extend(["-f", target.dockerfile, "-t", target.image_ref])
    args.extend(["--platform", plan.platform_arg, "--pull"])
    args.append("--push" if plan.push else "--load")
    for key, value in target.build_args.items():
        args.extend(["--build-arg", f"{key}={value}"])
    args.append(target.build_context)
    return args


class BuildExecutor:
    """Runs buildx builds one target at a time.

    Args:
        runner: Command runner used for every docker call.
        builder: buildx builder instance name; ``None`` uses the CLI default.
        cancel: Optional event that aborts a running build when set.
    """

    def __init__(
        self,
        runner: ToolRunner,
        *,
        builder: str | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.runner = runner
        self.builder = builder if builder is not None else get_buildx_builder()
        self.cancel = cancel

    def ensure_builder(self) -> None:
        """Make sure the buildx builder instance exists, creating it if needed.

        Raises:
            ToolUnavailableError: If the builder cannot be created.
        """
        if not self.builder:
            return
        result = self.runner.run("docker", ["buildx", "inspect", self.builder], cancel=self.cancel)
        if result.ok:
            log_debug(f"Using existing buildx builder: {self.builder}")
            return

        log_info(f"Creating buildx builder '{self.builder}'...")
        result = self.runner.run(
            "docker",
            ["buildx", "create", "--name", self.builder, "--use"],
            cancel=self.cancel,
        )
        if not result.ok:
            raise ToolUnavailableError(
                f"buildx builder '{self.builder}'", result.stderr.strip() or "create failed"
            )
        log_success(f"Buildx builder created: {self.builder}")

    def execute(self, target: BuildTarget, plan: BuildPlan) -> None:
        """Build one target according to *plan*.

        On success the image exists either in the local daemon (load) or in
        the registry (push), never both.

        Raises:
            BuildFailure: If the builder exits non-zero.
        """
        args = build_command(target, plan, builder=self.builder)
        destination = "registry" if plan.push else "local daemon"
        log_info(f"Building {target.service_type.value} service: {target.service_name}")
        log_step(f"Image:     {target.image_ref}")
        log_step(f"Platforms: {plan.platform_arg} -> {destination}")

        result = self.runner.run("docker", args, cancel=self.cancel)
        if not result.ok:
            raise BuildFailure(target.service_name, target.image_ref, result.exit_code, result.stderr)

        if plan.push:
            log_success(f"Built and pushed: {target.image_ref} ({plan.platform_arg})")
        else:
            log_success(f"Built image: {target.image_ref} ({plan.platform_arg})")

    def build_all(
        self,
        targets: Iterable[BuildTarget],
        plan_for: Callable[[BuildTarget], BuildPlan],
    ) -> list[BuildTarget]:
        """Build targets in order, stopping at the first failure.

        Already built images are left in place when a later target fails.

        Args:
            targets: Targets in build order.
            plan_for: Resolves the plan for each target just before it is built.

        Returns:
            The targets that were built.
        """
        built: list[BuildTarget] = []
        for target in targets:
            self.execute(target, plan_for(target))
            built.append(target)
        return built
