"""External command execution for egg-cli.

Every docker invocation made by the build executor and the proxy manager
goes through the narrow ``ToolRunner`` interface defined here:
``run(program, args) -> CommandResult``. ``SubprocessRunner`` is the real
implementation; tests substitute an in-memory fake that records calls and
returns scripted results.

Non-zero exit codes are *not* exceptions at this layer. Callers inspect
``CommandResult.exit_code`` and raise the domain error that fits.

Cancellation: the child process lives no longer than its caller. Setting
the ``cancel`` event, hitting the timeout, or a ``KeyboardInterrupt`` in
the calling thread terminates the child (SIGTERM, then SIGKILL after a
grace period) before control returns.
"""

from __future__ import annotations

import shutil
import subprocess
import threading
import time
from typing import Protocol, Sequence

from pydantic import BaseModel, ConfigDict

from egg_cli.constants import TERMINATE_GRACE_SECONDS, TIMEOUT_DOCKER_QUERY
from egg_cli.errors import CommandCancelled, CommandTimeout, ToolUnavailableError
from egg_cli.utils import log_command, log_debug

_POLL_INTERVAL = 0.1


class CommandResult(BaseModel):
    """Outcome of one external command."""

    model_config = ConfigDict(frozen=True)

    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolRunner(Protocol):
    """Run an external program and capture its output."""

    def run(
        self,
        program: str,
        args: Sequence[str],
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """``ToolRunner`` backed by :mod:`subprocess`.

    Args:
        work_dir: Working directory for every command (default: inherit).
    """

    def __init__(self, work_dir: str | None = None) -> None:
        self.work_dir = work_dir

    def run(
        self,
        program: str,
        args: Sequence[str],
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        """Run *program* with *args*, blocking until it exits.

        Args:
            program: Executable name or path.
            args: Arguments, not including the program itself.
            timeout: Optional wall-clock limit in seconds.
            cancel: Optional event; when set the child is terminated.

        Returns:
            CommandResult with exit code and captured output.

        Raises:
            ToolUnavailableError: If *program* cannot be found.
            CommandCancelled: If *cancel* was set before the child exited.
            CommandTimeout: If *timeout* elapsed before the child exited.
        """
        cmd = [program, *args]
        log_command(cmd)

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=self.work_dir,
            )
        except FileNotFoundError as exc:
            raise ToolUnavailableError(program) from exc

        try:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                    break
                except subprocess.TimeoutExpired:
                    if cancel is not None and cancel.is_set():
                        _terminate(proc)
                        raise CommandCancelled(f"Command cancelled: {' '.join(cmd)}")
                    if timeout is not None and time.monotonic() - start >= timeout:
                        _terminate(proc)
                        raise CommandTimeout(
                            f"Command timed out after {timeout}s: {' '.join(cmd)}"
                        )
        except KeyboardInterrupt:
            _terminate(proc)
            raise

        duration = time.monotonic() - start
        log_debug(f"{program} exited with {proc.returncode} in {duration:.2f}s")
        return CommandResult(
            args=tuple(cmd),
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=duration,
        )


def _terminate(proc: subprocess.Popen[str]) -> None:
    """Stop a child process, escalating to SIGKILL after the grace period."""
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.communicate(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


# ============================================================================
# Tool Availability
# ============================================================================


def require_tool(name: str, hint: str = "") -> str:
    """Return the resolved path of *name* or raise ToolUnavailableError."""
    path = shutil.which(name)
    if path is None:
        raise ToolUnavailableError(name, hint)
    return path


def require_buildx(runner: ToolRunner) -> None:
    """Check that the docker buildx plugin responds.

    Raises:
        ToolUnavailableError: If docker or the buildx plugin is missing.
    """
    result = runner.run("docker", ["buildx", "version"], timeout=TIMEOUT_DOCKER_QUERY)
    if not result.ok:
        raise ToolUnavailableError(
            "docker buildx", "install the Docker Buildx plugin for multi-platform builds"
        )
