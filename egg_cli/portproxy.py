"""Port proxies for services on the compose network.

Services started by ``docker compose`` are reachable only inside the
project network. A port proxy is a small relay container (socat) that
joins that network, binds a host port, and forwards it to
``<project>-<service>:<port>``.

The manager keeps no state of its own. Relay containers carry a
deterministic name (``<project>-proxy-<service>-<port>``) and labels, and
``list_proxies`` rebuilds every ``ProxyInfo`` from ``docker ps`` output,
so a fresh process sees exactly what the previous one left running.
"""

from __future__ import annotations

import re
import threading
from contextlib import contextmanager
from typing import Iterator

from egg_cli.constants import (
    LABEL_LOCAL_PORT,
    LABEL_PROJECT,
    LABEL_SERVICE,
    LABEL_SERVICE_PORT,
    PROXY_NAME_SEGMENT,
    TIMEOUT_DOCKER_QUERY,
    TIMEOUT_DOCKER_RUN,
    get_port_search_attempts,
    get_relay_image,
)
from egg_cli.errors import ContainerLifecycleError, PortExhaustionError
from egg_cli.models import ProxyInfo
from egg_cli.ports import PortProber, TcpConnectProber, validate_port
from egg_cli.toolrunner import ToolRunner
from egg_cli.utils import log_debug, log_warn
from egg_cli.validate import (
    ensure_valid,
    validate_container_name,
    validate_project_name,
    validate_service_name,
)

# "0.0.0.0:8081->8081/tcp, :::8081->8081/tcp" -> 8081
_HOST_PORT_RE = re.compile(r":(\d+)->")


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


# Serializes check-and-create per relay name within this process. Entries
# are dropped once no thread holds or waits for them.
_KEY_LOCKS: dict[str, _KeyLock] = {}
_KEY_LOCKS_GUARD = threading.Lock()


@contextmanager
def _lock_for(key: str) -> Iterator[None]:
    with _KEY_LOCKS_GUARD:
        entry = _KEY_LOCKS.get(key)
        if entry is None:
            entry = _KEY_LOCKS[key] = _KeyLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _KEY_LOCKS_GUARD:
            entry.users -= 1
            if entry.users == 0:
                del _KEY_LOCKS[key]


def service_dns_name(project_name: str, service_name: str) -> str:
    """Hostname of a service inside the compose network."""
    return f"{project_name}-{service_name.replace('_', '-')}"


def parse_host_port(ports: str) -> int | None:
    """Extract the host port from a ``docker ps`` Ports column."""
    match = _HOST_PORT_RE.search(ports)
    if match is None:
        return None
    return int(match.group(1))


def parse_labels(labels: str) -> dict[str, str]:
    """Parse a ``docker ps`` Labels column (``k=v,k=v``)."""
    parsed: dict[str, str] = {}
    for item in labels.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


class ProxyManager:
    """Create, list, and stop relay containers for one project.

    Args:
        runner: Command runner used for every docker call.
        project_name: Project name from egg.yaml.
        network_name: Compose network the relays join.
        prober: Port availability prober (default: TCP connect probe).
        relay_image: Image running socat (default ``alpine/socat``).
        search_attempts: Ports to scan when the preferred one is taken.
        cancel: Optional event that aborts a running docker call when set.
    """

    def __init__(
        self,
        runner: ToolRunner,
        project_name: str,
        network_name: str,
        *,
        prober: PortProber | None = None,
        relay_image: str | None = None,
        search_attempts: int | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        ensure_valid(validate_project_name(project_name))
        self.runner = runner
        self.project_name = project_name
        self.network_name = network_name
        self.prober = prober if prober is not None else TcpConnectProber()
        self.relay_image = relay_image or get_relay_image()
        self.search_attempts = search_attempts or get_port_search_attempts()
        self.cancel = cancel

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @property
    def name_prefix(self) -> str:
        return f"{self.project_name}-{PROXY_NAME_SEGMENT}-"

    def proxy_name(self, service_name: str, service_port: int) -> str:
        """Deterministic relay container name for a (service, port) pair."""
        return f"{self.name_prefix}{service_name}-{service_port}"

    def service_dns_name(self, service_name: str) -> str:
        return service_dns_name(self.project_name, service_name)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _allocate_port(self, service_name: str, service_port: int, requested: int) -> int:
        preferred = requested or service_port
        if self.prober.check_available(preferred):
            return preferred

        try:
            port = self.prober.find_available(preferred, self.search_attempts)
        except PortExhaustionError as exc:
            raise PortExhaustionError(
                exc.start, exc.end, context=f"Port proxy for {service_name}:{service_port}"
            ) from exc
        log_debug(f"Port {preferred} is in use, allocated {port} for {service_name}")
        return port

    def create_proxy(self, service_name: str, service_port: int, local_port: int = 0) -> ProxyInfo:
        """Bridge ``service_name:service_port`` to a localhost port.

        With ``local_port == 0`` the service port itself is preferred. In
        either case an occupied port is replaced by the next free one, so
        the returned ``local_port`` may differ from what was asked for
        (``ProxyInfo.deviated``).

        If a relay for this (service, port) pair is already running, it is
        returned instead of starting a second one. Asking for a different
        local port than the running relay uses is an error.

        Raises:
            ValidationError: On a bad service name or port.
            PortExhaustionError: If no local port is free in the search window.
            ContainerLifecycleError: If ``docker run`` fails, or the relay is
                already running on a different local port.
        """
        ensure_valid(validate_service_name(service_name))
        validate_port(service_port)
        if local_port:
            validate_port(local_port)
        requested = local_port or service_port
        name = self.proxy_name(service_name, service_port)

        with _lock_for(name):
            existing = self.find_proxy(service_name, service_port)
            if existing is not None:
                if local_port and existing.local_port != local_port:
                    raise ContainerLifecycleError(
                        f"Port proxy {name} already running on localhost:{existing.local_port}; "
                        f"stop it first to bind localhost:{local_port}"
                    )
                log_debug(f"Port proxy {name} already running on {existing.local_port}")
                return existing.model_copy(update={"requested_port": existing.local_port})

            port = self._allocate_port(service_name, service_port, local_port)
            target = f"{self.service_dns_name(service_name)}:{service_port}"
            args = [
                "run", "--rm", "-d",
                "--name", name,
                "-p", f"{port}:{port}",
                "--network", self.network_name,
                "--label", f"{LABEL_PROJECT}={self.project_name}",
                "--label", f"{LABEL_SERVICE}={service_name}",
                "--label", f"{LABEL_SERVICE_PORT}={service_port}",
                "--label", f"{LABEL_LOCAL_PORT}={port}",
                self.relay_image,
                f"tcp-listen:{port},fork,reuseaddr",
                f"tcp-connect:{target}",
            ]
            result = self.runner.run("docker", args, timeout=TIMEOUT_DOCKER_RUN, cancel=self.cancel)
            if not result.ok:
                raise ContainerLifecycleError(
                    f"Failed to create port proxy for {service_name}:{service_port}: "
                    f"{result.stderr.strip() or f'docker exited with {result.exit_code}'}"
                )

        return ProxyInfo(
            service_name=service_name,
            service_port=service_port,
            local_port=port,
            proxy_name=name,
            network_name=self.network_name,
            requested_port=requested,
        )

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    def _ps_lines(self) -> Iterator[str]:
        args = [
            "ps",
            "--filter", f"name={self.name_prefix}",
            "--format", "{{.Names}}|{{.Ports}}|{{.Labels}}",
        ]
        result = self.runner.run("docker", args, timeout=TIMEOUT_DOCKER_QUERY, cancel=self.cancel)
        if not result.ok:
            raise ContainerLifecycleError(
                f"Failed to list port proxies: {result.stderr.strip() or result.exit_code}"
            )
        for line in result.stdout.splitlines():
            line = line.strip()
            if line:
                yield line

    def _parse_line(self, line: str) -> ProxyInfo | None:
        name, _, rest = line.partition("|")
        ports, _, labels_raw = rest.partition("|")
        name = name.strip()
        # docker's name filter is a substring match.
        if not name.startswith(self.name_prefix):
            return None

        labels = parse_labels(labels_raw)
        if (
            labels.get(LABEL_PROJECT) == self.project_name
            and labels.get(LABEL_SERVICE)
            and labels.get(LABEL_SERVICE_PORT, "").isdigit()
        ):
            service_name = labels[LABEL_SERVICE]
            service_port = int(labels[LABEL_SERVICE_PORT])
        else:
            service_name, sep, port_str = name[len(self.name_prefix):].rpartition("-")
            if not sep or not service_name or not port_str.isdigit():
                return None
            service_port = int(port_str)

        local_port = parse_host_port(ports)
        if local_port is None and labels.get(LABEL_LOCAL_PORT, "").isdigit():
            local_port = int(labels[LABEL_LOCAL_PORT])
        if local_port is None:
            local_port = service_port

        return ProxyInfo(
            service_name=service_name,
            service_port=service_port,
            local_port=local_port,
            proxy_name=name,
            network_name=self.network_name,
        )

    def list_proxies(self) -> list[ProxyInfo]:
        """Return every running relay for this project, as docker reports it.

        Raises:
            ContainerLifecycleError: If ``docker ps`` fails.
        """
        proxies = []
        for line in self._ps_lines():
            info = self._parse_line(line)
            if info is None:
                log_debug(f"Skipping unrecognised proxy entry: {line}")
                continue
            proxies.append(info)
        return proxies

    def find_proxy(self, service_name: str, service_port: int) -> ProxyInfo | None:
        """Return the running relay for a (service, port) pair, if any."""
        name = self.proxy_name(service_name, service_port)
        for info in self.list_proxies():
            if info.proxy_name == name:
                return info
        return None

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop_proxy(self, proxy_name: str) -> None:
        """Stop a relay container. A missing container counts as stopped.

        Raises:
            ContainerLifecycleError: If ``docker stop`` fails for another reason.
        """
        ensure_valid(validate_container_name(proxy_name))
        result = self.runner.run(
            "docker", ["stop", proxy_name], timeout=TIMEOUT_DOCKER_RUN, cancel=self.cancel
        )
        if result.ok:
            return
        if "no such container" in result.stderr.lower():
            log_debug(f"Port proxy {proxy_name} not running")
            return
        raise ContainerLifecycleError(
            f"Failed to stop port proxy {proxy_name}: "
            f"{result.stderr.strip() or f'docker exited with {result.exit_code}'}"
        )

    def stop_all_proxies(self) -> list[str]:
        """Stop every relay of this project.

        Every relay is attempted even if an earlier one fails.

        Returns:
            Names of the relays that were stopped.

        Raises:
            ContainerLifecycleError: If listing fails or any stop failed.
        """
        stopped: list[str] = []
        failed: list[str] = []
        for info in self.list_proxies():
            try:
                self.stop_proxy(info.proxy_name)
            except ContainerLifecycleError as exc:
                log_warn(str(exc))
                failed.append(info.proxy_name)
                continue
            stopped.append(info.proxy_name)

        if failed:
            raise ContainerLifecycleError(f"Failed to stop port proxies: {', '.join(failed)}")
        return stopped
