"""Compose commands: bridge compose service ports to localhost.

Each bridge is a small socat relay container attached to the project's
compose network. Relay names follow ``<project>-proxy-<service>-<port>``.

Subcommands:
  proxy <service> <port> [--local-port p]   bridge one service port
  proxy-all                                 bridge every configured port
  proxy-list [--json]                       list running bridges
  proxy-stop [<proxy-name>]                 stop one bridge, or all of them
"""

from __future__ import annotations

import json

import click

from egg_cli.commands._helpers import exit_on_error, load_project, make_proxy_manager
from egg_cli.errors import ContainerLifecycleError
from egg_cli.models import ProxyInfo
from egg_cli.utils import (
    BOLD,
    RESET,
    format_kv,
    format_table_row,
    log_info,
    log_section,
    log_success,
    log_warn,
)


def _report_proxy(info: ProxyInfo) -> None:
    if info.deviated:
        log_warn(
            f"Port {info.requested_port} is in use, "
            f"{info.service_name}:{info.service_port} is bridged to localhost:{info.local_port} instead"
        )
    log_success(
        f"localhost:{info.local_port} -> {info.service_name}:{info.service_port} ({info.proxy_name})"
    )


@click.group()
def compose() -> None:
    """Work with the services of a running compose project."""


@compose.command("proxy")
@click.argument("service")
@click.argument("port", type=click.IntRange(1, 65535))
@click.option(
    "--local-port",
    type=click.IntRange(0, 65535),
    default=0,
    help="Local port to bind (default: same as the service port)",
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@exit_on_error
def proxy(service: str, port: int, local_port: int, config_path: str | None) -> None:
    """Bridge SERVICE:PORT on the compose network to localhost."""
    config = load_project(config_path)
    config.service_type(service)
    manager = make_proxy_manager(config)
    _report_proxy(manager.create_proxy(service, port, local_port))


@compose.command("proxy-all")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@exit_on_error
def proxy_all(config_path: str | None) -> None:
    """Bridge every configured service port to localhost.

    Stops at the first failure; bridges created before it keep running.
    """
    config = load_project(config_path)
    entries = config.proxy_ports()
    if not entries:
        log_warn("No services defined in configuration")
        return

    manager = make_proxy_manager(config)
    log_section(f"Creating port proxies for {config.project_name}")
    created = []
    for service, label, port in entries:
        log_info(f"Proxying {service} {label} port {port}...")
        info = manager.create_proxy(service, port)
        _report_proxy(info)
        created.append(info)

    click.echo()
    log_success(f"{len(created)} port proxies running")

    # Relays are up at this point; a failed listing only loses the summary.
    try:
        running = manager.list_proxies()
    except ContainerLifecycleError as exc:
        log_warn(f"Failed to list proxies: {exc}")
        return
    for info in running:
        log_info(
            f"  {info.service_name}:{info.service_port} -> localhost:{info.local_port} ({info.proxy_name})"
        )


@compose.command("proxy-list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@exit_on_error
def proxy_list(as_json: bool, config_path: str | None) -> None:
    """List running port proxies for this project."""
    config = load_project(config_path)
    manager = make_proxy_manager(config)
    proxies = manager.list_proxies()

    if as_json:
        click.echo(json.dumps([p.model_dump(exclude={"requested_port"}) for p in proxies], indent=2))
        return

    if not proxies:
        log_info("No port proxies running")
        return

    click.echo(f"{BOLD}{format_table_row('PROXY', 'SERVICE', 'LOCAL', name_width=40)}{RESET}")
    for info in proxies:
        click.echo(
            format_table_row(
                info.proxy_name,
                f"{info.service_name}:{info.service_port}",
                f"localhost:{info.local_port}",
                name_width=40,
            )
        )


@compose.command("proxy-stop")
@click.argument("proxy_name", required=False)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@exit_on_error
def proxy_stop(proxy_name: str | None, config_path: str | None) -> None:
    """Stop PROXY_NAME, or every port proxy of the project when omitted."""
    config = load_project(config_path)
    manager = make_proxy_manager(config)

    if proxy_name:
        manager.stop_proxy(proxy_name)
        log_success(f"Stopped {proxy_name}")
        return

    stopped = manager.stop_all_proxies()
    if not stopped:
        log_info("No port proxies running")
        return
    for name in stopped:
        log_info(format_kv("stopped", name))
    log_success(f"Stopped {len(stopped)} port proxies")
