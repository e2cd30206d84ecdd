"""Unit tests for egg_cli.portproxy.

Tests relay creation (including port deviation and exhaustion), listing
from docker ps output, stop semantics, and duplicate-bridge protection.
Docker is simulated by FakeRunner; ports by FakeProber, which treats the
host ports of running fake relays as occupied.
"""

from __future__ import annotations

import threading

import pytest

from egg_cli.errors import (
    ContainerLifecycleError,
    PortExhaustionError,
    ValidationError,
)
from egg_cli import portproxy
from egg_cli.portproxy import ProxyManager, parse_host_port, parse_labels, service_dns_name


@pytest.fixture
def manager(fake_runner, fake_prober):
    return ProxyManager(
        fake_runner,
        "shop",
        "shop_shop-network",
        prober=fake_prober,
        relay_image="alpine/socat",
        search_attempts=10,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestParsing:

    def test_service_dns_name_replaces_underscores(self):
        assert service_dns_name("shop", "user_api") == "shop-user-api"

    @pytest.mark.parametrize(
        "ports,expected",
        [
            ("0.0.0.0:8081->8081/tcp", 8081),
            ("0.0.0.0:9000->9000/tcp, :::9000->9000/tcp", 9000),
            ("", None),
            ("8080/tcp", None),
        ],
    )
    def test_parse_host_port(self, ports, expected):
        assert parse_host_port(ports) == expected

    def test_parse_labels(self):
        assert parse_labels("a=1, b=two,junk,=x") == {"a": "1", "b": "two"}


class TestNaming:

    def test_proxy_name(self, manager):
        assert manager.proxy_name("user", 8080) == "shop-proxy-user-8080"

    def test_invalid_project_rejected(self, fake_runner):
        with pytest.raises(ValidationError):
            ProxyManager(fake_runner, "Shop!", "net")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateProxy:

    def test_free_service_port_is_used(self, manager):
        info = manager.create_proxy("user", 8080)
        assert info.local_port == 8080
        assert info.proxy_name == "shop-proxy-user-8080"
        assert info.network_name == "shop_shop-network"
        assert not info.deviated

    def test_docker_run_arguments(self, manager, fake_runner):
        manager.create_proxy("user_api", 8080, 9000)
        argv = fake_runner.calls_to("docker", "run")[0]
        assert argv[:4] == ["docker", "run", "--rm", "-d"]
        assert argv[argv.index("--name") + 1] == "shop-proxy-user_api-8080"
        assert argv[argv.index("-p") + 1] == "9000:9000"
        assert argv[argv.index("--network") + 1] == "shop_shop-network"
        assert "egg.project=shop" in argv
        assert "egg.service=user_api" in argv
        assert "egg.local-port=9000" in argv
        assert argv[-3:] == [
            "alpine/socat",
            "tcp-listen:9000,fork,reuseaddr",
            "tcp-connect:shop-user-api:8080",
        ]

    def test_requested_local_port(self, manager):
        info = manager.create_proxy("user", 8080, 18080)
        assert info.local_port == 18080
        assert info.requested_port == 18080
        assert not info.deviated

    def test_occupied_requested_port_deviates(self, manager, fake_prober):
        fake_prober.occupied.add(18080)
        info = manager.create_proxy("user", 8080, 18080)
        assert info.local_port != 18080
        assert 18080 < info.local_port <= 18089
        assert info.deviated

    def test_scenario_two_services_same_port(self, manager):
        user = manager.create_proxy("user", 8080)
        ping = manager.create_proxy("ping", 8080)
        assert user.local_port == 8080
        assert ping.local_port == 8081
        assert ping.deviated

    def test_exhaustion(self, manager, fake_prober, fake_runner):
        fake_prober.occupied.update(range(8080, 8090))
        with pytest.raises(PortExhaustionError) as exc_info:
            manager.create_proxy("user", 8080)
        assert "Port proxy for user:8080" in str(exc_info.value)
        assert (exc_info.value.start, exc_info.value.end) == (8080, 8089)
        assert fake_runner.calls_to("docker", "run") == []

    def test_existing_relay_is_returned(self, manager, fake_runner):
        first = manager.create_proxy("user", 8080)
        second = manager.create_proxy("user", 8080)
        assert second.local_port == first.local_port
        assert len(fake_runner.calls_to("docker", "run")) == 1

    def test_existing_relay_on_requested_port(self, manager, fake_runner):
        manager.create_proxy("user", 8080, 19000)
        info = manager.create_proxy("user", 8080, 19000)
        assert info.local_port == 19000
        assert not info.deviated
        assert len(fake_runner.calls_to("docker", "run")) == 1

    def test_existing_relay_on_other_local_port_raises(self, manager, fake_runner):
        manager.create_proxy("user", 8080)
        with pytest.raises(ContainerLifecycleError, match="already running on localhost:8080"):
            manager.create_proxy("user", 8080, 19000)
        assert len(fake_runner.calls_to("docker", "run")) == 1

    def test_existing_relay_is_not_reported_as_deviated(self, manager, fake_prober):
        fake_prober.occupied.add(8080)
        assert manager.create_proxy("user", 8080).local_port == 8081
        again = manager.create_proxy("user", 8080)
        assert again.local_port == 8081
        assert not again.deviated

    def test_concurrent_creates_start_one_relay(self, manager, fake_runner):
        results = []

        def create():
            results.append(manager.create_proxy("user", 8080))

        threads = [threading.Thread(target=create) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(fake_runner.calls_to("docker", "run")) == 1
        assert {r.local_port for r in results} == {8080}
        assert portproxy._KEY_LOCKS == {}

    def test_docker_run_failure(self, manager, fake_runner):
        fake_runner.script("docker", "run", exit_code=125, stderr="network shop_shop-network not found")
        with pytest.raises(ContainerLifecycleError, match="network shop_shop-network not found"):
            manager.create_proxy("user", 8080)

    @pytest.mark.parametrize("service,port", [("User", 8080), ("user", 0), ("user", 70000)])
    def test_invalid_input(self, manager, service, port):
        with pytest.raises(ValidationError):
            manager.create_proxy(service, port)


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------


class TestListProxies:

    def test_round_trip(self, manager):
        manager.create_proxy("user", 8080)
        manager.create_proxy("order_svc", 9091, 19091)
        listed = {p.proxy_name: p for p in manager.list_proxies()}

        user = listed["shop-proxy-user-8080"]
        assert (user.service_name, user.service_port, user.local_port) == ("user", 8080, 8080)
        order = listed["shop-proxy-order_svc-9091"]
        assert (order.service_name, order.service_port, order.local_port) == ("order_svc", 9091, 19091)

    def test_empty(self, manager):
        assert manager.list_proxies() == []

    def test_unlabelled_relay_parsed_from_name(self, manager, fake_runner):
        fake_runner.add_container("shop-proxy-user-api-8080", host_port=18080)
        [info] = manager.list_proxies()
        assert info.service_name == "user-api"
        assert info.service_port == 8080
        assert info.local_port == 18080

    def test_labels_win_over_name(self, manager, fake_runner):
        fake_runner.add_container(
            "shop-proxy-legacy-1",
            host_port=8080,
            labels={"egg.project": "shop", "egg.service": "api", "egg.service-port": "8080"},
        )
        [info] = manager.list_proxies()
        assert (info.service_name, info.service_port) == ("api", 8080)
        assert info.proxy_name == "shop-proxy-legacy-1"

    def test_incomplete_labels_fall_back_to_name(self, manager, fake_runner):
        fake_runner.add_container(
            "shop-proxy-user-8080",
            host_port=18080,
            labels={"egg.project": "shop", "egg.service": "user"},
        )
        [info] = manager.list_proxies()
        assert (info.service_name, info.service_port, info.local_port) == ("user", 8080, 18080)

    def test_non_numeric_port_label_falls_back_to_name(self, manager, fake_runner):
        fake_runner.add_container(
            "shop-proxy-user-8080",
            host_port=8080,
            labels={"egg.project": "shop", "egg.service": "user", "egg.service-port": "http"},
        )
        assert [p.service_port for p in manager.list_proxies()] == [8080]
        assert manager.stop_all_proxies() == ["shop-proxy-user-8080"]

    def test_other_projects_ignored(self, manager, fake_runner):
        fake_runner.add_container("myshop-proxy-user-8080", host_port=8080)
        assert manager.list_proxies() == []

    def test_unparseable_entry_skipped(self, manager, fake_runner):
        fake_runner.add_container("shop-proxy-garbage", host_port=8080)
        assert manager.list_proxies() == []

    def test_ps_failure(self, manager, fake_runner):
        fake_runner.script("docker", "ps", exit_code=1, stderr="Cannot connect to the Docker daemon")
        with pytest.raises(ContainerLifecycleError, match="Cannot connect"):
            manager.list_proxies()

    def test_find_proxy(self, manager):
        manager.create_proxy("user", 8080)
        assert manager.find_proxy("user", 8080).local_port == 8080
        assert manager.find_proxy("user", 8081) is None


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------


class TestStopProxy:

    def test_stop_running(self, manager, fake_runner):
        info = manager.create_proxy("user", 8080)
        manager.stop_proxy(info.proxy_name)
        assert manager.list_proxies() == []

    def test_stop_missing_is_success(self, manager):
        manager.stop_proxy("shop-proxy-user-8080")

    def test_stop_twice(self, manager):
        info = manager.create_proxy("user", 8080)
        manager.stop_proxy(info.proxy_name)
        manager.stop_proxy(info.proxy_name)

    def test_other_failure_raises(self, manager, fake_runner):
        fake_runner.script("docker", "stop", exit_code=1, stderr="permission denied")
        with pytest.raises(ContainerLifecycleError, match="permission denied"):
            manager.stop_proxy("shop-proxy-user-8080")

    def test_invalid_name(self, manager):
        with pytest.raises(ValidationError):
            manager.stop_proxy("-rf")

    def test_port_is_free_after_stop(self, manager):
        info = manager.create_proxy("user", 8080)
        manager.stop_proxy(info.proxy_name)
        assert manager.create_proxy("ping", 8080).local_port == 8080


class TestStopAllProxies:

    def test_stops_every_relay(self, manager):
        manager.create_proxy("user", 8080)
        manager.create_proxy("ping", 8080)
        stopped = manager.stop_all_proxies()
        assert sorted(stopped) == ["shop-proxy-ping-8080", "shop-proxy-user-8080"]
        assert manager.list_proxies() == []

    def test_nothing_running(self, manager):
        assert manager.stop_all_proxies() == []

    def test_continues_past_failure(self, manager, fake_runner):
        manager.create_proxy("user", 8080)
        manager.create_proxy("ping", 9000)
        fake_runner.script(
            "docker", "stop", "shop-proxy-user-8080", exit_code=1, stderr="device busy"
        )
        with pytest.raises(ContainerLifecycleError, match="shop-proxy-user-8080"):
            manager.stop_all_proxies()
        assert [p.proxy_name for p in manager.list_proxies()] == ["shop-proxy-user-8080"]


class TestKeyLocks:

    def test_lock_entry_released_after_create(self, manager):
        manager.create_proxy("user", 8080)
        assert portproxy._KEY_LOCKS == {}

    def test_lock_entry_released_after_failure(self, manager, fake_runner):
        fake_runner.script("docker", "run", exit_code=125, stderr="boom")
        with pytest.raises(ContainerLifecycleError):
            manager.create_proxy("user", 8080)
        assert portproxy._KEY_LOCKS == {}

    def test_entry_exists_only_while_held(self):
        with portproxy._lock_for("shop-proxy-user-8080"):
            entry = portproxy._KEY_LOCKS["shop-proxy-user-8080"]
            assert entry.lock.locked()
        assert "shop-proxy-user-8080" not in portproxy._KEY_LOCKS
