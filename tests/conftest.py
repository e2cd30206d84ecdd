"""
Top-level pytest conftest.py -- shared fixtures.

Provides:
    fake_runner  - in-memory docker runner (see tests/mocks.py)
    fake_prober  - port prober over a set of occupied ports
    egg_yaml     - writes an egg.yaml into tmp_path and returns its path
"""

import os
import sys

import pytest

# Make ``tests.mocks`` importable as ``mocks`` from any test directory.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mocks import FakeProber, FakeRunner  # noqa: E402


SAMPLE_CONFIG = """\
project_name: shop
version: v1.2.0
docker_registry: ghcr.io/acme
build:
  platforms:
    - linux/amd64
    - linux/arm64
backend_defaults:
  ports:
    http: 8080
    health: 8081
    metrics: 9091
backend:
  user: {}
  ping:
    ports:
      http: 8080
      health: 8082
      metrics: 9092
frontend:
  web: {}
"""


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_prober(fake_runner):
    """Prober that sees ports bound by relays in ``fake_runner`` as taken."""
    return FakeProber(runner=fake_runner)


@pytest.fixture
def egg_yaml(tmp_path):
    """Write the sample egg.yaml and return its path."""
    path = tmp_path / "egg.yaml"
    path.write_text(SAMPLE_CONFIG)
    return path


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    """Keep debug/verbose tracing and config overrides out of test output."""
    for var in ("EGG_DEBUG", "EGG_VERBOSE", "EGG_CONFIG"):
        monkeypatch.delenv(var, raising=False)
