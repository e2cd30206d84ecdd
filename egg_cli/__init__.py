"""egg-cli - build and local port-proxy core of the egg microservice CLI."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("egg-cli")
except PackageNotFoundError:
    __version__ = "0.4.0"  # fallback for editable installs / dev
