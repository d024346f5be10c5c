"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from esfan.config import Config, HostDescriptor
from esfan.registry import HostRegistry


def make_registry(*hosts: HostDescriptor) -> HostRegistry:
    return HostRegistry(Config(hosts={host.name: host for host in hosts}))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def registry():
    """A registry with a few hosts of different types and tags."""
    return make_registry(
        HostDescriptor("ch", "ch", "/engines/ch", tags=["latest"]),
        HostDescriptor("ch-1", "ch", "/engines/ch-1"),
        HostDescriptor("ch-2", "ch", "/engines/ch-2", tags=["greatest"]),
        HostDescriptor("node", "node", "/engines/node", tags=["latest", "greatest"]),
        HostDescriptor("v8", "d8", "/engines/d8"),
    )
