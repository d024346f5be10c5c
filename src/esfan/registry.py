"""The set of configured hosts for one esfan invocation."""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from .config import Config, HostDescriptor, load_config, save_config
from .engine import SUPPORTED_HOST_TYPES
from .errors import DuplicateHost, HostNotFound, UnsupportedHostType


class HostRegistry:
    """Owns the mapping of host name to HostDescriptor.

    The registry is mutated only by add/edit/remove between runs and is
    read-only while a Dispatcher is running. Changes reach disk only through
    an explicit save().
    """

    def __init__(self, config: Config | None = None):
        self.config = config or Config()

    @classmethod
    def load(cls, config_path: str | Path) -> HostRegistry:
        return cls(load_config(config_path))

    def save(self) -> Path:
        return save_config(self.config)

    @property
    def hosts(self) -> dict[str, HostDescriptor]:
        return self.config.hosts

    def __contains__(self, name: object) -> bool:
        return name in self.hosts

    def __len__(self) -> int:
        return len(self.hosts)

    def get(self, name: str) -> HostDescriptor:
        try:
            return self.hosts[name]
        except KeyError:
            raise HostNotFound(name) from None

    def names(self) -> list[str]:
        """Host names in registration order."""
        return list(self.hosts)

    def add(self, host: HostDescriptor) -> HostDescriptor:
        """Register a new host. Adding never overwrites an existing one."""
        if host.name in self.hosts:
            raise DuplicateHost(host.name)
        _check_type(host.type)

        host = replace(host, path=_resolve_path(host), tags=list(host.tags))
        self.hosts[host.name] = host
        return host

    def edit(
        self,
        name: str,
        *,
        type: str | None = None,
        path: str | None = None,
        args: str | None = None,
        tags: list[str] | None = None,
        remote: str | None = None,
    ) -> HostDescriptor:
        """Change fields of an existing host; unspecified fields are kept."""
        host = self.get(name)
        if type is not None:
            _check_type(type)

        changes: dict[str, object] = {}
        if type is not None:
            changes["type"] = type
        if path is not None:
            changes["path"] = path
        if args is not None:
            changes["args"] = args
        if tags is not None:
            changes["tags"] = list(tags)
        if remote is not None:
            changes["remote"] = remote or None

        host = replace(host, **changes)
        host = replace(host, path=_resolve_path(host))
        self.hosts[name] = host
        return host

    def remove(self, name: str | None = None) -> list[str]:
        """Remove one host, or every host when no name is given."""
        if name is None:
            removed = self.names()
            self.hosts.clear()
            return removed

        if name not in self.hosts:
            raise HostNotFound(name)
        del self.hosts[name]
        return [name]


def _check_type(host_type: str) -> None:
    if host_type not in SUPPORTED_HOST_TYPES:
        raise UnsupportedHostType(host_type, sorted(SUPPORTED_HOST_TYPES))


def _resolve_path(host: HostDescriptor) -> str:
    # Remote paths are resolved on the remote machine
    if host.remote or os.path.isabs(host.path):
        return host.path
    return os.path.join(os.getcwd(), host.path)
