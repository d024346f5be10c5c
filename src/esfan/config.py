"""Configuration loader for esfan."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import MalformedConfig

CONFIG_ENV_VAR = "ESFAN_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.esfan.yaml")


@dataclass
class Defaults:
    """Run settings that apply to every host."""

    timeout: float | None = 30
    log_dir: Path | None = None


@dataclass
class HostDescriptor:
    """Configuration for a single host."""

    name: str
    type: str
    path: str
    args: str = ""
    tags: list[str] = field(default_factory=list)
    remote: str | None = None  # user@host[:port], engine runs over SSH


@dataclass
class Config:
    """Everything stored in the config file."""

    hosts: dict[str, HostDescriptor] = field(default_factory=dict)
    defaults: Defaults = field(default_factory=Defaults)
    source_path: Path | None = None  # Path to the config file on disk


def default_config_path() -> Path:
    """Return the config path from the environment or the home directory."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file.

    A missing file is not an error: it is the state before the first host
    is added.
    """
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        return Config(source_path=config_path)

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise MalformedConfig(f"{config_path}: invalid YAML: {e}") from e

    config = _parse_config(raw or {}, config_path)
    config.source_path = config_path
    return config


def save_config(config: Config, config_path: str | Path | None = None) -> Path:
    """Write the whole configuration back to disk."""
    target = Path(config_path or config.source_path or default_config_path())
    target = target.expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)

    with open(target, "w") as f:
        yaml.safe_dump(_dump_config(config), f, sort_keys=False)

    config.source_path = target.resolve()
    return config.source_path


def _parse_defaults(raw: dict[str, Any], config_path: Path) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    if not isinstance(defaults_raw, dict):
        raise MalformedConfig(f"{config_path}: 'defaults' must be a mapping")

    timeout = defaults_raw.get("timeout", 30)
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise MalformedConfig(f"{config_path}: 'timeout' must be a number")
        if timeout <= 0:
            timeout = None

    log_dir = defaults_raw.get("log_dir")
    return Defaults(
        timeout=timeout,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    )


def _parse_config(raw: Any, config_path: Path) -> Config:
    """Parse raw YAML data into Config object."""
    if not isinstance(raw, dict):
        raise MalformedConfig(f"{config_path}: top level must be a mapping")

    defaults = _parse_defaults(raw, config_path)

    hosts_raw = raw.get("hosts") or {}
    if not isinstance(hosts_raw, dict):
        raise MalformedConfig(f"{config_path}: 'hosts' must be a mapping")

    hosts = {}
    for name, host_raw in hosts_raw.items():
        host = _parse_host(str(name), host_raw, config_path)
        hosts[host.name] = host

    return Config(hosts=hosts, defaults=defaults)


def _parse_host(name: str, host_raw: Any, config_path: Path) -> HostDescriptor:
    """Parse a single host entry."""
    if not isinstance(host_raw, dict):
        raise MalformedConfig(f"{config_path}: host '{name}' must be a mapping")

    host_type = host_raw.get("type")
    if not host_type or not isinstance(host_type, str):
        raise MalformedConfig(f"{config_path}: host '{name}' must have a 'type' field")

    path = host_raw.get("path")
    if not path or not isinstance(path, str):
        raise MalformedConfig(f"{config_path}: host '{name}' must have a 'path' field")

    args = host_raw.get("args") or ""
    if not isinstance(args, str):
        raise MalformedConfig(f"{config_path}: host '{name}' has non-string 'args'")

    remote = host_raw.get("remote")
    if remote is not None and not isinstance(remote, str):
        raise MalformedConfig(f"{config_path}: host '{name}' has non-string 'remote'")

    return HostDescriptor(
        name=name,
        type=host_type,
        path=path,
        args=args,
        tags=_parse_tags(host_raw.get("tags"), name, config_path),
        remote=remote or None,
    )


def _parse_tags(tags_raw: Any, name: str, config_path: Path) -> list[str]:
    """Tags may be written as a list or as one comma-joined string."""
    if tags_raw is None:
        return []
    if isinstance(tags_raw, str):
        return split_list(tags_raw)
    if isinstance(tags_raw, list) and all(isinstance(t, str) for t in tags_raw):
        return [t.strip() for t in tags_raw if t.strip()]
    raise MalformedConfig(f"{config_path}: host '{name}' has invalid 'tags'")


def _dump_config(config: Config) -> dict[str, Any]:
    """Turn a Config back into plain YAML data."""
    hosts: dict[str, Any] = {}
    for host in config.hosts.values():
        entry: dict[str, Any] = {"type": host.type, "path": host.path}
        if host.args:
            entry["args"] = host.args
        if host.tags:
            entry["tags"] = list(host.tags)
        if host.remote:
            entry["remote"] = host.remote
        hosts[host.name] = entry

    defaults = config.defaults
    return {
        "defaults": {
            "timeout": defaults.timeout,
            "log_dir": str(defaults.log_dir) if defaults.log_dir else None,
        },
        "hosts": hosts,
    }


def split_list(value: str) -> list[str]:
    """Split a comma-joined option value, dropping empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]
