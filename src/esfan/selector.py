"""Resolve a host selection request into the list of hosts to run."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from .registry import HostRegistry


@dataclass
class HostSelection:
    """Names (glob-capable), groups (host types) and tags, all unioned."""

    names: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.names or self.groups or self.tags)


def is_glob(token: str) -> bool:
    return "*" in token or "?" in token


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a `*`/`?` pattern into an anchored regular expression."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


def select_hosts(registry: HostRegistry, selection: HostSelection) -> list[str]:
    """Return the deduplicated, order-stable host names to target.

    Plain names are taken verbatim even when they are not registered; the
    dispatcher reports them as missing. Globs, groups and tags only ever
    produce registered names. An empty result means every host.
    """
    hosts = registry.hosts
    selected: list[str] = []

    for token in selection.names:
        if is_glob(token):
            regex = glob_to_regex(token)
            selected.extend(name for name in hosts if regex.fullmatch(name))
        else:
            selected.append(token)

    for group in selection.groups:
        selected.extend(name for name, host in hosts.items() if host.type == group)

    if selection.tags:
        wanted = set(selection.tags)
        selected.extend(name for name, host in hosts.items() if wanted & set(host.tags))

    if not selected:
        selected = registry.names()

    return _dedupe(selected)


def _dedupe(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))
