#!/usr/bin/env python3
"""Main entry point for esfan."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .aggregator import ResultAggregator
from .config import HostDescriptor, default_config_path, split_list
from .engine import DefaultEngineRunner, EngineRunner, EvalOptions
from .errors import MalformedConfig, RegistryError
from .executor import Dispatcher
from .registry import HostRegistry
from .renderers import make_renderer
from .selector import HostSelection, select_hosts

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esfan",
        usage="esfan [options] [input-file]\n       esfan [options] -e \"input-script\"",
        description="Run JavaScript source in many engines and compare the results",
        add_help=False,
    )
    parser.add_argument("file", nargs="?", type=Path, help="Source file to evaluate")
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("--config", type=Path, help="Path to the host config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")

    source = parser.add_argument_group("evaluation")
    source.add_argument("-e", "--eval", metavar="CODE", help="Evaluate CODE instead of a file")
    source.add_argument("-a", "--async", dest="async_", action="store_true",
                        help="Wait for realm teardown before collecting results")
    source.add_argument("-m", "--module", action="store_true", help="Evaluate as module code")
    source.add_argument("--timeout", type=float,
                        help="Seconds to wait for each host (default from config)")

    selection = parser.add_argument_group("host selection")
    selection.add_argument("-h", "--host", action="append", default=[], metavar="NAMES",
                           help="Select hosts by name, comma separated, * and ? allowed")
    selection.add_argument("-g", "--host-group", action="append", default=[], metavar="TYPES",
                           help="Select hosts by type, comma separated")
    selection.add_argument("--tags", action="append", default=[], metavar="TAGS",
                           help="Select hosts by tag, comma separated (also used with --add/--edit)")

    output = parser.add_argument_group("output")
    output.add_argument("-c", "--coalesce", action="store_true",
                        help="Group hosts with identical results")
    output.add_argument("-u", "--unanimous", action="store_true",
                        help="Print nothing and exit 0 when all results agree, else exit 1 (implies --coalesce)")
    output.add_argument("-t", "--table", action="store_true", help="Print results as a table")
    output.add_argument("-s", "--show-source", action="store_true",
                        help="Print the source before the results")
    output.add_argument("--no-color", action="store_true", help="Disable colored output")
    output.add_argument("--markdown", action="store_true", help="Print results as markdown")
    output.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    output.add_argument("--log-dir", type=Path, help="Write per-host logs for this run here")

    hosts = parser.add_argument_group("host management")
    hosts.add_argument("-l", "--list", action="store_true", help="List configured hosts")
    hosts.add_argument("--add", nargs=3, metavar=("NAME", "TYPE", "PATH"), help="Add a host")
    hosts.add_argument("--edit", metavar="NAME", help="Edit a host")
    hosts.add_argument("--delete", metavar="NAME", help="Remove a host")
    hosts.add_argument("--delete-all", action="store_true", help="Remove all hosts")
    hosts.add_argument("--type", help="New host type (with --edit)")
    hosts.add_argument("--path", help="New host path (with --edit)")
    hosts.add_argument("--args", help="Arguments passed to the host (with --add/--edit)")
    hosts.add_argument("--remote", metavar="USER@HOST[:PORT]",
                       help="Run the host over SSH (with --add/--edit)")
    return parser


def _split_all(values: Sequence[str]) -> list[str]:
    items: list[str] = []
    for value in values:
        items.extend(split_list(value))
    return items


def main(
    argv: Sequence[str] | None = None,
    console: Console | None = None,
    runner: EngineRunner | None = None,
) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    color = not (args.no_color or args.markdown)
    if console is None:
        console = Console(no_color=not color, highlight=False)
    err_console = Console(stderr=True, no_color=not color, highlight=False)

    config_path = args.config or default_config_path()
    try:
        registry = HostRegistry.load(config_path)
    except MalformedConfig as e:
        err_console.print(Text(f"Configuration error: {e}", style="red"))
        return 1

    if args.list or args.add or args.edit or args.delete or args.delete_all:
        try:
            return _manage_hosts(args, registry, console)
        except RegistryError as e:
            err_console.print(Text(str(e), style="red"))
            return 1
        except OSError as e:
            err_console.print(Text(f"Error: {e}", style="red"))
            return 1

    if args.eval is not None:
        source = args.eval
    elif args.file is not None:
        try:
            source = args.file.read_text(encoding="utf-8")
        except OSError as e:
            err_console.print(Text(f"Error: {e}", style="red"))
            return 1
    else:
        parser.print_usage(sys.stderr)
        return 2

    selection = HostSelection(
        names=_split_all(args.host),
        groups=_split_all(args.host_group),
        tags=_split_all(args.tags),
    )
    names = select_hosts(registry, selection)
    if not names:
        err_console.print(Text("No configured hosts", style="yellow"))
        return 1
    logger.debug("Selected hosts: %s", ", ".join(names))

    defaults = registry.config.defaults
    options = EvalOptions(
        async_=args.async_,
        module=args.module or (args.file is not None and args.file.suffix == ".mjs"),
        timeout=_timeout(args.timeout, defaults.timeout),
    )
    log_dir = args.log_dir or defaults.log_dir
    runner = runner or DefaultEngineRunner()

    renderer = make_renderer(
        table=args.table, color=color, markdown=args.markdown, console=console
    )

    if args.dashboard:
        from .dashboard import Dashboard

        app = Dashboard(registry, runner, names, source, options, log_dir=log_dir)
        app.run()
        if not app.finished:
            err_console.print(Text("Run interrupted before all hosts finished", style="red"))
            return 1
        results = app.results
    else:
        dispatcher = Dispatcher(registry, runner, log_dir=log_dir)
        results = asyncio.run(dispatcher.run(names, source, options))

    aggregator = ResultAggregator(
        coalesce=args.coalesce or args.unanimous,
        unanimous_exit_zero=args.unanimous,
        delimiter=renderer.host_delimiter,
    )
    for result in results:
        aggregator.record(result)
    report = aggregator.finalize()

    if not report.silent:
        renderer.render(report.rows, source if args.show_source else None)
    return report.exit_code


def _timeout(value: float | None, default: float | None) -> float | None:
    """Timeouts of zero or less mean no timeout, as in the config file."""
    if value is None:
        return default
    return value if value > 0 else None


def _manage_hosts(args: argparse.Namespace, registry: HostRegistry, console: Console) -> int:
    """Handle --list, --add, --edit, --delete and --delete-all."""
    console.print(Text(f'Using config "{registry.config.source_path}"', style="bright_black"))

    if args.list:
        _list_hosts(registry, console)
        return 0

    if args.add:
        name, host_type, path = args.add
        registry.add(
            HostDescriptor(
                name=name,
                type=host_type,
                path=path,
                args=(args.args or "").strip(),
                tags=_split_all(args.tags),
                remote=args.remote,
            )
        )
        registry.save()
        console.print(f"Host '{name}' added")
    elif args.edit:
        registry.edit(
            args.edit,
            type=args.type,
            path=args.path,
            args=args.args.strip() if args.args is not None else None,
            tags=_split_all(args.tags) if args.tags else None,
            remote=args.remote,
        )
        registry.save()
        console.print(f"Host '{args.edit}' updated")
    elif args.delete:
        registry.remove(args.delete)
        registry.save()
        console.print(f"Host '{args.delete}' removed")
    elif args.delete_all:
        removed = registry.remove()
        registry.save()
        console.print(f"Removed {len(removed)} host(s)")
    return 0


def _list_hosts(registry: HostRegistry, console: Console) -> None:
    if not len(registry):
        console.print("No configured hosts")
        return

    table = Table(show_lines=False)
    for column in ("name", "type", "path", "args", "tags"):
        table.add_column(column)
    for host in registry.hosts.values():
        path = f"{host.remote}:{host.path}" if host.remote else host.path
        table.add_row(
            Text(host.name), Text(host.type), Text(path), Text(host.args), Text(", ".join(host.tags))
        )
    console.print(table)


if __name__ == "__main__":
    sys.exit(main())
