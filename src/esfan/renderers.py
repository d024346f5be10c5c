"""Printing aggregated rows as plain text or as a table."""

from __future__ import annotations

import re
from typing import Protocol, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .aggregator import AggregatedRow

ERROR_TEXT = re.compile(r"^[A-Z]\w*(?:Error|Exception|Failure|NotFound): ")


class Renderer(Protocol):
    host_delimiter: str

    def render(self, rows: Sequence[AggregatedRow], source: str | None = None) -> None: ...


def styled_result(text: str, color: bool) -> Text:
    """Result text with error lines in red."""
    styled = Text()
    for index, line in enumerate(text.split("\n")):
        if index:
            styled.append("\n")
        style = "red" if color and ERROR_TEXT.match(line) else None
        styled.append(line, style=style)
    return styled


def _pre(text: str) -> str:
    return f"<pre>{text}</pre>".replace("\n", "<br>")


class PlainRenderer:
    """One heading per row followed by its result."""

    host_delimiter = ", "

    def __init__(self, console: Console, color: bool = True, markdown: bool = False):
        self.console = console
        self.color = color and not markdown
        self.markdown = markdown

    def _heading(self, text: str) -> None:
        self.console.print(Text(text, style="blue" if self.color else None))

    def render(self, rows: Sequence[AggregatedRow], source: str | None = None) -> None:
        if source is not None:
            self._heading("## Source")
            self.console.print(Text(source.rstrip("\n")))
            self.console.print()

        for row in rows:
            self._heading(f"#### {row.label}")
            if self.markdown:
                self.console.print(Text(f"```\n{row.result_text}\n```"))
            else:
                self.console.print(styled_result(row.result_text, self.color))
            self.console.print()


class TableRenderer:
    """A two-column table of host(s) and result."""

    host_delimiter = "\n"

    def __init__(self, console: Console, color: bool = True, markdown: bool = False):
        self.console = console
        self.color = color and not markdown
        self.markdown = markdown

    def render(self, rows: Sequence[AggregatedRow], source: str | None = None) -> None:
        if source is not None:
            self.console.print(Text("## Source", style="blue" if self.color else None))
            self.console.print(Text(source.rstrip("\n")))
            self.console.print()

        if self.markdown:
            self._render_markdown(rows)
            return

        header_style = "red" if self.color else None
        table = Table(show_lines=True, header_style=header_style)
        table.add_column("Host")
        table.add_column("Result")
        for row in rows:
            table.add_row(Text(row.label), styled_result(row.result_text, self.color))
        self.console.print(table)

    def _render_markdown(self, rows: Sequence[AggregatedRow]) -> None:
        lines = ["| Host | Result |", "|------|--------|"]
        for row in rows:
            label = row.label.replace("\n", "<br>")
            lines.append(f"| {label} | {_pre(row.result_text)} |")
        self.console.print(Text("\n".join(lines)), soft_wrap=True)


def make_renderer(
    table: bool = False,
    color: bool = True,
    markdown: bool = False,
    console: Console | None = None,
) -> PlainRenderer | TableRenderer:
    """Select the renderer variant for the given output options."""
    if console is None:
        console = Console(no_color=not color, highlight=False)
    renderer_cls = TableRenderer if table else PlainRenderer
    return renderer_cls(console, color=color, markdown=markdown)
