"""Turn per-host results into the rows that get printed."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_DELIMITER = ", "


@dataclass(frozen=True)
class AggregatedRow:
    label: str
    result_text: str


@dataclass(frozen=True)
class AggregateReport:
    """Finalized rows plus the unanimity verdict.

    When `silent` is set the caller must not render anything.
    """

    rows: list[AggregatedRow] = field(default_factory=list)
    unanimous: bool = True
    silent: bool = False
    exit_code: int = 0


class AggregatorState(Enum):
    COLLECTING = "collecting"
    FINALIZED = "finalized"


def result_text(result: Any) -> str:
    """Text shown for one result: trimmed stdout plus the error line.

    Missing or non-string fields count as empty.
    """
    stdout = getattr(result, "stdout", None)
    text = stdout.strip() if isinstance(stdout, str) else ""

    error = getattr(result, "error", None)
    if error is not None:
        name = getattr(error, "name", None)
        message = getattr(error, "message", None)
        name = name if isinstance(name, str) else ""
        message = message if isinstance(message, str) else ""
        text += f"\n{name}: {message}"

    return text.replace("\r", "")


class ResultAggregator:
    """Collects HostResults and, once finalized, groups and judges them."""

    def __init__(
        self,
        coalesce: bool = False,
        unanimous_exit_zero: bool = False,
        delimiter: str = DEFAULT_DELIMITER,
    ):
        self.coalesce = coalesce
        self.unanimous_exit_zero = unanimous_exit_zero
        self.delimiter = delimiter
        self.state = AggregatorState.COLLECTING
        self._entries: list[tuple[str, str]] = []
        self._report: AggregateReport | None = None

    def record(self, result: Any) -> None:
        if self.state is AggregatorState.FINALIZED:
            raise RuntimeError("Cannot record results after finalize()")
        name = getattr(result, "host_name", None)
        self._entries.append((name if isinstance(name, str) else "", result_text(result)))

    def finalize(self) -> AggregateReport:
        if self._report is not None:
            return self._report
        self.state = AggregatorState.FINALIZED

        # sorted() is stable, so equal names keep insertion order
        entries = sorted(self._entries, key=lambda entry: entry[0])
        unanimous = is_unanimous([text for _, text in entries])

        if self.unanimous_exit_zero and unanimous:
            self._report = AggregateReport(rows=[], unanimous=True, silent=True, exit_code=0)
            return self._report

        if self.coalesce:
            rows = [
                AggregatedRow(self.delimiter.join(names), text)
                for text, names in coalesce(entries).items()
            ]
        else:
            rows = [AggregatedRow(name, text) for name, text in entries]

        self._report = AggregateReport(
            rows=rows,
            unanimous=unanimous,
            exit_code=1 if self.unanimous_exit_zero else 0,
        )
        return self._report


def is_unanimous(texts: list[str]) -> bool:
    if len(texts) <= 1:
        return True
    first = texts[0]
    return all(text == first for text in texts)


def coalesce(entries: list[tuple[str, str]]) -> dict[str, list[str]]:
    """Group host names by identical text, in order of first appearance."""
    groups: dict[str, list[str]] = {}
    for name, text in entries:
        groups.setdefault(text, []).append(name)
    return groups
