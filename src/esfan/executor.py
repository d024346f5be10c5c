"""Concurrent execution of one program across many hosts."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .engine import EngineRunner, EvalOptions, HostError, RunningAgent
from .errors import EngineError, HostNotFound
from .registry import HostRegistry

logger = logging.getLogger(__name__)


class HostStatus(Enum):
    """Status of a host's execution."""

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class HostResult:
    """The outcome of running the program in one host."""

    host_name: str
    stdout: str
    error: HostError | None = None


# Type aliases for callbacks
StatusCallback = Callable[[str, HostStatus], None]  # (host_name, status) -> None
ResultCallback = Callable[[HostResult], None]


class Dispatcher:
    """Runs a program in every selected host and joins on all of them."""

    def __init__(
        self,
        registry: HostRegistry,
        runner: EngineRunner,
        on_status: StatusCallback | None = None,
        on_result: ResultCallback | None = None,
        log_dir: Path | None = None,
    ):
        self.registry = registry
        self.runner = runner
        self.on_status = on_status
        self.on_result = on_result
        self.log_dir = log_dir
        self.statuses: dict[str, HostStatus] = {}
        self._run_log_dir: Path | None = None

    def _setup_logging(self) -> None:
        """Set up a log directory for this run, named by timestamp."""
        if self.log_dir is None:
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        self._run_log_dir = Path(self.log_dir).expanduser() / timestamp
        self._run_log_dir.mkdir(parents=True, exist_ok=True)

        # Keep the host definitions used for this run next to its results
        source_path = self.registry.config.source_path
        if source_path and source_path.exists():
            shutil.copy(source_path, self._run_log_dir / "config.yaml")

    def _write_log(self, result: HostResult, source: str) -> None:
        if self._run_log_dir is None:
            return
        with open(self._run_log_dir / f"{result.host_name}.log", "w") as f:
            f.write("## Source\n")
            f.write(source.rstrip("\n") + "\n\n")
            f.write("## Output\n")
            f.write(result.stdout.rstrip("\n") + "\n")
            if result.error:
                f.write(f"\n## Error\n{result.error.name}: {result.error.message}\n")

    def _emit_status(self, host_name: str, status: HostStatus) -> None:
        self.statuses[host_name] = status
        logger.debug("%s: %s", host_name, status.value)
        if self.on_status:
            self.on_status(host_name, status)

    def _emit_result(self, result: HostResult, source: str) -> None:
        failed = result.error is not None
        self._emit_status(result.host_name, HostStatus.FAILED if failed else HostStatus.DONE)
        self._write_log(result, source)
        if self.on_result:
            self.on_result(result)

    async def run(
        self, names: Sequence[str], source: str, options: EvalOptions
    ) -> list[HostResult]:
        """Run the source in all hosts in parallel.

        Returns one result per name, in the order the names were given.
        """
        self._setup_logging()
        for name in names:
            self._emit_status(name, HostStatus.PENDING)

        tasks = [self._run_host(name, source, options) for name in names]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("%s: unexpected failure", name, exc_info=outcome)
                outcome = HostResult(name, "", HostError(type(outcome).__name__, str(outcome)))
                self._emit_result(outcome, source)
            results.append(outcome)
        return results

    async def _run_host(self, name: str, source: str, options: EvalOptions) -> HostResult:
        """Start, evaluate and tear down a single host."""
        try:
            host = self.registry.get(name)
        except HostNotFound as e:
            result = HostResult(name, "", HostError("HostNotFound", str(e)))
            self._emit_result(result, source)
            return result

        self._emit_status(name, HostStatus.STARTING)
        try:
            agent: RunningAgent = await self.runner.start(host)
        except EngineError as e:
            result = HostResult(name, "", _infrastructure_error(e))
            self._emit_result(result, source)
            return result

        self._emit_status(name, HostStatus.RUNNING)
        try:
            outcome = await agent.evaluate(source, options)
            result = HostResult(name, outcome.stdout, outcome.error)
        except EngineError as e:
            result = HostResult(name, "", _infrastructure_error(e))
        except Exception as e:
            logger.error("%s: unexpected failure", name, exc_info=e)
            result = HostResult(name, "", HostError(type(e).__name__, str(e)))

        # The result is captured; the realm goes away before this host is done
        try:
            await agent.destroy()
        except EngineError as e:
            if result.error is None:
                result = HostResult(name, result.stdout, _infrastructure_error(e))
            else:
                logger.warning("%s: teardown failed: %s", name, e)

        self._emit_result(result, source)
        return result


def _infrastructure_error(error: EngineError) -> HostError:
    return HostError(type(error).__name__, str(error))
