"""In-memory engine runner for tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from esfan.config import HostDescriptor
from esfan.engine import EvalOptions, EvalOutcome, HostError
from esfan.errors import EngineError


@dataclass
class FakeHost:
    """Scripted behaviour of one host."""

    stdout: str = ""
    error: tuple[str, str] | None = None
    start_error: EngineError | None = None
    eval_error: EngineError | None = None
    destroy_error: EngineError | None = None
    delay: float = 0.0


@dataclass
class FakeEngineRunner:
    hosts: dict[str, FakeHost] = field(default_factory=dict)
    started: list[str] = field(default_factory=list)
    destroyed: list[str] = field(default_factory=list)
    evaluated: list[tuple[str, str, EvalOptions]] = field(default_factory=list)
    running: int = 0
    max_running: int = 0

    async def start(self, host: HostDescriptor) -> FakeAgent:
        behaviour = self.hosts.get(host.name, FakeHost())
        if behaviour.start_error is not None:
            raise behaviour.start_error
        self.started.append(host.name)
        return FakeAgent(self, host.name, behaviour)


class FakeAgent:
    def __init__(self, runner: FakeEngineRunner, name: str, behaviour: FakeHost):
        self.runner = runner
        self.name = name
        self.behaviour = behaviour

    async def evaluate(self, source: str, options: EvalOptions) -> EvalOutcome:
        self.runner.evaluated.append((self.name, source, options))
        self.runner.running += 1
        self.runner.max_running = max(self.runner.max_running, self.runner.running)
        try:
            await asyncio.sleep(self.behaviour.delay)
        finally:
            self.runner.running -= 1

        if self.behaviour.eval_error is not None:
            raise self.behaviour.eval_error

        error = None
        if self.behaviour.error:
            error = HostError(*self.behaviour.error)
        return EvalOutcome(self.behaviour.stdout, error)

    async def destroy(self) -> None:
        self.runner.destroyed.append(self.name)
        if self.behaviour.destroy_error is not None:
            raise self.behaviour.destroy_error
