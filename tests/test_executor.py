"""Tests for concurrent dispatch across hosts."""

from __future__ import annotations

import pytest

from esfan.engine import EvalOptions, HostError
from esfan.errors import EngineEvaluationFailure, EngineStartFailure, EngineTeardownFailure
from esfan.executor import Dispatcher, HostStatus
from tests.fake_engine import FakeEngineRunner, FakeHost

pytestmark = pytest.mark.anyio


async def test_runs_every_host_in_given_order(registry):
    runner = FakeEngineRunner({"node": FakeHost("2"), "v8": FakeHost("3")})
    results = await Dispatcher(registry, runner).run(["v8", "node"], "1 + 1", EvalOptions())

    assert [r.host_name for r in results] == ["v8", "node"]
    assert [r.stdout for r in results] == ["3", "2"]
    assert all(r.error is None for r in results)


async def test_hosts_run_concurrently(registry):
    runner = FakeEngineRunner({name: FakeHost("x", delay=0.05) for name in registry.names()})
    await Dispatcher(registry, runner).run(registry.names(), "x", EvalOptions())
    assert runner.max_running == len(registry)


async def test_completion_order_does_not_change_identity(registry):
    runner = FakeEngineRunner({"ch": FakeHost("slow", delay=0.05), "node": FakeHost("fast")})
    results = await Dispatcher(registry, runner).run(["ch", "node"], "x", EvalOptions())
    assert {r.host_name: r.stdout for r in results} == {"ch": "slow", "node": "fast"}


async def test_passes_source_and_options(registry):
    runner = FakeEngineRunner()
    options = EvalOptions(async_=True, module=True, timeout=3)
    await Dispatcher(registry, runner).run(["node"], "export {}", options)
    assert runner.evaluated == [("node", "export {}", options)]


async def test_unknown_host_becomes_error_row(registry):
    runner = FakeEngineRunner({"node": FakeHost("2")})
    results = await Dispatcher(registry, runner).run(["missing", "node"], "x", EvalOptions())

    assert results[0].error.name == "HostNotFound"
    assert "missing" in results[0].error.message
    assert results[1].stdout == "2"


async def test_start_failure_is_isolated(registry):
    runner = FakeEngineRunner(
        {
            "ch": FakeHost(start_error=EngineStartFailure("no such file")),
            "node": FakeHost("2"),
            "v8": FakeHost("2"),
        }
    )
    results = await Dispatcher(registry, runner).run(["ch", "node", "v8"], "x", EvalOptions())

    assert len(results) == 3
    assert results[0].error.name == "EngineStartFailure"
    assert results[0].error.message == "no such file"
    assert [r.stdout for r in results[1:]] == ["2", "2"]
    assert "ch" not in runner.destroyed


async def test_evaluation_failure_still_tears_down(registry):
    runner = FakeEngineRunner({"node": FakeHost(eval_error=EngineEvaluationFailure("timed out"))})
    [result] = await Dispatcher(registry, runner).run(["node"], "x", EvalOptions())

    assert result.error.name == "EngineEvaluationFailure"
    assert runner.destroyed == ["node"]


async def test_teardown_failure_keeps_output(registry):
    runner = FakeEngineRunner({"node": FakeHost("2", destroy_error=EngineTeardownFailure("stuck"))})
    [result] = await Dispatcher(registry, runner).run(["node"], "x", EvalOptions())

    assert result.stdout == "2"
    assert result.error.name == "EngineTeardownFailure"


async def test_teardown_failure_does_not_hide_program_error(registry):
    runner = FakeEngineRunner(
        {"node": FakeHost(error=("TypeError", "bad"), destroy_error=EngineTeardownFailure("stuck"))}
    )
    [result] = await Dispatcher(registry, runner).run(["node"], "x", EvalOptions())
    assert result.error.name == "TypeError"


async def test_unexpected_exception_is_isolated(registry):
    runner = FakeEngineRunner(
        {"ch": FakeHost(eval_error=ValueError("bug")), "node": FakeHost("2")}
    )
    results = await Dispatcher(registry, runner).run(["ch", "node"], "x", EvalOptions())

    assert results[0].error.name == "ValueError"
    assert results[1].stdout == "2"


async def test_unexpected_exception_still_tears_down(registry):
    runner = FakeEngineRunner({"ch": FakeHost(eval_error=ValueError("bug"))})
    [result] = await Dispatcher(registry, runner).run(["ch"], "x", EvalOptions())

    assert result.error == HostError("ValueError", "bug")
    assert runner.destroyed == ["ch"]


async def test_status_and_result_callbacks(registry):
    statuses = []
    finished = []
    runner = FakeEngineRunner({"ch": FakeHost(start_error=EngineStartFailure("x"))})
    dispatcher = Dispatcher(
        registry,
        runner,
        on_status=lambda name, status: statuses.append((name, status)),
        on_result=finished.append,
    )
    await dispatcher.run(["ch", "node"], "x", EvalOptions())

    assert [s for n, s in statuses if n == "node"] == [
        HostStatus.PENDING,
        HostStatus.STARTING,
        HostStatus.RUNNING,
        HostStatus.DONE,
    ]
    assert dispatcher.statuses["ch"] is HostStatus.FAILED
    assert sorted(r.host_name for r in finished) == ["ch", "node"]


async def test_writes_host_logs(registry, tmp_path):
    runner = FakeEngineRunner({"node": FakeHost("2"), "v8": FakeHost("", error=("Error", "boom"))})
    await Dispatcher(registry, runner, log_dir=tmp_path).run(["node", "v8"], "1 + 1", EvalOptions())

    [run_dir] = list(tmp_path.iterdir())
    node_log = (run_dir / "node.log").read_text()
    assert "1 + 1" in node_log
    assert "2" in node_log
    assert "Error: boom" in (run_dir / "v8.log").read_text()
