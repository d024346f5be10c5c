"""Running source code in a single engine executable."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import asyncssh

from .config import HostDescriptor
from .errors import EngineEvaluationFailure, EngineStartFailure, EngineTeardownFailure

logger = logging.getLogger(__name__)

SUPPORTED_HOST_TYPES = frozenset(
    {
        "ch",
        "d8",
        "engine262",
        "graaljs",
        "hermes",
        "jsc",
        "jsshell",
        "libjs",
        "node",
        "qjs",
        "xs",
    }
)

# Extra arguments that switch an engine into module evaluation. Engines not
# listed here pick module semantics up from the .mjs extension.
MODULE_FLAGS: dict[str, list[str]] = {
    "d8": ["--module"],
    "engine262": ["--module"],
    "jsshell": ["--module"],
    "qjs": ["--module"],
    "jsc": ["-m"],
    "xs": ["-m"],
}

ERROR_LINE = re.compile(r"^(?:Uncaught\s+)?((?:[A-Z]\w*)?(?:Error|Exception))(?::\s?(.*))?$")


@dataclass(frozen=True)
class HostError:
    """An error reported by, or on behalf of, a host."""

    name: str
    message: str


@dataclass(frozen=True)
class EvalOptions:
    async_: bool = False
    module: bool = False
    timeout: float | None = None


@dataclass(frozen=True)
class EvalOutcome:
    stdout: str
    error: HostError | None = None


class RunningAgent(Protocol):
    async def evaluate(self, source: str, options: EvalOptions) -> EvalOutcome: ...

    async def destroy(self) -> None: ...


class EngineRunner(Protocol):
    async def start(self, host: HostDescriptor) -> RunningAgent: ...


def build_command(host: HostDescriptor, script_path: str, module: bool) -> list[str]:
    """Command line that runs one script file in the host."""
    command = [host.path, *shlex.split(host.args)]
    if module:
        command.extend(MODULE_FLAGS.get(host.type, []))
    command.append(script_path)
    return command


def parse_outcome(stdout: str, stderr: str, exit_status: int) -> EvalOutcome:
    """Split captured process output into printed text and a thrown error.

    An error line on stderr always counts. An error line on stdout only counts
    when the process failed, since programs may print such text themselves.
    """
    stdout = stdout.replace("\r\n", "\n")
    stderr_lines = stderr.replace("\r\n", "\n").splitlines()

    error = _find_error(stderr_lines)
    if error is None and exit_status != 0:
        stdout_lines = stdout.splitlines()
        for index in range(len(stdout_lines) - 1, -1, -1):
            match = ERROR_LINE.match(stdout_lines[index].strip())
            if match:
                error = HostError(match.group(1), match.group(2) or "")
                del stdout_lines[index]
                stdout = "\n".join(stdout_lines)
                break

    if error is None and exit_status != 0:
        remaining = [line for line in stderr_lines if line.strip()]
        message = remaining[-1].strip() if remaining else f"exited with status {exit_status}"
        error = HostError("Error", message)

    return EvalOutcome(stdout=stdout, error=error)


def _find_error(lines: list[str]) -> HostError | None:
    for line in reversed(lines):
        match = ERROR_LINE.match(line.strip())
        if match:
            return HostError(match.group(1), match.group(2) or "")
    return None


def _script_name(options: EvalOptions) -> str:
    return "script.mjs" if options.module else "script.js"


class LocalAgent:
    """One evaluation of a host executable on this machine.

    The realm lives as long as the process, so evaluation always waits for the
    process to exit, with or without async_.
    """

    def __init__(self, host: HostDescriptor):
        self.host = host
        self._workdir: Path | None = None

    async def evaluate(self, source: str, options: EvalOptions) -> EvalOutcome:
        self._workdir = Path(tempfile.mkdtemp(prefix="esfan-"))
        script = self._workdir / _script_name(options)
        script.write_text(source, encoding="utf-8")

        command = build_command(self.host, str(script), options.module)
        logger.debug("%s: running %s", self.host.name, shlex.join(command))

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineStartFailure(f"Could not run {self.host.path}: {e}") from e

        try:
            out, err = await asyncio.wait_for(proc.communicate(), options.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise EngineEvaluationFailure(
                f"Evaluation timed out after {options.timeout}s"
            ) from None

        return parse_outcome(
            out.decode("utf-8", errors="replace"),
            err.decode("utf-8", errors="replace"),
            proc.returncode or 0,
        )

    async def destroy(self) -> None:
        if self._workdir is None:
            return
        try:
            shutil.rmtree(self._workdir)
        except OSError as e:
            raise EngineTeardownFailure(f"Could not remove {self._workdir}: {e}") from e
        finally:
            self._workdir = None


class LocalEngineRunner:
    """Runs hosts as subprocesses of this machine."""

    async def start(self, host: HostDescriptor) -> LocalAgent:
        if not os.path.isfile(host.path):
            raise EngineStartFailure(f"Host executable not found: {host.path}")
        if not os.access(host.path, os.X_OK):
            raise EngineStartFailure(f"Host executable is not executable: {host.path}")
        return LocalAgent(host)


def parse_remote(remote: str) -> tuple[str | None, str, int]:
    """Split `user@host[:port]` into its parts."""
    user, _, address = remote.rpartition("@")
    host, sep, port = address.partition(":")
    if not host:
        raise EngineStartFailure(f"Invalid remote target: {remote!r}")
    try:
        port_number = int(port) if sep else 22
    except ValueError:
        raise EngineStartFailure(f"Invalid port in remote target: {remote!r}") from None
    return user or None, host, port_number


class RemoteAgent:
    """One evaluation of a host executable over an SSH connection."""

    def __init__(self, host: HostDescriptor, conn: asyncssh.SSHClientConnection):
        self.host = host
        self._conn = conn
        self._workdir: str | None = None

    async def evaluate(self, source: str, options: EvalOptions) -> EvalOutcome:
        try:
            result = await self._conn.run("mktemp -d", check=True)
            self._workdir = str(result.stdout).strip()
            script = f"{self._workdir}/{_script_name(options)}"

            async with self._conn.start_sftp_client() as sftp:
                async with sftp.open(script, "w") as f:
                    await f.write(source)

            command = shlex.join(build_command(self.host, script, options.module))
            logger.debug("%s: running %s on %s", self.host.name, command, self.host.remote)
            result = await asyncio.wait_for(
                self._conn.run(command, check=False), options.timeout
            )
        except asyncio.TimeoutError:
            raise EngineEvaluationFailure(
                f"Evaluation timed out after {options.timeout}s"
            ) from None
        except (asyncssh.Error, OSError) as e:
            raise EngineEvaluationFailure(f"SSH error: {e}") from e

        return parse_outcome(
            str(result.stdout or ""),
            str(result.stderr or ""),
            result.exit_status or 0,
        )

    async def destroy(self) -> None:
        try:
            if self._workdir:
                await self._conn.run(f"rm -rf {shlex.quote(self._workdir)}", check=True)
        except (asyncssh.Error, OSError) as e:
            raise EngineTeardownFailure(f"SSH error: {e}") from e
        finally:
            self._workdir = None
            self._conn.close()
            await self._conn.wait_closed()


class RemoteEngineRunner:
    """Runs hosts on another machine over SSH."""

    async def start(self, host: HostDescriptor) -> RemoteAgent:
        if not host.remote:
            raise EngineStartFailure(f"Host '{host.name}' has no remote target")
        user, address, port = parse_remote(host.remote)
        try:
            conn = await asyncssh.connect(address, port=port, username=user)
        except (asyncssh.Error, OSError) as e:
            raise EngineStartFailure(f"Connection error: {e}") from e
        return RemoteAgent(host, conn)


class DefaultEngineRunner:
    """Picks the local or the remote runner per host."""

    def __init__(
        self,
        local: EngineRunner | None = None,
        remote: EngineRunner | None = None,
    ):
        self.local = local or LocalEngineRunner()
        self.remote = remote or RemoteEngineRunner()

    async def start(self, host: HostDescriptor) -> RunningAgent:
        runner = self.remote if host.remote else self.local
        return await runner.start(host)
