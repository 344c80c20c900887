"""Subprocess runner: spawn without a shell, stream output, enforce deadlines.

Every agent call goes through ProcessRunner.run(). Spawn failures, non-zero
exits and timeouts come back as a ProcessResult with ``failure`` set; the
runner never raises for them.
"""

import asyncio
import codecs
import logging
import os
import signal
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from roast_council.models import FailureKind

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_DEFAULT_GRACE_SEC = 5.0
_DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

OutputObserver = Callable[[str, str], None]   # (stream name, line)


class _OutputLimitExceeded(Exception):
    pass


class _OutputBudget:
    """Byte allowance shared by a process's stdout and stderr."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0

    def take(self, size: int) -> None:
        self.used += size
        if self.used > self.limit:
            raise _OutputLimitExceeded()


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int | None
    duration_ms: int
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class Terminator(ABC):
    """Strategy for killing a spawned process and everything it started."""

    @abstractmethod
    def spawn_kwargs(self) -> dict:
        """Extra keyword arguments for create_subprocess_exec."""
        ...

    @abstractmethod
    async def terminate(self, proc: asyncio.subprocess.Process, grace_sec: float) -> None:
        ...


class PosixGroupTerminator(Terminator):
    """SIGTERM the whole process group, escalate to SIGKILL after the grace window."""

    def spawn_kwargs(self) -> dict:
        # Child becomes a session (and group) leader, so its pid is the pgid.
        return {"start_new_session": True}

    async def terminate(self, proc: asyncio.subprocess.Process, grace_sec: float) -> None:
        self._signal_group(proc.pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=grace_sec)
            return
        except asyncio.TimeoutError:
            logger.warning("Process group %d ignored SIGTERM, sending SIGKILL", proc.pid)
        self._signal_group(proc.pid, signal.SIGKILL)
        try:
            await asyncio.wait_for(proc.wait(), timeout=grace_sec)
        except asyncio.TimeoutError:
            logger.error("Process %d still not reaped after SIGKILL, abandoning it", proc.pid)

    @staticmethod
    def _signal_group(pgid: int, sig: int) -> None:
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            pass
        except PermissionError as exc:
            logger.debug("killpg(%d) refused: %s", pgid, exc)


class WindowsTreeTerminator(Terminator):
    """Kill by PID, then sweep the process tree with taskkill for orphans."""

    def spawn_kwargs(self) -> dict:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}

    async def terminate(self, proc: asyncio.subprocess.Process, grace_sec: float) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await self._taskkill_tree(proc.pid, grace_sec)
        try:
            await asyncio.wait_for(proc.wait(), timeout=grace_sec)
        except asyncio.TimeoutError:
            logger.error("Process %d still running after taskkill, abandoning it", proc.pid)

    @staticmethod
    async def _taskkill_tree(pid: int, grace_sec: float) -> None:
        try:
            killer = await asyncio.create_subprocess_exec(
                "taskkill", "/PID", str(pid), "/T", "/F",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await asyncio.wait_for(killer.wait(), timeout=grace_sec)
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("taskkill for %d failed: %s", pid, exc)


def default_terminator() -> Terminator:
    """Pick the termination strategy for this platform once, at startup."""
    if sys.platform != "win32" and hasattr(os, "killpg"):
        return PosixGroupTerminator()
    return WindowsTreeTerminator()


async def _pump(
    stream: asyncio.StreamReader,
    sink: list[str],
    name: str,
    on_output: OutputObserver | None,
    budget: _OutputBudget,
) -> None:
    """Drain a pipe in fixed-size reads, forwarding complete lines to the observer.

    Raises _OutputLimitExceeded once both pipes together pass the budget.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    while True:
        data = await stream.read(_READ_CHUNK)
        if not data:
            break
        budget.take(len(data))
        text = decoder.decode(data)
        sink.append(text)
        if on_output is not None:
            pending += text
            *lines, pending = pending.split("\n")
            for line in lines:
                on_output(name, line.rstrip("\r"))
    tail = decoder.decode(b"", final=True)
    if tail:
        sink.append(tail)
        pending += tail
    if on_output is not None and pending:
        on_output(name, pending)


class ProcessRunner:
    """Runs one external command at a time per call; safe to share across tasks."""

    def __init__(
        self,
        terminator: Terminator | None = None,
        grace_sec: float = _DEFAULT_GRACE_SEC,
        max_output_bytes: int = _DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self._terminator = terminator or default_terminator()
        self._grace_sec = grace_sec
        self.max_output_bytes = max_output_bytes
        self._active: set[asyncio.subprocess.Process] = set()

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout_sec: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        stdin_payload: str | None = None,
        on_output: OutputObserver | None = None,
    ) -> ProcessResult:
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.PIPE if stdin_payload is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **self._terminator.spawn_kwargs(),
            )
        except OSError as exc:
            logger.debug("Spawn failed for %s: %s", command, exc)
            return ProcessResult(
                stdout="",
                stderr="",
                exit_code=None,
                duration_ms=_elapsed_ms(start),
                failure=FailureKind.NOT_FOUND,
                error=f"Failed to start {command}: {exc}",
            )

        self._active.add(proc)
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        budget = _OutputBudget(self.max_output_bytes)

        async def feed_stdin() -> None:
            if proc.stdin is None:
                return
            try:
                proc.stdin.write(stdin_payload.encode("utf-8"))
                await proc.stdin.drain()
                proc.stdin.close()
                await proc.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("%s closed stdin before the payload was delivered", command)

        async def communicate() -> int:
            tasks = [
                asyncio.ensure_future(feed_stdin()),
                asyncio.ensure_future(_pump(proc.stdout, stdout_parts, "stdout", on_output, budget)),
                asyncio.ensure_future(_pump(proc.stderr, stderr_parts, "stderr", on_output, budget)),
            ]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(communicate(), timeout=timeout_sec)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs, terminating process group", command, timeout_sec)
            await self._terminator.terminate(proc, self._grace_sec)
            return ProcessResult(
                stdout="".join(stdout_parts),
                stderr="".join(stderr_parts),
                exit_code=proc.returncode,
                duration_ms=_elapsed_ms(start),
                failure=FailureKind.TIMEOUT,
                error=f"Command timed out after {timeout_sec:g}s: {command}",
            )
        except _OutputLimitExceeded:
            logger.warning(
                "%s exceeded %d bytes of output, terminating process group", command, self.max_output_bytes,
            )
            await self._terminator.terminate(proc, self._grace_sec)
            return ProcessResult(
                stdout="".join(stdout_parts),
                stderr="".join(stderr_parts),
                exit_code=proc.returncode,
                duration_ms=_elapsed_ms(start),
                failure=FailureKind.EXIT_ERROR,
                error=f"Output exceeded {self.max_output_bytes / (1024 * 1024):g}MB limit: {command}",
            )
        except BaseException:
            # Cancellation, or an observer raising: the process must not outlive the call.
            await self._terminator.terminate(proc, self._grace_sec)
            raise
        finally:
            self._active.discard(proc)

        stdout = "".join(stdout_parts)
        stderr = "".join(stderr_parts)
        if exit_code != 0:
            return ProcessResult(
                stdout=stdout,
                stderr=stderr,
                exit_code=exit_code,
                duration_ms=_elapsed_ms(start),
                failure=FailureKind.EXIT_ERROR,
                error=f"Command failed with exit code {exit_code}: {command}",
            )
        return ProcessResult(stdout=stdout, stderr=stderr, exit_code=0, duration_ms=_elapsed_ms(start))

    async def shutdown(self) -> None:
        """Terminate every process still running (host shutdown)."""
        procs = list(self._active)
        if procs:
            logger.info("Terminating %d running agent process(es)", len(procs))
        await asyncio.gather(*(self._terminator.terminate(p, self._grace_sec) for p in procs))
        self._active.clear()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
