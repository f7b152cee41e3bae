"""Module runner: spawn one external tool and stream its output line by line."""
#
# PURPOSE:
# The single place where external processes are started. Every attack and
# every tool install goes through ProcessRunner.run(), which:
# - spawns the binary in its own process group (start_new_session=True)
# - pumps stdout and stderr concurrently, one callback per complete line
# - stops the whole group on cancellation or timeout (SIGTERM, grace, SIGKILL)
# - always returns an ExitOutcome instead of raising for tool problems
#
# OUTCOMES:
# - Exited(code): the process ran to completion on its own
# - Cancelled: the caller's CancelToken fired
# - TimedOut: the per-call timeout elapsed
# - SpawnFailed(reason): binary missing or not executable
#
# KEY CONCEPTS:
# - CancelToken may be fired from any thread (UI thread, API handler, signal)
# - Runner holds no shared state; any number of run() calls may overlap
#

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

# Time allowed for the pumps to drain after the process group is gone
_DRAIN_TIMEOUT = 1.0


class ExitKind(str, Enum):
    EXITED = "exited"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"


@dataclass(frozen=True)
class ExitOutcome:
    kind: ExitKind
    code: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def exited(cls, code: int) -> "ExitOutcome":
        return cls(ExitKind.EXITED, code=code)

    @classmethod
    def cancelled(cls, code: Optional[int] = None) -> "ExitOutcome":
        return cls(ExitKind.CANCELLED, code=code, reason="cancelled")

    @classmethod
    def timed_out(cls, code: Optional[int] = None) -> "ExitOutcome":
        return cls(ExitKind.TIMED_OUT, code=code, reason="timed out")

    @classmethod
    def spawn_failed(cls, reason: str) -> "ExitOutcome":
        return cls(ExitKind.SPAWN_FAILED, reason=reason)

    @property
    def success(self) -> bool:
        return self.kind is ExitKind.EXITED and self.code == 0

    def describe(self) -> str:
        if self.kind is ExitKind.EXITED:
            return f"exited with code {self.code}"
        if self.kind is ExitKind.SPAWN_FAILED:
            return f"failed to start: {self.reason}"
        return self.reason or self.kind.value


class CancelToken:
    """
    Thread-safe, one-shot cancellation flag.

    cancel() may be called from any thread; coroutines await wait().
    Callbacks registered with add_callback() run once, on the cancelling thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"[CancelToken] Callback failed: {e}", exc_info=e)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel (immediately if already cancelled)."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        loop = asyncio.get_running_loop()
        fired = loop.create_future()

        def _wake():
            loop.call_soon_threadsafe(_resolve, fired)

        self.add_callback(_wake)
        try:
            await fired
        finally:
            self.remove_callback(_wake)


def _resolve(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


class ProcessRunner:
    """
    Spawns external commands and streams their output.

    Args:
        grace_period: Seconds between SIGTERM and SIGKILL on stop
        line_limit: Maximum bytes per delivered line
    """

    def __init__(self, grace_period: float = 5.0, line_limit: int = 1024 * 1024):
        self.grace_period = grace_period
        self.line_limit = line_limit

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Optional[Dict[str, str]] = None,
        on_line: Optional[LineCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> ExitOutcome:
        argv = [command, *args]
        if cancel_token is not None and cancel_token.cancelled:
            return ExitOutcome.cancelled()

        full_env = os.environ.copy()
        full_env["NONINTERACTIVE"] = "1"
        if env:
            full_env.update(env)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
                cwd=cwd,
                start_new_session=True,
                limit=self.line_limit,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            reason = f"{command}: {e.strerror or e}"
            logger.warning(f"[ProcessRunner] Spawn failed for {command}: {reason}")
            return ExitOutcome.spawn_failed(reason)
        except OSError as e:
            logger.warning(f"[ProcessRunner] Spawn failed for {command}: {e}")
            return ExitOutcome.spawn_failed(f"{command}: {e}")

        logger.debug(f"[ProcessRunner] Started pid={proc.pid}: {' '.join(argv)}")

        pumps = [
            asyncio.ensure_future(self._pump(proc.stdout, on_line)),
            asyncio.ensure_future(self._pump(proc.stderr, on_line)),
        ]
        exit_task = asyncio.ensure_future(proc.wait())
        waiters = {exit_task}
        cancel_task: Optional[asyncio.Future] = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

            if exit_task in done:
                code = exit_task.result()
                await self._drain(pumps, timeout=self.grace_period)
                logger.debug(f"[ProcessRunner] pid={proc.pid} exited with {code}")
                return ExitOutcome.exited(code)

            cancelled = cancel_task is not None and cancel_task in done
            code = await self._terminate(proc, exit_task)
            await self._drain(pumps, timeout=_DRAIN_TIMEOUT)
            if cancelled:
                logger.info(f"[ProcessRunner] pid={proc.pid} cancelled ({command})")
                return ExitOutcome.cancelled(code)
            logger.info(f"[ProcessRunner] pid={proc.pid} timed out after {timeout}s ({command})")
            return ExitOutcome.timed_out(code)
        except asyncio.CancelledError:
            # The awaiting coroutine went away; never leave the tool running
            self._signal_group(proc, signal.SIGKILL)
            for pump in pumps:
                pump.cancel()
            raise
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()
            if not exit_task.done():
                exit_task.cancel()

    async def _pump(self, stream: Optional[asyncio.StreamReader], on_line: Optional[LineCallback]) -> None:
        if stream is None:
            return
        overran = False
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw = e.partial
            except asyncio.LimitOverrunError as e:
                # Line longer than the reader limit: hand it over in chunks
                raw = await stream.read(min(e.consumed, self.line_limit))
                overran = True
            else:
                if overran and raw in (b"\n", b"\r\n"):
                    # Terminator of a line already delivered in chunks
                    overran = False
                    continue
                overran = False
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if on_line is not None:
                try:
                    on_line(line)
                except Exception as e:
                    logger.error(f"[ProcessRunner] Line callback failed: {e}", exc_info=e)

    async def _drain(self, pumps: List[asyncio.Future], timeout: Optional[float]) -> None:
        done, pending = await asyncio.wait(pumps, timeout=timeout)
        for pump in pending:
            # A detached grandchild still holds the pipe open
            pump.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _terminate(self, proc: asyncio.subprocess.Process, exit_task: asyncio.Future) -> Optional[int]:
        """SIGTERM the group, wait the grace period, then SIGKILL."""
        self._signal_group(proc, signal.SIGTERM)
        try:
            return await asyncio.wait_for(asyncio.shield(exit_task), timeout=self.grace_period)
        except asyncio.TimeoutError:
            logger.warning(f"[ProcessRunner] pid={proc.pid} ignored SIGTERM, killing")
            self._signal_group(proc, signal.SIGKILL)
            return await exit_task

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            # Group leader already reaped and pid reused; fall back to the child itself
            try:
                proc.send_signal(sig)
            except ProcessLookupError:
                pass
