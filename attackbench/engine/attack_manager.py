"""Module attack_manager: runs attack vectors as concurrent, observable sessions."""
#
# PURPOSE:
# The coordinator between the vector catalog, the tool monitor, the process
# runner and the classifier. It owns the live-session map; nothing else
# holds a reference to a mutable AttackSession.
#
# FLOW (per execute call):
# 1. Gate: every required tool must be AVAILABLE, else PrerequisitesNotMet
#    (no session, no process)
# 2. Register a RUNNING session under a fresh id
# 3. Render the vector's command templates into argv lists
# 4. Run them one after another, streaming every line into the session log
#    and out through output_received
# 5. Classify the frozen log, build the AttackResult, emit session_finished
#
# KEY RULES:
# - No concurrency cap: sessions never wait on each other
# - Outcome mapping: exit 0 -> completed, cancel -> stopped, anything else -> failed
# - A terminal AttackResult is produced for every session that was created
#

import asyncio
import itertools
import logging
import shlex
import threading
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from attackbench.base.config import WorkbenchConfig, get_config
from attackbench.base.session import AttackSession
from attackbench.data.models import AttackResult, SessionSnapshot, SessionStatus
from attackbench.engine.runner import CancelToken, ExitKind, ExitOutcome, ProcessRunner
from attackbench.errors import PrerequisitesNotMet, SessionNotFound
from attackbench.toolkit.classifier import Classification, classify
from attackbench.toolkit.monitor import ToolAvailabilityMonitor
from attackbench.toolkit.vectors import AttackVector, render_vector, validate_port, validate_target
from attackbench.toolkit.wordlists import WordlistManager
from attackbench.utils.async_helpers import create_safe_task
from attackbench.utils.observer import Signal

logger = logging.getLogger(__name__)


def status_for(outcome: ExitOutcome) -> SessionStatus:
    if outcome.success:
        return SessionStatus.COMPLETED
    if outcome.kind is ExitKind.CANCELLED:
        return SessionStatus.STOPPED
    return SessionStatus.FAILED


class AttackSessionManager:
    """
    Executes attack vectors and tracks their sessions.

    Signals:
        output_received(session_id, line): every line, in arrival order
        session_finished(result): once per session, after its last line
    """

    def __init__(
        self,
        monitor: ToolAvailabilityMonitor,
        runner: ProcessRunner,
        wordlists: WordlistManager,
        config: Optional[WorkbenchConfig] = None,
    ):
        self.monitor = monitor
        self.runner = runner
        self.wordlists = wordlists
        self.config = config or get_config()

        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._sessions: Dict[int, AttackSession] = {}
        self._results: Dict[int, AttackResult] = {}
        self._tasks: Set[asyncio.Task] = set()

        self.output_received = Signal("attack_output_received")
        self.session_finished = Signal("attack_session_finished")

    # ------------------------------------------------------------------
    # Starting sessions
    # ------------------------------------------------------------------

    async def execute(
        self,
        vector: AttackVector,
        target: str,
        port: int,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ) -> AttackResult:
        """
        Run a vector to completion and return its terminal result.

        Raises:
            PrerequisitesNotMet: a required tool is not available
            WorkbenchError: invalid target, port or command template
        """
        session, commands = self._prepare(vector, target, port)
        return await self._drive(session, commands, cancel_token, timeout)

    def launch(
        self,
        vector: AttackVector,
        target: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> SessionSnapshot:
        """Start a vector in the background; returns the RUNNING session snapshot."""
        session, commands = self._prepare(vector, target, port)
        task = create_safe_task(self._drive(session, commands, None, timeout), name=f"attack-{session.id}")
        with self._lock:
            self._tasks.add(task)
        task.add_done_callback(self._forget_task)
        return session.snapshot()

    def _forget_task(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.discard(task)

    def _prepare(self, vector: AttackVector, target: str, port: int) -> Tuple[AttackSession, List[List[str]]]:
        target = validate_target(target)
        port = validate_port(port)

        missing = self.monitor.describe_missing(vector.required_tools)
        if missing:
            names = ", ".join(m["tool"] for m in missing)
            logger.warning(f"[AttackManager] {vector.name}: prerequisites not met ({names})")
            raise PrerequisitesNotMet(
                f"{vector.name} requires tools that are not available: {names}",
                details={"vector": vector.name, "missing": missing},
            )

        commands = render_vector(vector, target, port, extra=self.wordlists.placeholders())

        with self._lock:
            session = AttackSession(next(self._ids), vector.name, vector.category, target, port)
            self._sessions[session.id] = session
        logger.info(f"[AttackManager] Session {session.id}: {vector.name} -> {target}:{port}")
        return session, commands

    # ------------------------------------------------------------------
    # Driving a session
    # ------------------------------------------------------------------

    def _record(self, session: AttackSession, line: str) -> None:
        if session.append_output(line):
            self.output_received.emit(session.id, line)

    async def _drive(
        self,
        session: AttackSession,
        commands: List[List[str]],
        cancel_token: Optional[CancelToken],
        timeout: Optional[float],
    ) -> AttackResult:
        if timeout is None:
            timeout = self.config.execution.session_timeout_seconds
        if cancel_token is not None:
            cancel_token.add_callback(session.cancel_token.cancel)

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        outcome = ExitOutcome.exited(0)

        self._record(session, f"=== {session.vector_name} ===")
        try:
            for argv in commands:
                remaining = None
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        outcome = ExitOutcome.timed_out()
                        break

                self._record(session, f"$ {shlex.join(argv)}")
                binary = self.monitor.resolver(argv[0]) or argv[0]
                outcome = await self.runner.run(
                    binary,
                    argv[1:],
                    on_line=lambda line: self._record(session, line),
                    cancel_token=session.cancel_token,
                    timeout=remaining,
                )
                if outcome.kind is ExitKind.SPAWN_FAILED:
                    self._record(session, f"[!] {outcome.describe()}")
                if not outcome.success:
                    break
        except asyncio.CancelledError:
            logger.info(f"[AttackManager] Session {session.id} task cancelled")
            self._finalize(session, ExitOutcome.cancelled())
            raise
        finally:
            if cancel_token is not None:
                cancel_token.remove_callback(session.cancel_token.cancel)

        session.finish(status_for(outcome))
        output = session.output()
        try:
            findings = await loop.run_in_executor(None, classify, session.category, output, session.port)
        except asyncio.CancelledError:
            self._publish(session, outcome, classify(session.category, output, session.port))
            raise
        return self._publish(session, outcome, findings)

    def _finalize(self, session: AttackSession, outcome: ExitOutcome) -> AttackResult:
        session.finish(status_for(outcome))
        return self._publish(session, outcome, classify(session.category, session.output(), session.port))

    def _publish(self, session: AttackSession, outcome: ExitOutcome, findings: Classification) -> AttackResult:
        status = session.status
        output = session.output()
        credentials, vulnerabilities, files = findings

        result = AttackResult(
            session_id=session.id,
            vector_name=session.vector_name,
            category=session.category,
            target=session.target,
            port=session.port,
            success=outcome.success,
            status=status,
            outcome=outcome.kind.value,
            exit_code=outcome.code,
            error=None if outcome.success else outcome.describe(),
            started_at=session.started_at,
            ended_at=session.ended_at,
            duration=session.duration,
            output=output,
            credentials=tuple(credentials),
            vulnerabilities=tuple(vulnerabilities),
            files=tuple(files),
        )
        with self._lock:
            self._results[session.id] = result

        logger.info(
            f"[AttackManager] Session {session.id} {status.value} ({outcome.describe()}): "
            f"{len(credentials)} credentials, {len(vulnerabilities)} vulnerabilities, {len(files)} files"
        )
        self.session_finished.emit(result)
        return result

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def _session(self, session_id: int) -> AttackSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def stop(self, session_id: int) -> bool:
        """
        Cancel a running session.

        Returns False if it had already finished.
        Raises SessionNotFound for unknown ids.
        """
        session = self._session(session_id)
        if session.is_terminal:
            return False
        logger.info(f"[AttackManager] Stopping session {session_id}")
        session.cancel_token.cancel()
        return True

    def stop_all(self) -> int:
        with self._lock:
            running = [s for s in self._sessions.values() if not s.is_terminal]
        for session in running:
            session.cancel_token.cancel()
        return len(running)

    async def shutdown(self) -> None:
        """Stop every session and wait for its result to be produced."""
        self.stop_all()
        with self._lock:
            tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def active_sessions(self) -> List[SessionSnapshot]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.snapshot() for s in sessions if not s.is_terminal]

    def history(self) -> List[SessionSnapshot]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.snapshot() for s in sessions if s.is_terminal]

    def get_session(self, session_id: int) -> SessionSnapshot:
        return self._session(session_id).snapshot()

    def output_since(self, session_id: int, cursor: int = 0) -> Tuple[Tuple[str, ...], int, SessionStatus]:
        """New lines after cursor, the next cursor, and the status read after the lines."""
        session = self._session(session_id)
        lines, next_cursor = session.output_since(cursor)
        return lines, next_cursor, session.status

    def result_of(self, session_id: int) -> Optional[AttackResult]:
        self._session(session_id)
        with self._lock:
            return self._results.get(session_id)

    def clear_history(self) -> int:
        """Forget every finished session. Returns how many were removed."""
        return self.prune_history(max_age=0.0)

    def prune_history(self, max_age: Optional[float] = None) -> int:
        """Forget finished sessions that ended more than max_age seconds ago."""
        if max_age is None:
            max_age = self.config.execution.history_retention_seconds
        now = datetime.now()
        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.is_terminal and s.ended_at is not None
                and (now - s.ended_at).total_seconds() >= max_age
            ]
            for sid in stale:
                self._sessions.pop(sid, None)
                self._results.pop(sid, None)
        if stale:
            logger.debug(f"[AttackManager] Pruned {len(stale)} finished sessions")
        return len(stale)
