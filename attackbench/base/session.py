"""Module session: state of one attack execution."""
#
# PURPOSE:
# An AttackSession is one run of one vector against one target. It holds the
# only mutable copy of that run's output and status; everybody else (API,
# CLI, observers) reads immutable SessionSnapshots.
#
# KEY RULES:
# - Ids come from the manager's counter and are never reused
# - Status moves forward only: running -> completed | failed | stopped
# - The output log is append-only and frozen once the session is terminal
# - Appends and reads take the same lock, so any thread may read at any time
#

from datetime import datetime
from threading import Lock
from typing import List, Optional, Tuple

from attackbench.data.models import AttackCategory, SessionSnapshot, SessionStatus
from attackbench.engine.runner import CancelToken
from attackbench.errors import ErrorCode, WorkbenchError


class AttackSession:
    """
    Mutable state of one attack run, owned by the AttackSessionManager.

    Args:
        session_id: Process-unique id assigned by the manager
        vector_name: Name of the executed AttackVector
        category: Attack category (selects the classifier rules)
        target: Host or address under test
        port: Target port
    """

    def __init__(self, session_id: int, vector_name: str, category: AttackCategory, target: str, port: int):
        self.id = session_id
        self.vector_name = vector_name
        self.category = category
        self.target = target
        self.port = port
        self.started_at = datetime.now()
        self.ended_at: Optional[datetime] = None
        self.cancel_token = CancelToken()

        self._status = SessionStatus.RUNNING
        self._output: List[str] = []
        self._lock = Lock()

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def append_output(self, line: str) -> bool:
        """Append one line. Returns False (and drops it) once the session is terminal."""
        with self._lock:
            if self._status.is_terminal:
                return False
            self._output.append(line)
            return True

    def finish(self, status: SessionStatus) -> None:
        """
        Move to a terminal status and freeze the log.

        Raises:
            WorkbenchError: the session is already terminal or status is RUNNING
        """
        if not status.is_terminal:
            raise WorkbenchError(
                ErrorCode.SESSION_INVALID_STATE,
                f"Session {self.id} cannot transition back to {status.value}",
            )
        with self._lock:
            if self._status.is_terminal:
                raise WorkbenchError(
                    ErrorCode.SESSION_INVALID_STATE,
                    f"Session {self.id} already {self._status.value}",
                    details={"session_id": self.id, "requested": status.value},
                )
            self._status = status
            self.ended_at = datetime.now()

    def output(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._output)

    def output_since(self, cursor: int) -> Tuple[Tuple[str, ...], int]:
        """Lines after `cursor` and the new cursor, for incremental readers."""
        with self._lock:
            cursor = max(0, min(cursor, len(self._output)))
            return tuple(self._output[cursor:]), len(self._output)

    @property
    def duration(self) -> float:
        end = self.ended_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def snapshot(self, include_output: bool = True) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                session_id=self.id,
                vector_name=self.vector_name,
                category=self.category,
                target=self.target,
                port=self.port,
                status=self._status,
                started_at=self.started_at,
                ended_at=self.ended_at,
                output=tuple(self._output) if include_output else (),
            )

    def __repr__(self) -> str:
        return f"<AttackSession {self.id} {self.vector_name} -> {self.target}:{self.port} [{self.status.value}]>"
