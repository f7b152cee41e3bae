from __future__ import annotations

import asyncio
import logging
import threading
from typing import Dict, Optional, Set

from fastapi import Request

from attackbench.base.config import WorkbenchConfig, get_config
from attackbench.data.db import EvidenceIndex
from attackbench.data.evidence_store import EvidencePackager
from attackbench.data.models import AttackResult, SessionSnapshot
from attackbench.engine.attack_manager import AttackSessionManager
from attackbench.engine.runner import ProcessRunner
from attackbench.errors import WorkbenchError
from attackbench.toolkit.monitor import ToolAvailabilityMonitor
from attackbench.toolkit.registry import ToolRegistry
from attackbench.toolkit.wordlists import WordlistManager
from attackbench.utils.async_helpers import create_safe_task

logger = logging.getLogger(__name__)


class ApplicationState:
    """Every long-lived service of one workbench process, wired once at startup."""

    def __init__(
        self,
        config: WorkbenchConfig,
        registry: ToolRegistry,
        runner: ProcessRunner,
        monitor: ToolAvailabilityMonitor,
        wordlists: WordlistManager,
        manager: AttackSessionManager,
        evidence: EvidencePackager,
        auto_seal: bool = True,
    ):
        self.config = config
        self.registry = registry
        self.runner = runner
        self.monitor = monitor
        self.wordlists = wordlists
        self.manager = manager
        self.evidence = evidence
        self.auto_seal = auto_seal

        self.prune_task: Optional[asyncio.Task] = None
        self._seal_tasks: Set[asyncio.Task] = set()

        # session id -> evidence package id
        self._packages: Dict[int, str] = {}
        self._packages_lock = threading.Lock()

        manager.session_finished.connect(self._on_session_finished)

    def package_for(self, session_id: int) -> Optional[str]:
        with self._packages_lock:
            return self._packages.get(session_id)

    def _on_session_finished(self, result: AttackResult) -> None:
        if not self.auto_seal:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[State] No event loop; session {result.session_id} not sealed")
            return
        # Taken now: history may be cleared before the seal task runs
        snapshot = self.manager.get_session(result.session_id)
        task = create_safe_task(self._seal(snapshot, result), name=f"seal-{result.session_id}")
        self._seal_tasks.add(task)
        task.add_done_callback(self._seal_tasks.discard)

    async def wait_for_seals(self) -> None:
        """Block until every background seal has finished."""
        while self._seal_tasks:
            await asyncio.gather(*list(self._seal_tasks), return_exceptions=True)

    async def _seal(self, snapshot: SessionSnapshot, result: AttackResult) -> None:
        try:
            package = await self.evidence.seal(snapshot, result)
        except WorkbenchError as e:
            logger.error(f"[State] Sealing session {result.session_id} failed: {e.message}")
            return
        with self._packages_lock:
            self._packages[result.session_id] = package.id


def build_state(config: Optional[WorkbenchConfig] = None, auto_seal: bool = True) -> ApplicationState:
    config = config or get_config()
    config.ensure_dirs()

    registry = ToolRegistry()
    runner = ProcessRunner(
        grace_period=config.execution.grace_period_seconds,
        line_limit=config.execution.max_line_bytes,
    )
    monitor = ToolAvailabilityMonitor(
        registry,
        runner,
        install_timeout=config.execution.install_timeout_seconds,
    )
    wordlists = WordlistManager(config.storage.wordlists_path)
    manager = AttackSessionManager(monitor, runner, wordlists, config)
    evidence = EvidencePackager(config, EvidenceIndex(str(config.storage.db_path)))

    return ApplicationState(config, registry, runner, monitor, wordlists, manager, evidence, auto_seal=auto_seal)


def get_state(request: Request) -> ApplicationState:
    """FastAPI dependency: the state attached to the running app."""
    return request.app.state.workbench
