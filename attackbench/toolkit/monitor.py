"""Module monitor: per-tool availability cache and coalesced installs."""
#
# PURPOSE:
# Answers "can this tool run right now?" for the session manager and the UI,
# and owns the only write path to that answer.
#
# STATUS LIFECYCLE:
#   probe            -> available | needs_installation | unavailable
#   install starts   -> installing
#   install finishes -> available | failed
#
# KEY RULES:
# - Probes are cached until refresh() (no automatic expiry)
# - One install in flight per tool; concurrent install() calls share it
# - A failed install stays failed until someone calls install() again
# - Unknown tools are probed by binary presence and can never be installed
#

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from attackbench.engine.runner import CancelToken, ProcessRunner
from attackbench.errors import ErrorCode, InstallFailed
from attackbench.toolkit.installer import install_hint, install_tool
from attackbench.toolkit.registry import ToolRegistry
from attackbench.utils.observer import Signal

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Optional[str]]


class ToolStatus(str, Enum):
    AVAILABLE = "available"
    NEEDS_INSTALLATION = "needs_installation"
    INSTALLING = "installing"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


class InstallResult(BaseModel):
    tool: str
    status: ToolStatus
    message: str = ""
    log: List[str] = []


class ToolAvailabilityMonitor:
    """
    Owns the tool status cache.

    Args:
        registry: Static tool catalog plus install strategies
        runner: ProcessRunner used for install commands
        resolver: Maps a tool name to a binary path (defaults to registry.find)
        install_timeout: Per-command limit for install steps
    """

    def __init__(
        self,
        registry: ToolRegistry,
        runner: ProcessRunner,
        resolver: Optional[Resolver] = None,
        install_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.runner = runner
        self.resolver: Resolver = resolver or registry.find
        self.install_timeout = install_timeout

        self._lock = threading.Lock()
        self._status: Dict[str, ToolStatus] = {}
        self._installs: Dict[str, asyncio.Task] = {}
        self._install_tokens: Dict[str, CancelToken] = {}
        self._messages: Dict[str, str] = {}

        self.status_changed = Signal("tool_status_changed")
        self.install_output = Signal("tool_install_output")

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def probe(self, tool: str) -> ToolStatus:
        """Check the binary and cache the answer (an install in flight wins)."""
        found = self.resolver(tool) is not None
        if found:
            status = ToolStatus.AVAILABLE
        elif self.registry.is_known(tool) and not self.registry.can_install(tool):
            status = ToolStatus.UNAVAILABLE
        else:
            status = ToolStatus.NEEDS_INSTALLATION

        with self._lock:
            if tool in self._installs:
                return ToolStatus.INSTALLING
            previous = self._status.get(tool)
            if previous is ToolStatus.FAILED and not found:
                # Stays failed until the user retries the install
                return previous
            self._status[tool] = status

        if previous != status:
            self.status_changed.emit(tool, status)
        return status

    def status_of(self, tool: str) -> ToolStatus:
        """Cached read; probes on first use."""
        with self._lock:
            cached = self._status.get(tool)
        if cached is not None:
            return cached
        return self.probe(tool)

    def refresh(self, tools: Optional[Iterable[str]] = None) -> Dict[str, ToolStatus]:
        """Force re-probe of the given tools (all registry tools by default)."""
        names = list(tools) if tools is not None else self.registry.names()
        logger.info(f"[ToolMonitor] Refreshing {len(names)} tools")
        return {name: self.probe(name) for name in names}

    def message_of(self, tool: str) -> str:
        with self._lock:
            return self._messages.get(tool, "")

    def missing(self, tools: Iterable[str]) -> Dict[str, ToolStatus]:
        """Subset of tools that are not available, with their status."""
        result = {}
        for tool in tools:
            status = self.status_of(tool)
            if status is not ToolStatus.AVAILABLE:
                result[tool] = status
        return result

    def describe_missing(self, tools: Iterable[str]) -> List[Dict[str, str]]:
        """Missing tools with an install hint each, for error details and the UI."""
        return [
            {"tool": tool, "status": status.value, "hint": install_hint(tool)}
            for tool, status in self.missing(tools).items()
        ]

    # ------------------------------------------------------------------
    # Installing
    # ------------------------------------------------------------------

    async def install(self, tool: str, cancel_token: Optional[CancelToken] = None) -> InstallResult:
        """
        Install a tool, joining an install that is already running.

        Raises:
            InstallFailed: tool is unknown or has no install strategy
        """
        if not self.registry.is_known(tool):
            raise InstallFailed(tool, f"'{tool}' is not a registry tool and cannot be installed",
                                code=ErrorCode.TOOL_UNKNOWN)
        if not self.registry.can_install(tool):
            raise InstallFailed(tool, f"No install strategy for '{tool}'", code=ErrorCode.TOOL_NO_INSTALLER)

        with self._lock:
            task = self._installs.get(tool)
            joined = task is not None
            if task is None:
                token = CancelToken()
                task = asyncio.ensure_future(self._run_install(tool, token))
                self._installs[tool] = task
                self._install_tokens[tool] = token
                self._status[tool] = ToolStatus.INSTALLING

        if joined:
            logger.info(f"[ToolMonitor] Joining install already in flight for {tool}")
        else:
            logger.info(f"[ToolMonitor] Installing {tool}")
            self.status_changed.emit(tool, ToolStatus.INSTALLING)

        if cancel_token is None:
            return await asyncio.shield(task)

        cancel_wait = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if task not in done:
                self.cancel_install(tool)
            return await asyncio.shield(task)
        finally:
            cancel_wait.cancel()

    def cancel_install(self, tool: str) -> bool:
        """Abort the in-flight install of a tool. Returns False if none runs."""
        with self._lock:
            token = self._install_tokens.get(tool)
        if token is None:
            return False
        logger.info(f"[ToolMonitor] Cancelling install of {tool}")
        token.cancel()
        return True

    def is_installing(self, tool: str) -> bool:
        with self._lock:
            return tool in self._installs

    async def _run_install(self, tool: str, token: CancelToken) -> InstallResult:
        try:
            report = await install_tool(
                tool,
                self.registry,
                self.runner,
                on_line=lambda line: self.install_output.emit(tool, line),
                cancel_token=token,
                timeout=self.install_timeout,
            )
            # Trust the binary, not the package manager's exit code
            if report.ok and self.resolver(tool) is not None:
                status = ToolStatus.AVAILABLE
            else:
                status = ToolStatus.FAILED
            message = report.message
            log = report.log
        except Exception as e:
            logger.error(f"[ToolMonitor] Install of {tool} crashed: {e}", exc_info=e)
            status, message, log = ToolStatus.FAILED, f"Install error: {e}", []

        with self._lock:
            self._status[tool] = status
            self._messages[tool] = message
            self._installs.pop(tool, None)
            self._install_tokens.pop(tool, None)

        logger.info(f"[ToolMonitor] Install of {tool} finished: {status.value}")
        self.status_changed.emit(tool, status)
        return InstallResult(tool=tool, status=status, message=message, log=log)
