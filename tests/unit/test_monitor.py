# ============================================================================
# tests/unit/test_monitor.py
# Tool availability cache and coalesced installs
# ============================================================================

import asyncio
from unittest.mock import MagicMock

import pytest

from attackbench.engine.runner import CancelToken, ExitOutcome
from attackbench.errors import ErrorCode, InstallFailed
from attackbench.toolkit.monitor import ToolAvailabilityMonitor, ToolStatus
from attackbench.toolkit.registry import ToolRegistry

TOOLS = {
    "fake": {"label": "Fake scanner", "binary": "fake"},
    "manual": {"label": "No installer", "binary": "manual"},
}
INSTALLERS = {"fake": {"strategies": [{"cmd": ["pkg", "install", "fake"]}]}}


class SlowRunner:
    """Counts spawns; each install command takes a moment and then succeeds."""

    def __init__(self, outcome=None, delay=0.1):
        self.calls = 0
        self.outcome = outcome or ExitOutcome.exited(0)
        self.delay = delay

    async def run(self, command, args=(), env=None, on_line=None, cancel_token=None, timeout=None, cwd=None):
        self.calls += 1
        if on_line:
            on_line(f"installing {command}")
        if cancel_token is not None:
            try:
                await asyncio.wait_for(cancel_token.wait(), timeout=self.delay)
                return ExitOutcome.cancelled()
            except asyncio.TimeoutError:
                return self.outcome
        await asyncio.sleep(self.delay)
        return self.outcome


class PathStub:
    """Stands in for PATH lookups; `installed` decides what resolves."""

    def __init__(self, *installed):
        self.installed = set(installed)

    def __call__(self, name):
        return f"/usr/bin/{name}" if name in self.installed else None


def make_monitor(runner=None, path=None):
    path = path or PathStub()
    registry = ToolRegistry(tools=TOOLS, installers=INSTALLERS)
    registry.find = path
    return ToolAvailabilityMonitor(registry, runner or SlowRunner(), resolver=path), path


def test_probe_states():
    monitor, path = make_monitor(path=PathStub("fake"))
    assert monitor.probe("fake") is ToolStatus.AVAILABLE
    assert monitor.probe("manual") is ToolStatus.UNAVAILABLE
    # Unknown tools are probed by binary presence only
    assert monitor.probe("nothing-here") is ToolStatus.NEEDS_INSTALLATION


def test_status_is_cached_until_refresh():
    monitor, path = make_monitor()
    assert monitor.status_of("fake") is ToolStatus.NEEDS_INSTALLATION

    path.installed.add("fake")
    assert monitor.status_of("fake") is ToolStatus.NEEDS_INSTALLATION

    assert monitor.refresh(["fake"]) == {"fake": ToolStatus.AVAILABLE}
    assert monitor.status_of("fake") is ToolStatus.AVAILABLE


def test_status_changed_signal():
    monitor, path = make_monitor()
    seen = []
    monitor.status_changed.connect(lambda tool, status: seen.append((tool, status)))
    monitor.refresh(["fake"])
    monitor.refresh(["fake"])
    assert seen == [("fake", ToolStatus.NEEDS_INSTALLATION)]


def test_describe_missing_includes_hints():
    monitor, _ = make_monitor(path=PathStub("fake"))
    missing = monitor.describe_missing(["fake", "manual"])
    assert missing == [{
        "tool": "manual",
        "status": "unavailable",
        "hint": "Install 'manual' manually and make sure it is on PATH",
    }]


@pytest.mark.asyncio
async def test_install_success_marks_available():
    runner = SlowRunner()
    monitor, path = make_monitor(runner)
    path.installed.add("fake")  # the package manager "drops" the binary

    output = []
    monitor.install_output.connect(lambda tool, line: output.append((tool, line)))
    result = await monitor.install("fake")

    assert result.status is ToolStatus.AVAILABLE
    assert monitor.status_of("fake") is ToolStatus.AVAILABLE
    assert ("fake", "$ pkg install fake") in output


@pytest.mark.asyncio
async def test_concurrent_installs_share_one_process():
    runner = SlowRunner(delay=0.2)
    monitor, path = make_monitor(runner)
    path.installed.add("fake")

    first, second = await asyncio.gather(monitor.install("fake"), monitor.install("fake"))

    assert runner.calls == 1
    assert first.status is second.status is ToolStatus.AVAILABLE
    assert not monitor.is_installing("fake")


@pytest.mark.asyncio
async def test_status_is_installing_while_in_flight():
    monitor, path = make_monitor(SlowRunner(delay=0.3))
    task = asyncio.ensure_future(monitor.install("fake"))
    await asyncio.sleep(0.05)

    assert monitor.is_installing("fake")
    assert monitor.status_of("fake") is ToolStatus.INSTALLING
    assert monitor.probe("fake") is ToolStatus.INSTALLING
    await task


@pytest.mark.asyncio
async def test_failed_install_stays_failed_until_retried():
    runner = SlowRunner(outcome=ExitOutcome.exited(1), delay=0.01)
    monitor, path = make_monitor(runner)

    result = await monitor.install("fake")
    assert result.status is ToolStatus.FAILED
    assert "All strategies failed" in monitor.message_of("fake")

    # A refresh does not hide the failure while the binary is still missing
    assert monitor.refresh(["fake"]) == {"fake": ToolStatus.FAILED}

    # Retrying is allowed and can succeed
    runner.outcome = ExitOutcome.exited(0)
    path.installed.add("fake")
    assert (await monitor.install("fake")).status is ToolStatus.AVAILABLE


@pytest.mark.asyncio
async def test_cancel_install():
    monitor, _ = make_monitor(SlowRunner(delay=5))
    task = asyncio.ensure_future(monitor.install("fake"))
    await asyncio.sleep(0.05)

    assert monitor.cancel_install("fake") is True
    result = await asyncio.wait_for(task, timeout=5)
    assert result.status is ToolStatus.FAILED
    assert monitor.cancel_install("fake") is False


@pytest.mark.asyncio
async def test_caller_token_cancels_install():
    monitor, _ = make_monitor(SlowRunner(delay=5))
    token = CancelToken()
    task = asyncio.ensure_future(monitor.install("fake", cancel_token=token))
    await asyncio.sleep(0.05)
    token.cancel()

    result = await asyncio.wait_for(task, timeout=5)
    assert result.status is ToolStatus.FAILED


@pytest.mark.asyncio
async def test_install_rejects_unknown_and_manual_tools():
    monitor, _ = make_monitor()
    with pytest.raises(InstallFailed) as exc:
        await monitor.install("mystery")
    assert exc.value.code is ErrorCode.TOOL_UNKNOWN

    with pytest.raises(InstallFailed) as exc:
        await monitor.install("manual")
    assert exc.value.code is ErrorCode.TOOL_NO_INSTALLER


@pytest.mark.asyncio
async def test_crashing_runner_ends_failed():
    runner = MagicMock()
    runner.run = MagicMock(side_effect=RuntimeError("boom"))
    monitor, _ = make_monitor(runner)

    result = await monitor.install("fake")
    assert result.status is ToolStatus.FAILED
    assert "boom" in result.message
