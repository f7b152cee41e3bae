# ============================================================================
# tests/unit/test_state.py
# Application wiring: background sealing of finished sessions
# ============================================================================

import sys

import pytest
import pytest_asyncio

from attackbench.data.models import AttackCategory, Difficulty, Severity
from attackbench.server.state import build_state
from attackbench.toolkit.vectors import AttackVector

BINARIES = {"fakebin": sys.executable}

VECTOR = AttackVector(
    name="Fake Crack",
    category=AttackCategory.BRUTE_FORCE,
    severity=Severity.HIGH,
    difficulty=Difficulty.BEGINNER,
    description="test vector",
    required_tools=("fakebin",),
    commands=("""fakebin -c "print('[SUCCESS] admin:admin123 (ssh)')" """,),
)


@pytest_asyncio.fixture
async def state(config):
    state = build_state(config)
    state.monitor.resolver = BINARIES.get
    yield state
    await state.wait_for_seals()
    await state.evidence.index.close()


@pytest.mark.asyncio
async def test_finished_session_is_sealed(state):
    result = await state.manager.execute(VECTOR, "10.0.0.5", 22)
    await state.wait_for_seals()

    [package] = state.evidence.list()
    assert package.session_id == result.session_id
    assert state.package_for(result.session_id) == package.id


@pytest.mark.asyncio
async def test_clearing_history_before_the_seal_keeps_the_evidence(state):
    result = await state.manager.execute(VECTOR, "10.0.0.5", 22)
    # The seal task is scheduled but has not run yet
    assert state.manager.clear_history() == 1

    await state.wait_for_seals()

    [package] = state.evidence.list()
    assert package.session_id == result.session_id
    assert package.summary.credentials_found == 1


@pytest.mark.asyncio
async def test_auto_seal_off(config):
    state = build_state(config, auto_seal=False)
    state.monitor.resolver = BINARIES.get
    try:
        await state.manager.execute(VECTOR, "10.0.0.5", 22)
        await state.wait_for_seals()
        assert state.evidence.list() == []
    finally:
        await state.evidence.index.close()
