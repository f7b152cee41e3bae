# ============================================================================
# tests/unit/test_errors_config.py
# Error taxonomy and environment-driven configuration
# ============================================================================

import pytest

from attackbench.base.config import WorkbenchConfig
from attackbench.errors import (
    ErrorCode,
    EvidenceNotFound,
    InstallFailed,
    PrerequisitesNotMet,
    SessionNotFound,
    WorkbenchError,
)


def test_error_carries_code_and_http_status():
    err = WorkbenchError(ErrorCode.SESSION_INVALID_STATE, "already stopped", details={"session_id": 3})
    assert err.http_status == 409
    assert str(err) == "[SESSION_002] already stopped"
    assert err.to_dict() == {
        "code": "SESSION_002",
        "message": "already stopped",
        "details": {"session_id": 3},
        "http_status": 409,
    }


def test_explicit_http_status_wins():
    err = WorkbenchError(ErrorCode.SYSTEM_INTERNAL_ERROR, "teapot", http_status=418)
    assert err.http_status == 418


def test_specialised_errors():
    assert PrerequisitesNotMet("needs hydra").http_status == 412
    assert SessionNotFound(99).details == {"session_id": 99}
    assert EvidenceNotFound("abc").package_id == "abc"

    install = InstallFailed("nmap", "no strategy", code=ErrorCode.TOOL_NO_INSTALLER)
    assert install.tool == "nmap"
    assert install.http_status == 400


class TestConfigFromEnv:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ATTACKBENCH_DATA_DIR", str(tmp_path))
        for name in ("ATTACKBENCH_GRACE_PERIOD", "ATTACKBENCH_SESSION_TIMEOUT", "ATTACKBENCH_API_PORT"):
            monkeypatch.delenv(name, raising=False)

        cfg = WorkbenchConfig.from_env()
        assert cfg.storage.base_dir == tmp_path
        assert cfg.storage.evidence_path == tmp_path / "evidence"
        assert cfg.execution.grace_period_seconds == 5.0
        assert cfg.execution.session_timeout_seconds is None
        assert cfg.api_host == "127.0.0.1"

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ATTACKBENCH_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ATTACKBENCH_GRACE_PERIOD", "1.5")
        monkeypatch.setenv("ATTACKBENCH_SESSION_TIMEOUT", "60")

        cfg = WorkbenchConfig.from_env()
        assert cfg.execution.grace_period_seconds == 1.5
        assert cfg.execution.session_timeout_seconds == 60.0

    def test_invalid_number_is_a_config_error(self, monkeypatch):
        monkeypatch.setenv("ATTACKBENCH_GRACE_PERIOD", "soon")
        with pytest.raises(WorkbenchError) as exc:
            WorkbenchConfig.from_env()
        assert exc.value.code is ErrorCode.CONFIG_INVALID

    def test_ensure_dirs(self, config):
        assert config.storage.evidence_path.is_dir()
        assert config.storage.exports_path.is_dir()
        assert config.storage.wordlists_path.is_dir()
