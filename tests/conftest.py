"""Pytest configuration for AttackBench."""
import os
from pathlib import Path

import pytest

from attackbench.base.config import ExecutionConfig, LogConfig, StorageConfig, WorkbenchConfig, set_config


def pytest_configure():
    # Never let a test run write into the real ~/.attackbench
    os.environ.setdefault("ATTACKBENCH_LOG_FILE", "false")


@pytest.fixture
def config(tmp_path: Path) -> WorkbenchConfig:
    """A workbench config rooted in the test's tmp dir, with short grace periods."""
    cfg = WorkbenchConfig(
        storage=StorageConfig(base_dir=tmp_path / "data"),
        execution=ExecutionConfig(grace_period_seconds=0.5, install_timeout_seconds=30.0),
        log=LogConfig(file_enabled=False),
    )
    cfg.ensure_dirs()
    set_config(cfg)
    return cfg
