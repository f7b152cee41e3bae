# ============================================================================
# attackbench/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Every tunable of the workbench lives here: where evidence is written, how
# long a cancelled tool gets before it is killed, how verbose logging is.
# Settings come from ATTACKBENCH_* environment variables with safe defaults.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: each section is immutable once built
# 2. Environment variables: ATTACKBENCH_DATA_DIR, ATTACKBENCH_GRACE_PERIOD, ...
# 3. Singleton access: get_config() / set_config() for the process-wide copy
#
# ============================================================================

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from attackbench.errors import ErrorCode, WorkbenchError

logger = logging.getLogger(__name__)


# ============================================================================
# File Storage Configuration
# ============================================================================

@dataclass(frozen=True)
class StorageConfig:
    # Base directory for all workbench data (~/.attackbench by default)
    base_dir: Path = field(default_factory=lambda: Path.home() / ".attackbench")

    # SQLite file holding the durable evidence index
    db_name: str = "attackbench.db"

    # One sub-directory per sealed evidence package lands here
    evidence_dir: str = "evidence"

    # Default destination for exports when the caller does not pick one
    exports_dir: str = "exports"

    # Generated wordlists for brute force and directory enumeration
    wordlists_dir: str = "wordlists"

    @property
    def db_path(self) -> Path:
        return self.base_dir / self.db_name

    @property
    def evidence_path(self) -> Path:
        return self.base_dir / self.evidence_dir

    @property
    def exports_path(self) -> Path:
        return self.base_dir / self.exports_dir

    @property
    def wordlists_path(self) -> Path:
        return self.base_dir / self.wordlists_dir


# ============================================================================
# Execution Configuration
# ============================================================================
# Controls how external tools are spawned, stopped and remembered.

@dataclass(frozen=True)
class ExecutionConfig:
    # Seconds between SIGTERM and SIGKILL when a tool is stopped
    grace_period_seconds: float = 5.0

    # Hard limit for a whole attack session (None = no limit)
    session_timeout_seconds: Optional[float] = None

    # Hard limit for one install attempt (brew/go builds can be slow)
    install_timeout_seconds: float = 900.0

    # How long finished sessions stay in history before pruning
    history_retention_seconds: float = 300.0

    # Longest single output line handed to observers (longer lines are split)
    max_line_bytes: int = 1024 * 1024


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Also write a rotating log file under base_dir
    file_enabled: bool = True
    file_name: str = "attackbench.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass
class WorkbenchConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    log: LogConfig = field(default_factory=LogConfig)

    debug: bool = False

    # 127.0.0.1 keeps the API local to this machine
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    def ensure_dirs(self) -> None:
        """Create the storage directories if they don't exist yet."""
        self.storage.base_dir.mkdir(parents=True, exist_ok=True)
        self.storage.evidence_path.mkdir(parents=True, exist_ok=True)
        self.storage.exports_path.mkdir(parents=True, exist_ok=True)
        self.storage.wordlists_path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "WorkbenchConfig":
        """Build a config from ATTACKBENCH_* environment variables."""
        try:
            base_dir = Path(os.getenv("ATTACKBENCH_DATA_DIR", str(Path.home() / ".attackbench")))
            storage = StorageConfig(base_dir=base_dir.expanduser())

            session_timeout = os.getenv("ATTACKBENCH_SESSION_TIMEOUT")
            execution = ExecutionConfig(
                grace_period_seconds=float(os.getenv("ATTACKBENCH_GRACE_PERIOD", "5")),
                session_timeout_seconds=float(session_timeout) if session_timeout else None,
                install_timeout_seconds=float(os.getenv("ATTACKBENCH_INSTALL_TIMEOUT", "900")),
                history_retention_seconds=float(os.getenv("ATTACKBENCH_HISTORY_RETENTION", "300")),
            )

            log = LogConfig(
                level=os.getenv("ATTACKBENCH_LOG_LEVEL", "INFO"),
                file_enabled=os.getenv("ATTACKBENCH_LOG_FILE", "true").lower() == "true",
            )

            return cls(
                storage=storage,
                execution=execution,
                log=log,
                debug=os.getenv("ATTACKBENCH_DEBUG", "false").lower() == "true",
                api_host=os.getenv("ATTACKBENCH_API_HOST", "127.0.0.1"),
                api_port=int(os.getenv("ATTACKBENCH_API_PORT", "8765")),
            )
        except ValueError as exc:
            raise WorkbenchError(
                ErrorCode.CONFIG_INVALID,
                f"Invalid numeric setting in environment: {exc}",
            ) from exc


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[WorkbenchConfig] = None


def get_config() -> WorkbenchConfig:
    """
    Get the global configuration instance.

    Only created once from the environment, then reused.
    """
    global _config
    if _config is None:
        _config = WorkbenchConfig.from_env()
    return _config


def set_config(config: WorkbenchConfig) -> None:
    """Replace the global configuration (mainly used for testing)."""
    global _config
    _config = config


def setup_logging(config: Optional[WorkbenchConfig] = None) -> None:
    """
    Configure Python's logging system: console plus a rotating file.

    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        cfg.storage.base_dir.mkdir(parents=True, exist_ok=True)
        log_path = cfg.storage.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
