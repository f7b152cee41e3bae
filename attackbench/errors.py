"""Module errors: structured error taxonomy for the attack workbench."""
#
# PURPOSE:
# One place for every error the engine can surface to a caller. Each error
# carries a searchable code, a human-readable message, optional details and
# the HTTP status the API layer should answer with.
#
# ERROR CODE FORMAT:
# - ATTACK_XXX: Attack session errors (prerequisites, vectors, targets)
# - TOOL_XXX: Tool availability / installation errors
# - SESSION_XXX: Session lookup and lifecycle errors
# - EVIDENCE_XXX: Evidence package errors
# - DB_XXX: Durable index errors
# - CONFIG_XXX: Configuration errors
# - SYSTEM_XXX: Everything else
#
# NOT ERRORS:
# - SpawnFailed, TimedOut and Cancelled are process outcomes. They end up in
#   a failed/stopped AttackResult instead of being raised.
# - A classifier pattern miss is a valid (empty) result.
#
# USAGE:
#   from attackbench.errors import PrerequisitesNotMet
#
#   raise PrerequisitesNotMet(
#       "SSH Brute Force requires: hydra",
#       details={"missing": {"hydra": "needs_installation"}},
#   )
#
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Attack Errors
    ATTACK_PREREQUISITES_NOT_MET = "ATTACK_001"
    ATTACK_VECTOR_NOT_FOUND = "ATTACK_002"
    ATTACK_TARGET_INVALID = "ATTACK_003"
    ATTACK_TEMPLATE_INVALID = "ATTACK_004"

    # Tool Errors
    TOOL_NOT_INSTALLED = "TOOL_001"
    TOOL_UNKNOWN = "TOOL_002"
    TOOL_NO_INSTALLER = "TOOL_003"
    TOOL_INSTALL_FAILED = "TOOL_004"

    # Session Errors
    SESSION_NOT_FOUND = "SESSION_001"
    SESSION_INVALID_STATE = "SESSION_002"

    # Evidence Errors
    EVIDENCE_NOT_FOUND = "EVIDENCE_001"
    EVIDENCE_WRITE_FAILED = "EVIDENCE_002"
    EVIDENCE_EXPORT_FAILED = "EVIDENCE_003"
    EVIDENCE_CONFIRMATION_REQUIRED = "EVIDENCE_004"
    EVIDENCE_EXPORT_DENIED = "EVIDENCE_005"

    # Database Errors
    DB_INIT_FAILED = "DB_001"
    DB_QUERY_FAILED = "DB_002"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class WorkbenchError(Exception):
    """
    Base exception for the workbench with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "ATTACK_001")
        message: Human-readable error message
        details: Optional dictionary with additional context
        http_status: Suggested HTTP status code for API responses
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.ATTACK_PREREQUISITES_NOT_MET: 412,  # Precondition Failed
        ErrorCode.ATTACK_VECTOR_NOT_FOUND: 404,
        ErrorCode.ATTACK_TARGET_INVALID: 400,
        ErrorCode.ATTACK_TEMPLATE_INVALID: 500,

        ErrorCode.TOOL_NOT_INSTALLED: 503,
        ErrorCode.TOOL_UNKNOWN: 404,
        ErrorCode.TOOL_NO_INSTALLER: 400,
        ErrorCode.TOOL_INSTALL_FAILED: 500,

        ErrorCode.SESSION_NOT_FOUND: 404,
        ErrorCode.SESSION_INVALID_STATE: 409,  # Conflict

        ErrorCode.EVIDENCE_NOT_FOUND: 404,
        ErrorCode.EVIDENCE_WRITE_FAILED: 500,
        ErrorCode.EVIDENCE_EXPORT_FAILED: 500,
        ErrorCode.EVIDENCE_CONFIRMATION_REQUIRED: 400,
        ErrorCode.EVIDENCE_EXPORT_DENIED: 403,

        ErrorCode.DB_INIT_FAILED: 500,
        ErrorCode.DB_QUERY_FAILED: 500,

        ErrorCode.CONFIG_INVALID: 500,

        ErrorCode.SYSTEM_INTERNAL_ERROR: 500,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(code, 500)

        # Build exception message with code for easy debugging
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status
        }


class PrerequisitesNotMet(WorkbenchError):
    """A vector's required tools are not available. Nothing was spawned."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.ATTACK_PREREQUISITES_NOT_MET, message, details)


class SessionNotFound(WorkbenchError):
    def __init__(self, session_id: Any):
        super().__init__(
            ErrorCode.SESSION_NOT_FOUND,
            f"No attack session with id {session_id}",
            details={"session_id": session_id},
        )


class InstallFailed(WorkbenchError):
    """Raised when a tool cannot be installed at all (unknown tool, no strategy)."""

    def __init__(self, tool: str, message: str, code: ErrorCode = ErrorCode.TOOL_INSTALL_FAILED):
        super().__init__(code, message, details={"tool": tool})
        self.tool = tool


class EvidenceNotFound(WorkbenchError):
    def __init__(self, package_id: str):
        super().__init__(
            ErrorCode.EVIDENCE_NOT_FOUND,
            f"Evidence package '{package_id}' not found",
            details={"package_id": package_id},
        )
        self.package_id = package_id


__all__ = [
    "ErrorCode",
    "WorkbenchError",
    "PrerequisitesNotMet",
    "SessionNotFound",
    "InstallFailed",
    "EvidenceNotFound",
]
