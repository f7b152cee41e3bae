"""
attackbench/data/models.py
Value objects shared by the session engine, the classifier and the evidence layer.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class AttackCategory(str, Enum):
    """Attack type; also the key of the classifier strategy table."""
    BRUTE_FORCE = "brute_force"
    WEB_DIRECTORY_ENUM = "web_directory_enum"
    VULNERABILITY_SCAN = "vulnerability_scan"
    WEB_VULN_SCAN = "web_vuln_scan"
    NETWORK_RECON = "network_recon"
    SSL_AUDIT = "ssl_audit"


class Severity(str, Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Highest first; used for summaries and report ordering
SEVERITY_ORDER: Tuple[str, ...] = ("critical", "high", "medium", "low", "info")


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


class Credential(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    service: str
    port: int = 0


class VulnerabilityFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    severity: str
    description: str
    proof: str = ""
    recommendation: str = ""


class SessionSnapshot(BaseModel):
    """Read-only copy of an AttackSession handed to observers and the API."""
    model_config = ConfigDict(frozen=True)

    session_id: int
    vector_name: str
    category: AttackCategory
    target: str
    port: int
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    output: Tuple[str, ...] = ()


class AttackResult(BaseModel):
    """Terminal snapshot of one session. Produced exactly once."""
    model_config = ConfigDict(frozen=True)

    session_id: int
    vector_name: str
    category: AttackCategory
    target: str
    port: int
    success: bool
    status: SessionStatus
    outcome: str
    exit_code: Optional[int] = None
    error: Optional[str] = None
    started_at: datetime
    ended_at: datetime
    duration: float
    output: Tuple[str, ...] = ()
    credentials: Tuple[Credential, ...] = ()
    vulnerabilities: Tuple[VulnerabilityFinding, ...] = ()
    files: Tuple[str, ...] = ()

    @property
    def has_findings(self) -> bool:
        return bool(self.credentials or self.vulnerabilities or self.files)


class EvidenceType(str, Enum):
    CONSOLE_OUTPUT = "console_output"
    CREDENTIAL_LIST = "credential_list"
    VULNERABILITY_REPORT = "vulnerability_report"
    DIRECTORY_LISTING = "directory_listing"
    SUMMARY_REPORT = "summary_report"
    RAW_DATA = "raw_data"

    @property
    def description(self) -> str:
        return _EVIDENCE_DESCRIPTIONS[self]


_EVIDENCE_DESCRIPTIONS: Dict[EvidenceType, str] = {
    EvidenceType.CONSOLE_OUTPUT: "Complete console output from attack execution",
    EvidenceType.CREDENTIAL_LIST: "Discovered credentials and authentication data",
    EvidenceType.VULNERABILITY_REPORT: "Detailed vulnerability findings and analysis",
    EvidenceType.DIRECTORY_LISTING: "Discovered directories and files",
    EvidenceType.SUMMARY_REPORT: "Executive summary and recommendations",
    EvidenceType.RAW_DATA: "Structured attack result data",
}


class EvidenceFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    path: str
    size: int
    checksum: str
    description: str
    type: EvidenceType


class EvidenceSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_vulnerabilities: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    exploits_available: int = 0
    credentials_found: int = 0
    directories_found: int = 0
    services_discovered: int = 1
    recommended_actions: Tuple[str, ...] = ()


class EvidencePackage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    session_id: int
    attack_name: str
    category: AttackCategory
    target: str
    port: int
    timestamp: datetime
    success: bool
    duration: float
    directory: str
    files: List[EvidenceFile] = Field(default_factory=list)
    summary: EvidenceSummary = Field(default_factory=EvidenceSummary)

    @property
    def name(self) -> str:
        return Path(self.directory).name

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    def file_of(self, evidence_type: EvidenceType) -> Optional[EvidenceFile]:
        for f in self.files:
            if f.type == evidence_type:
                return f
        return None
