# ============================================================================
# attackbench/data/evidence_store.py
# Evidence Packager - Checksummed, Durable Attack Evidence
# ============================================================================
#
# PURPOSE:
# Turns one finished attack session into a directory of plain-text/JSON
# evidence files that can be handed to a client or auditor, and keeps an
# index of every package ever sealed.
#
# PACKAGE LAYOUT:
# <evidence_path>/Evidence_<target>_<port>_<YYYY-mm-dd_HH-MM-SS>_<id8>/
#   ├── console_output.txt          (always)
#   ├── attack_data.json            (always, structured result)
#   ├── credentials_found.txt       (only with credentials)
#   ├── vulnerability_report.txt    (only with vulnerabilities)
#   ├── directory_enumeration.txt   (only with discovered paths)
#   ├── executive_summary.json      (only when anything was found)
#   └── manifest.json               (package metadata + checksums)
#
# KEY CONCEPTS:
# - Evidence chain: every file gets a SHA-256 at write time; verify()
#   recomputes it later
# - Two indexes: an in-memory dict for reads, the aiosqlite EvidenceIndex
#   for restarts; load() rebuilds the first from the second
# - Packages are written once and never modified; export copies them
#
# ============================================================================

import asyncio
import hashlib
import json
import logging
import re
import shutil
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from attackbench.base.config import WorkbenchConfig, get_config
from attackbench.data.db import EvidenceIndex
from attackbench.data.models import (
    SEVERITY_ORDER,
    AttackResult,
    EvidenceFile,
    EvidencePackage,
    EvidenceSummary,
    EvidenceType,
)
from attackbench.errors import ErrorCode, EvidenceNotFound, WorkbenchError
from attackbench.utils.observer import Signal

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"

FILENAMES: Dict[EvidenceType, str] = {
    EvidenceType.CONSOLE_OUTPUT: "console_output.txt",
    EvidenceType.RAW_DATA: "attack_data.json",
    EvidenceType.CREDENTIAL_LIST: "credentials_found.txt",
    EvidenceType.VULNERABILITY_REPORT: "vulnerability_report.txt",
    EvidenceType.DIRECTORY_LISTING: "directory_enumeration.txt",
    EvidenceType.SUMMARY_REPORT: "executive_summary.json",
}

# Recommended actions, in report order: (condition, action)
ACTION_RULES: Tuple[Tuple[str, str], ...] = (
    ("critical", "Rotate exposed credentials immediately"),
    ("critical", "Conduct immediate remediation of critical vulnerabilities"),
    ("high", "Prioritize remediation of high-severity vulnerabilities"),
    ("medium", "Schedule remediation of medium-severity vulnerabilities"),
    ("low", "Address low-severity findings during routine hardening"),
    ("credentials", "Change all discovered credentials immediately"),
    ("credentials", "Implement multi-factor authentication"),
    ("files", "Review exposed directories and remove unnecessary access"),
    ("files", "Implement proper web server configuration"),
    ("always", "Implement regular security scanning and assessment procedures"),
    ("always", "Review and update access controls and authentication mechanisms"),
)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _safe(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value).strip("_") or "target"


def build_summary(result: AttackResult) -> EvidenceSummary:
    """Counts and recommended actions, derived only from the result's findings."""
    by_severity: Dict[str, int] = {}
    for vuln in result.vulnerabilities:
        severity = vuln.severity.lower()
        by_severity[severity] = by_severity.get(severity, 0) + 1

    present = {s for s, n in by_severity.items() if n}
    if result.credentials:
        present.add("credentials")
    if result.files:
        present.add("files")
    present.add("always")

    actions: List[str] = []
    for condition, action in ACTION_RULES:
        if condition in present and action not in actions:
            actions.append(action)

    return EvidenceSummary(
        total_vulnerabilities=len(result.vulnerabilities),
        by_severity={s: by_severity[s] for s in SEVERITY_ORDER if s in by_severity},
        critical=by_severity.get("critical", 0),
        high=by_severity.get("high", 0),
        medium=by_severity.get("medium", 0),
        low=by_severity.get("low", 0),
        exploits_available=by_severity.get("critical", 0) + by_severity.get("high", 0),
        credentials_found=len(result.credentials),
        directories_found=len(result.files),
        services_discovered=1,
        recommended_actions=tuple(actions),
    )


# ---------------------------------------------------------
# File renderers
# ---------------------------------------------------------

def _header(title: str, result: AttackResult) -> List[str]:
    return [
        f"=== {title} ===",
        f"Generated: {datetime.now().isoformat(timespec='seconds')}",
        f"Attack: {result.vector_name}",
        f"Target: {result.target}:{result.port}",
        f"Session ID: {result.session_id}",
        "",
    ]


def render_console(result: AttackResult) -> str:
    lines = _header("Attack Execution Console Output", result)
    lines += [
        f"Duration: {result.duration:.2f} seconds",
        f"Status: {result.status.value} ({result.outcome})",
        f"Success: {result.success}",
    ]
    if result.error:
        lines.append(f"Error: {result.error}")
    lines += ["", "=== Console Output ===", *result.output]
    return "\n".join(lines) + "\n"


def render_credentials(result: AttackResult) -> str:
    lines = _header("Credential Discovery Report", result)
    lines.append(f"Credentials Found: {len(result.credentials)}")
    lines += ["", "=== Discovered Credentials ==="]
    for index, cred in enumerate(result.credentials, 1):
        lines += [
            f"[{index}] Service: {cred.service}",
            f"     Username: {cred.username}",
            f"     Password: {cred.password}",
            f"     Port: {cred.port}",
            "",
        ]
    lines += [
        "=== Security Recommendations ===",
        "1. Change all discovered passwords immediately",
        "2. Implement strong password policies",
        "3. Enable multi-factor authentication where possible",
        "4. Monitor for unauthorized access attempts",
    ]
    return "\n".join(lines) + "\n"


def render_vulnerabilities(result: AttackResult, summary: EvidenceSummary) -> str:
    lines = _header("Vulnerability Report", result)
    lines.append("=== Vulnerability Summary ===")
    for severity, count in summary.by_severity.items():
        lines.append(f"{severity.upper()}: {count}")
    lines += ["", "=== Detailed Vulnerabilities ==="]

    ordered = sorted(
        result.vulnerabilities,
        key=lambda v: SEVERITY_ORDER.index(v.severity) if v.severity in SEVERITY_ORDER else len(SEVERITY_ORDER),
    )
    for index, vuln in enumerate(ordered, 1):
        lines += [
            f"[{index}] {vuln.type} - {vuln.severity.upper()}",
            f"Description: {vuln.description}",
            f"Proof: {vuln.proof}",
            f"Recommendation: {vuln.recommendation or 'n/a'}",
            "",
        ]
    return "\n".join(lines) + "\n"


def render_files(result: AttackResult) -> str:
    lines = _header("Directory Enumeration Results", result)
    lines.append(f"Paths Found: {len(result.files)}")
    lines += ["", "=== Discovered Paths ==="]
    lines += [f"[{index}] {path}" for index, path in enumerate(result.files, 1)]
    lines += [
        "",
        "=== Analysis Notes ===",
        "- Review each discovered path for sensitive information",
        "- Check for backup files, configuration files and admin panels",
        "- Remove directories that do not need to be exposed",
    ]
    return "\n".join(lines) + "\n"


def render_summary(result: AttackResult, summary: EvidenceSummary) -> str:
    report = {
        "executive_summary": {
            "assessment_date": result.started_at.isoformat(),
            "target_system": f"{result.target}:{result.port}",
            "assessment_type": result.vector_name,
            "category": result.category.value,
            "duration_seconds": round(result.duration, 2),
            "overall_success": result.success,
        },
        "risk_summary": {
            "total_vulnerabilities": summary.total_vulnerabilities,
            "by_severity": summary.by_severity,
            "exploits_available": summary.exploits_available,
            "credentials_compromised": summary.credentials_found,
            "attack_surface": summary.directories_found,
        },
        "recommendations": list(summary.recommended_actions),
    }
    return json.dumps(report, indent=2) + "\n"


def render_raw(result: AttackResult) -> str:
    return result.model_dump_json(indent=2) + "\n"


class EvidencePackager:
    """
    Seals attack results into evidence packages and manages them.

    Signals:
        package_created(package)
        package_deleted(package_id)
    """

    def __init__(self, config: Optional[WorkbenchConfig] = None, index: Optional[EvidenceIndex] = None):
        self.config = config or get_config()
        self.root = self.config.storage.evidence_path
        self.index = index or EvidenceIndex(str(self.config.storage.db_path))

        self._lock = threading.Lock()
        self._packages: Dict[str, EvidencePackage] = {}

        self.package_created = Signal("evidence_package_created")
        self.package_deleted = Signal("evidence_package_deleted")

    # ---------------------------------------------------------
    # Startup
    # ---------------------------------------------------------

    async def load(self) -> int:
        """Rebuild the in-memory index from durable storage."""
        manifests = await self.index.all()
        loaded: Dict[str, EvidencePackage] = {}
        for data in manifests:
            try:
                package = EvidencePackage.model_validate(data)
            except ValidationError as e:
                logger.warning(f"[Evidence] Skipping unreadable manifest {data.get('id')}: {e}")
                continue
            if not Path(package.directory).is_dir():
                logger.warning(f"[Evidence] Package {package.id} directory vanished, dropping from index")
                await self.index.delete(package.id)
                continue
            loaded[package.id] = package
        with self._lock:
            self._packages = loaded
        logger.info(f"[Evidence] Loaded {len(loaded)} evidence packages")
        return len(loaded)

    # ---------------------------------------------------------
    # Sealing
    # ---------------------------------------------------------

    async def seal(self, session: Any, result: AttackResult) -> EvidencePackage:
        """
        Write the evidence files for a finished session.

        Args:
            session: The finished session (snapshot or live object); must be terminal
            result: Its AttackResult

        Raises:
            WorkbenchError: session still running, or the files could not be written
        """
        status = getattr(session, "status", result.status)
        if not status.is_terminal:
            raise WorkbenchError(
                ErrorCode.SESSION_INVALID_STATE,
                f"Session {result.session_id} is still running and cannot be sealed",
            )

        package_id = uuid.uuid4().hex
        stamp = result.started_at.strftime("%Y-%m-%d_%H-%M-%S")
        directory = self.root / f"Evidence_{_safe(result.target)}_{result.port}_{stamp}_{package_id[:8]}"
        summary = build_summary(result)

        try:
            files = await asyncio.to_thread(self._write_files, directory, result, summary)
            package = EvidencePackage(
                id=package_id,
                session_id=result.session_id,
                attack_name=result.vector_name,
                category=result.category,
                target=result.target,
                port=result.port,
                timestamp=result.started_at,
                success=result.success,
                duration=result.duration,
                directory=str(directory),
                files=files,
                summary=summary,
            )
            manifest = package.model_dump(mode="json")
            await asyncio.to_thread(
                (directory / MANIFEST_NAME).write_text, json.dumps(manifest, indent=2) + "\n", encoding="utf-8"
            )
            await self.index.upsert(manifest)
        except OSError as e:
            logger.error(f"[Evidence] Failed to write package for session {result.session_id}: {e}")
            shutil.rmtree(directory, ignore_errors=True)
            raise WorkbenchError(
                ErrorCode.EVIDENCE_WRITE_FAILED,
                f"Could not write evidence for session {result.session_id}: {e}",
                details={"directory": str(directory)},
            ) from e
        except WorkbenchError:
            # Never leave a directory the index does not know about
            shutil.rmtree(directory, ignore_errors=True)
            raise

        with self._lock:
            self._packages[package.id] = package
        logger.info(f"[Evidence] Sealed {package.name} ({len(files)} files)")
        self.package_created.emit(package)
        return package

    def _write_files(self, directory: Path, result: AttackResult, summary: EvidenceSummary) -> List[EvidenceFile]:
        directory.mkdir(parents=True, exist_ok=False)

        contents: List[Tuple[EvidenceType, str]] = [
            (EvidenceType.CONSOLE_OUTPUT, render_console(result)),
            (EvidenceType.RAW_DATA, render_raw(result)),
        ]
        if result.credentials:
            contents.append((EvidenceType.CREDENTIAL_LIST, render_credentials(result)))
        if result.vulnerabilities:
            contents.append((EvidenceType.VULNERABILITY_REPORT, render_vulnerabilities(result, summary)))
        if result.files:
            contents.append((EvidenceType.DIRECTORY_LISTING, render_files(result)))
        if result.has_findings:
            contents.append((EvidenceType.SUMMARY_REPORT, render_summary(result, summary)))

        files = []
        for evidence_type, text in contents:
            path = directory / FILENAMES[evidence_type]
            path.write_text(text, encoding="utf-8")
            files.append(EvidenceFile(
                filename=path.name,
                path=str(path.resolve()),
                size=path.stat().st_size,
                checksum=sha256_file(path),
                description=evidence_type.description,
                type=evidence_type,
            ))
        return files

    # ---------------------------------------------------------
    # Reading
    # ---------------------------------------------------------

    def list(self) -> List[EvidencePackage]:
        """All packages, newest first."""
        with self._lock:
            packages = list(self._packages.values())
        return sorted(packages, key=lambda p: p.timestamp, reverse=True)

    def get(self, package_id: str) -> EvidencePackage:
        with self._lock:
            package = self._packages.get(package_id)
        if package is None:
            raise EvidenceNotFound(package_id)
        return package

    def verify(self, package: EvidencePackage) -> Dict[str, bool]:
        """Recompute every file checksum; False for changed or missing files."""
        report = {}
        for f in package.files:
            path = Path(f.path)
            report[f.filename] = path.is_file() and sha256_file(path) == f.checksum
        return report

    def statistics(self) -> Dict[str, Any]:
        packages = self.list()
        return {
            "total_packages": len(packages),
            "total_vulnerabilities": sum(p.summary.total_vulnerabilities for p in packages),
            "total_credentials": sum(p.summary.credentials_found for p in packages),
            "total_files": sum(p.summary.directories_found for p in packages),
            "total_size": sum(p.total_size for p in packages),
            "evidence_directory": str(self.root),
        }

    # ---------------------------------------------------------
    # Export / Delete
    # ---------------------------------------------------------

    def export(self, package: EvidencePackage, destination: Optional[Path] = None, archive: bool = False) -> Path:
        """
        Copy a package (or a .zip of it) to destination; the package itself is untouched.

        Returns:
            Path of the exported directory or archive
        """
        source = Path(package.directory)
        if not source.is_dir():
            raise EvidenceNotFound(package.id)
        destination = Path(destination) if destination else self.config.storage.exports_path
        destination.mkdir(parents=True, exist_ok=True)

        try:
            if archive:
                exported = Path(shutil.make_archive(str(destination / package.name), "zip", root_dir=source))
            else:
                exported = destination / package.name
                shutil.copytree(source, exported, dirs_exist_ok=True)
        except OSError as e:
            raise WorkbenchError(
                ErrorCode.EVIDENCE_EXPORT_FAILED,
                f"Could not export {package.name}: {e}",
                details={"destination": str(destination)},
            ) from e

        logger.info(f"[Evidence] Exported {package.name} to {exported}")
        return exported

    async def delete(self, package: EvidencePackage) -> None:
        """
        Remove a package's files and both index entries. Irreversible.

        Raises:
            EvidenceNotFound: the package is not (or no longer) indexed
        """
        with self._lock:
            known = self._packages.pop(package.id, None)
        if known is None:
            raise EvidenceNotFound(package.id)

        await asyncio.to_thread(shutil.rmtree, known.directory, ignore_errors=True)
        await self.index.delete(package.id)
        logger.info(f"[Evidence] Deleted {known.name}")
        self.package_deleted.emit(package.id)
