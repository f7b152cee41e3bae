# ============================================================================
# tests/unit/test_evidence_store.py
# Evidence sealing, verification, export, deletion and the durable index
# ============================================================================

import json
import zipfile
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from attackbench.data.db import EvidenceIndex
from attackbench.data.evidence_store import (
    MANIFEST_NAME,
    EvidencePackager,
    build_summary,
    sha256_file,
)
from attackbench.data.models import (
    AttackCategory,
    AttackResult,
    Credential,
    EvidenceType,
    SessionSnapshot,
    SessionStatus,
    VulnerabilityFinding,
)
from attackbench.errors import ErrorCode, EvidenceNotFound, WorkbenchError


def make_result(session_id=1, status=SessionStatus.COMPLETED, **findings) -> AttackResult:
    started = datetime(2024, 5, 1, 12, 0, 0)
    return AttackResult(
        session_id=session_id,
        vector_name="SSH Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        target="10.0.0.5",
        port=22,
        success=status is SessionStatus.COMPLETED,
        status=status,
        outcome="exited",
        exit_code=0,
        started_at=started,
        ended_at=started + timedelta(seconds=3),
        duration=3.0,
        output=("=== SSH Brute Force ===", "[SUCCESS] admin:admin123 (ssh)"),
        **findings,
    )


def snapshot_of(result: AttackResult, status=None) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=result.session_id,
        vector_name=result.vector_name,
        category=result.category,
        target=result.target,
        port=result.port,
        status=status or result.status,
        started_at=result.started_at,
        ended_at=result.ended_at,
        output=result.output,
    )


CRED = Credential(username="admin", password="admin123", service="ssh", port=22)
CRITICAL = VulnerabilityFinding(type="SQL Injection", severity="critical", description="id is injectable")
LOW = VulnerabilityFinding(type="Finding", severity="low", description="banner disclosed")


@pytest_asyncio.fixture
async def packager(config):
    packager = EvidencePackager(config, EvidenceIndex(str(config.storage.db_path)))
    yield packager
    await packager.index.close()


async def seal(packager, result):
    return await packager.seal(snapshot_of(result), result)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def test_summary_counts_and_actions():
    summary = build_summary(make_result(credentials=(CRED,), vulnerabilities=(CRITICAL, LOW)))
    assert summary.total_vulnerabilities == 2
    assert summary.by_severity == {"critical": 1, "low": 1}
    assert summary.exploits_available == 1
    assert summary.credentials_found == 1
    assert summary.recommended_actions[0] == "Rotate exposed credentials immediately"
    assert "Implement multi-factor authentication" in summary.recommended_actions
    assert summary.recommended_actions[-1] == "Review and update access controls and authentication mechanisms"


def test_summary_without_findings_keeps_generic_actions():
    summary = build_summary(make_result())
    assert summary.total_vulnerabilities == 0
    assert summary.recommended_actions == (
        "Implement regular security scanning and assessment procedures",
        "Review and update access controls and authentication mechanisms",
    )


# ---------------------------------------------------------------------------
# Sealing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_seal_without_findings_writes_console_and_raw(packager):
    package = await seal(packager, make_result())

    directory = Path(package.directory)
    assert directory.parent == packager.root
    assert directory.name.startswith("Evidence_10.0.0.5_22_2024-05-01_12-00-00_")
    assert sorted(f.filename for f in package.files) == ["attack_data.json", "console_output.txt"]

    console = package.file_of(EvidenceType.CONSOLE_OUTPUT)
    assert console.checksum == sha256_file(Path(console.path))
    assert console.size == Path(console.path).stat().st_size
    assert "[SUCCESS] admin:admin123 (ssh)" in Path(console.path).read_text(encoding="utf-8")

    manifest = json.loads((directory / MANIFEST_NAME).read_text(encoding="utf-8"))
    assert manifest["id"] == package.id
    assert manifest["session_id"] == 1


@pytest.mark.asyncio
async def test_seal_with_findings_writes_every_report(packager):
    result = make_result(credentials=(CRED,), vulnerabilities=(CRITICAL,), files=("/admin",))
    package = await seal(packager, result)

    assert {f.type for f in package.files} == set(EvidenceType)
    creds = Path(package.file_of(EvidenceType.CREDENTIAL_LIST).path).read_text(encoding="utf-8")
    assert "Username: admin" in creds

    summary = json.loads(Path(package.file_of(EvidenceType.SUMMARY_REPORT).path).read_text(encoding="utf-8"))
    assert summary["risk_summary"]["credentials_compromised"] == 1
    assert summary["executive_summary"]["target_system"] == "10.0.0.5:22"


@pytest.mark.asyncio
async def test_failed_and_stopped_sessions_are_sealed_too(packager):
    package = await seal(packager, make_result(status=SessionStatus.STOPPED))
    assert package.success is False
    console = Path(package.file_of(EvidenceType.CONSOLE_OUTPUT).path).read_text(encoding="utf-8")
    assert "Status: stopped" in console


@pytest.mark.asyncio
async def test_running_session_cannot_be_sealed(packager):
    result = make_result()
    with pytest.raises(WorkbenchError) as exc:
        await packager.seal(snapshot_of(result, status=SessionStatus.RUNNING), result)
    assert exc.value.code is ErrorCode.SESSION_INVALID_STATE
    assert packager.list() == []


@pytest.mark.asyncio
async def test_index_failure_leaves_no_orphan_directory(packager):
    failure = WorkbenchError(ErrorCode.DB_QUERY_FAILED, "database is locked")
    with patch.object(packager.index, "upsert", AsyncMock(side_effect=failure)):
        with pytest.raises(WorkbenchError) as exc:
            await seal(packager, make_result())

    assert exc.value.code is ErrorCode.DB_QUERY_FAILED
    assert list(packager.root.iterdir()) == []
    assert packager.list() == []


@pytest.mark.asyncio
async def test_manifest_write_failure_is_cleaned_up(packager):
    real_write_text = Path.write_text

    def failing_write_text(self, *args, **kwargs):
        if self.name == MANIFEST_NAME:
            raise OSError("disk full")
        return real_write_text(self, *args, **kwargs)

    with patch.object(Path, "write_text", failing_write_text):
        with pytest.raises(WorkbenchError) as exc:
            await seal(packager, make_result())

    assert exc.value.code is ErrorCode.EVIDENCE_WRITE_FAILED
    assert list(packager.root.iterdir()) == []
    assert await packager.index.all() == []


@pytest.mark.asyncio
async def test_package_created_signal(packager):
    created = []
    packager.package_created.connect(created.append)
    package = await seal(packager, make_result())
    assert created == [package]


@pytest.mark.asyncio
async def test_unsafe_target_characters_are_replaced(packager):
    result = make_result().model_copy(update={"target": "../../etc"})
    package = await seal(packager, result)
    assert Path(package.directory).parent == packager.root
    assert "/" not in Path(package.directory).name


# ---------------------------------------------------------------------------
# Reading, verification, export
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_newest_first_and_statistics(packager):
    older = await seal(packager, make_result(session_id=1))
    newer_result = make_result(session_id=2, credentials=(CRED,))
    newer_result = newer_result.model_copy(update={"started_at": newer_result.started_at + timedelta(hours=1)})
    newer = await seal(packager, newer_result)

    assert [p.id for p in packager.list()] == [newer.id, older.id]
    assert packager.get(older.id) == older

    stats = packager.statistics()
    assert stats["total_packages"] == 2
    assert stats["total_credentials"] == 1
    assert stats["total_size"] == older.total_size + newer.total_size


@pytest.mark.asyncio
async def test_verify_detects_tampering(packager):
    package = await seal(packager, make_result())
    assert all(packager.verify(package).values())

    console = Path(package.file_of(EvidenceType.CONSOLE_OUTPUT).path)
    console.write_text("edited\n", encoding="utf-8")
    report = packager.verify(package)
    assert report["console_output.txt"] is False
    assert report["attack_data.json"] is True


@pytest.mark.asyncio
async def test_export_copy_and_archive(packager, tmp_path):
    package = await seal(packager, make_result())

    copied = packager.export(package, tmp_path / "out")
    assert (copied / "console_output.txt").is_file()
    assert (copied / MANIFEST_NAME).is_file()

    archive = packager.export(package, tmp_path / "out", archive=True)
    assert archive.suffix == ".zip"
    with zipfile.ZipFile(archive) as zf:
        assert "console_output.txt" in zf.namelist()

    # The original package is untouched
    assert all(packager.verify(package).values())


@pytest.mark.asyncio
async def test_export_defaults_to_exports_dir(packager, config):
    package = await seal(packager, make_result())
    exported = packager.export(package)
    assert exported.parent == config.storage.exports_path


# ---------------------------------------------------------------------------
# Deletion and durability
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_removes_files_and_index_entry(packager):
    deleted = []
    packager.package_deleted.connect(deleted.append)
    package = await seal(packager, make_result())

    await packager.delete(package)

    assert not Path(package.directory).exists()
    assert deleted == [package.id]
    with pytest.raises(EvidenceNotFound):
        packager.get(package.id)
    assert await packager.index.all() == []


@pytest.mark.asyncio
async def test_delete_twice_raises(packager):
    package = await seal(packager, make_result())
    await packager.delete(package)
    with pytest.raises(EvidenceNotFound):
        await packager.delete(package)


@pytest.mark.asyncio
async def test_load_rebuilds_index_after_restart(packager, config):
    package = await seal(packager, make_result(credentials=(CRED,)))
    await packager.index.close()

    restarted = EvidencePackager(config, EvidenceIndex(str(config.storage.db_path)))
    try:
        assert await restarted.load() == 1
        assert restarted.get(package.id) == package
    finally:
        await restarted.index.close()


@pytest.mark.asyncio
async def test_load_drops_packages_whose_directory_vanished(packager, config):
    package = await seal(packager, make_result())
    for f in Path(package.directory).iterdir():
        f.unlink()
    Path(package.directory).rmdir()

    assert await packager.load() == 0
    assert await packager.index.all() == []


@pytest.mark.asyncio
async def test_index_delete_reports_missing_rows(packager):
    assert await packager.index.delete("does-not-exist") is False
