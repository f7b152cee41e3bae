# ============================================================================
# tests/unit/test_vectors.py
# Attack vector catalog, template rendering and wordlists
# ============================================================================

import pytest
from pydantic import ValidationError

from attackbench.data.models import AttackCategory, Difficulty, Severity
from attackbench.errors import ErrorCode, WorkbenchError
from attackbench.toolkit.vectors import (
    CATALOG,
    VECTORS,
    AttackVector,
    get_vector,
    list_vectors,
    render_command,
    render_vector,
    validate_port,
    validate_target,
    vectors_for_port,
)
from attackbench.toolkit.wordlists import WordlistManager


def test_catalog_names_are_unique():
    assert len(VECTORS) == len(CATALOG)


def test_every_vector_names_its_tools_and_commands():
    for vector in CATALOG:
        assert vector.required_tools, vector.name
        assert vector.commands, vector.name
        assert vector.severity is not Severity.INFO


def test_get_vector():
    assert get_vector("Port Service Detection").required_tools == ("nmap",)
    with pytest.raises(WorkbenchError) as exc:
        get_vector("Teleport Attack")
    assert exc.value.code is ErrorCode.ATTACK_VECTOR_NOT_FOUND
    assert exc.value.http_status == 404


def test_list_vectors_by_category():
    brute = list_vectors(AttackCategory.BRUTE_FORCE)
    assert brute
    assert all(v.category is AttackCategory.BRUTE_FORCE for v in brute)
    assert len(list_vectors()) == len(CATALOG)


def test_vectors_for_port():
    names = {v.name for v in vectors_for_port(22)}
    assert "SSH Brute Force" in names
    assert "FTP Brute Force" not in names


def test_vector_validation():
    with pytest.raises(ValidationError):
        AttackVector(
            name="Empty", category=AttackCategory.NETWORK_RECON, severity=Severity.LOW,
            difficulty=Difficulty.BEGINNER, description="", required_tools=("nmap",), commands=(),
        )
    with pytest.raises(ValidationError):
        AttackVector(
            name="Info", category=AttackCategory.NETWORK_RECON, severity=Severity.INFO,
            difficulty=Difficulty.BEGINNER, description="", required_tools=("nmap",), commands=("nmap",),
        )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_render_port_service_detection():
    argv = render_vector(get_vector("Port Service Detection"), "10.0.0.5", 22)
    assert argv == [["nmap", "-Pn", "-sV", "-p", "22", "10.0.0.5"]]


def test_render_fills_wordlists():
    extra = {"userlist": "/w/users.txt", "passlist": "/w/pass.txt"}
    [argv] = render_vector(get_vector("SSH Brute Force"), "host.local", 2222, extra)
    assert argv[0] == "hydra"
    assert "/w/users.txt" in argv
    assert "/w/pass.txt" in argv
    assert argv[argv.index("-s") + 1] == "2222"
    assert argv[-2:] == ["host.local", "ssh"]


def test_render_url_scheme_follows_port():
    assert render_command("curl {url}", "example.com", 443) == ["curl", "https://example.com:443"]
    assert render_command("curl {url}", "example.com", 8080) == ["curl", "http://example.com:8080"]


def test_legacy_markers():
    assert render_command("tool -h TARGET -p PORT", "1.2.3.4", 80) == ["tool", "-h", "1.2.3.4", "-p", "80"]


def test_placeholder_values_never_split_arguments():
    argv = render_command("tool {wordlist}", "h", 1, {"wordlist": "/path with spaces/list.txt"})
    assert argv == ["tool", "/path with spaces/list.txt"]


def test_unknown_placeholder():
    with pytest.raises(WorkbenchError) as exc:
        render_command("tool {nope}", "h", 1)
    assert exc.value.code is ErrorCode.ATTACK_TEMPLATE_INVALID


@pytest.mark.parametrize("target", ["", "   ", "-oN/tmp/x", "a;b", "a b", "$(id)", "x|y", "a&&b"])
def test_validate_target_rejects(target):
    with pytest.raises(WorkbenchError) as exc:
        validate_target(target)
    assert exc.value.code is ErrorCode.ATTACK_TARGET_INVALID


def test_validate_target_strips():
    assert validate_target("  10.0.0.5 ") == "10.0.0.5"


@pytest.mark.parametrize("port", [0, 65536, -1, True])
def test_validate_port_rejects(port):
    with pytest.raises(WorkbenchError):
        validate_port(port)


# ---------------------------------------------------------------------------
# Wordlists
# ---------------------------------------------------------------------------

def test_wordlists_are_synthesized(tmp_path):
    manager = WordlistManager(tmp_path / "wl", prefer_system=False)
    values = manager.placeholders()

    assert set(values) == {"userlist", "passlist", "wordlist"}
    users = (tmp_path / "wl" / "users.txt").read_text(encoding="utf-8").split()
    assert "admin" in users
    assert values["wordlist"].endswith("web_common.txt")


def test_wordlists_are_not_rewritten(tmp_path):
    manager = WordlistManager(tmp_path, prefer_system=False)
    path = manager.userlist()
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("custom\n")
    assert manager.userlist() == path
    with open(path, encoding="utf-8") as fh:
        assert fh.read() == "custom\n"
