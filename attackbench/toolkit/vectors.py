"""Module vectors: the static attack vector catalog and command rendering."""
#
# PURPOSE:
# An AttackVector is the immutable recipe for one attack technique: what it
# is, how severe, which tools it needs and the command templates to run.
# The catalog is built once at import time.
#
# TEMPLATES:
# Templates are split into argv tokens *before* placeholders are filled, so a
# target string can never add or split arguments. Placeholders:
#   {target} {port} {url} {userlist} {passlist} {wordlist}
# Legacy TARGET / PORT markers are accepted too.
#
from __future__ import annotations

import re
import shlex
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from attackbench.data.models import AttackCategory, Difficulty, Severity
from attackbench.errors import ErrorCode, WorkbenchError

_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")

# Same rejects as API target validation: anything a shell would interpret
DANGEROUS_PATTERNS = [";", "&&", "||", "`", "$(", "|", ">", "<", "\n", "\r", " ", "\t"]

TLS_PORTS = {443, 465, 636, 853, 993, 995, 8443}


class AttackVector(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    category: AttackCategory
    severity: Severity
    difficulty: Difficulty
    description: str
    required_tools: Tuple[str, ...]
    commands: Tuple[str, ...]
    references: Tuple[str, ...] = ()
    ports: Tuple[int, ...] = ()

    @field_validator("commands")
    @classmethod
    def _commands_not_empty(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if not v:
            raise ValueError("An attack vector needs at least one command template")
        return v

    @field_validator("severity")
    @classmethod
    def _vector_severity(cls, v: Severity) -> Severity:
        if v is Severity.INFO:
            raise ValueError("Vector severity must be low, medium, high or critical")
        return v


def validate_target(target: str) -> str:
    """Strip and check a host/IP target; raise WorkbenchError if unusable."""
    value = (target or "").strip()
    if not value:
        raise WorkbenchError(ErrorCode.ATTACK_TARGET_INVALID, "Target cannot be empty")
    if value.startswith("-"):
        raise WorkbenchError(ErrorCode.ATTACK_TARGET_INVALID, "Target cannot start with '-'",
                             details={"target": value})
    for pattern in DANGEROUS_PATTERNS:
        if pattern in value:
            raise WorkbenchError(ErrorCode.ATTACK_TARGET_INVALID,
                                 f"Invalid character in target: {pattern!r}",
                                 details={"target": value})
    return value


def validate_port(port: int) -> int:
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        raise WorkbenchError(ErrorCode.ATTACK_TARGET_INVALID, f"Port out of range: {port}",
                             details={"port": port})
    return port


def base_url(target: str, port: int) -> str:
    scheme = "https" if port in TLS_PORTS else "http"
    return f"{scheme}://{target}:{port}"


def render_command(template: str, target: str, port: int, extra: Optional[Dict[str, str]] = None) -> List[str]:
    """
    Turn one command template into an argv list.

    Raises:
        WorkbenchError: template references a placeholder with no value
    """
    values = {
        "target": target,
        "port": str(port),
        "url": base_url(target, port),
    }
    if extra:
        values.update(extra)

    argv: List[str] = []
    for token in shlex.split(template):
        missing = [name for name in _PLACEHOLDER_RE.findall(token) if name not in values]
        if missing:
            raise WorkbenchError(
                ErrorCode.ATTACK_TEMPLATE_INVALID,
                f"Unknown placeholder(s) {missing} in template: {template}",
            )
        # Legacy markers first, so substituted values are never rescanned
        token = token.replace("TARGET", "{target}").replace("PORT", "{port}")
        rendered = _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], token)
        argv.append(rendered)
    return argv


def render_vector(vector: AttackVector, target: str, port: int,
                  extra: Optional[Dict[str, str]] = None) -> List[List[str]]:
    return [render_command(t, target, port, extra) for t in vector.commands]


_HYDRA_REF = "https://github.com/vanhauser-thc/thc-hydra"

CATALOG: Tuple[AttackVector, ...] = (
    # --- Credential brute force -------------------------------------------
    AttackVector(
        name="SSH Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.HIGH,
        difficulty=Difficulty.INTERMEDIATE,
        description="Dictionary attack against SSH password authentication.",
        required_tools=("hydra",),
        commands=("hydra -L {userlist} -P {passlist} -s {port} -t 4 -f {target} ssh",),
        references=(_HYDRA_REF, "https://attack.mitre.org/techniques/T1110/001/"),
        ports=(22,),
    ),
    AttackVector(
        name="FTP Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.HIGH,
        difficulty=Difficulty.BEGINNER,
        description="Dictionary attack against FTP logins.",
        required_tools=("hydra",),
        commands=("hydra -L {userlist} -P {passlist} -s {port} -f {target} ftp",),
        references=(_HYDRA_REF,),
        ports=(21,),
    ),
    AttackVector(
        name="FTP Anonymous Access",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.BEGINNER,
        description="Checks whether the FTP server accepts anonymous logins.",
        required_tools=("hydra", "nmap"),
        commands=(
            "hydra -l anonymous -p anonymous -s {port} {target} ftp",
            "nmap -Pn -p {port} --script ftp-anon {target}",
        ),
        references=("https://nmap.org/nsedoc/scripts/ftp-anon.html",),
        ports=(21,),
    ),
    AttackVector(
        name="Telnet Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.HIGH,
        difficulty=Difficulty.BEGINNER,
        description="Dictionary attack against cleartext Telnet logins.",
        required_tools=("hydra",),
        commands=("hydra -L {userlist} -P {passlist} -s {port} -f {target} telnet",),
        references=(_HYDRA_REF,),
        ports=(23,),
    ),
    AttackVector(
        name="MySQL Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.HIGH,
        difficulty=Difficulty.INTERMEDIATE,
        description="Dictionary attack against MySQL accounts.",
        required_tools=("hydra",),
        commands=("hydra -L {userlist} -P {passlist} -s {port} -f {target} mysql",),
        references=(_HYDRA_REF,),
        ports=(3306,),
    ),
    AttackVector(
        name="RDP Brute Force",
        category=AttackCategory.BRUTE_FORCE,
        severity=Severity.HIGH,
        difficulty=Difficulty.INTERMEDIATE,
        description="Dictionary attack against Remote Desktop logins.",
        required_tools=("hydra",),
        commands=("hydra -L {userlist} -P {passlist} -s {port} -t 1 -f {target} rdp",),
        references=(_HYDRA_REF,),
        ports=(3389,),
    ),

    # --- Web content discovery --------------------------------------------
    AttackVector(
        name="Web Directory Enumeration",
        category=AttackCategory.WEB_DIRECTORY_ENUM,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.BEGINNER,
        description="Brute forces common directories and files on a web server.",
        required_tools=("gobuster",),
        commands=("gobuster dir -u {url}/ -w {wordlist} -q --no-error",),
        references=("https://github.com/OJ/gobuster",),
        ports=(80, 443, 8000, 8080, 8443),
    ),
    AttackVector(
        name="DIRB Content Scan",
        category=AttackCategory.WEB_DIRECTORY_ENUM,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.BEGINNER,
        description="Recursive web content scan with DIRB.",
        required_tools=("dirb",),
        commands=("dirb {url}/ {wordlist} -S",),
        references=("https://dirb.sourceforge.net/",),
        ports=(80, 443, 8080),
    ),
    AttackVector(
        name="Web Fuzzing",
        category=AttackCategory.WEB_DIRECTORY_ENUM,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.INTERMEDIATE,
        description="Fast path fuzzing with ffuf.",
        required_tools=("ffuf",),
        commands=("ffuf -u {url}/FUZZ -w {wordlist} -mc 200,204,301,302,307,401,403 -s",),
        references=("https://github.com/ffuf/ffuf",),
        ports=(80, 443, 8080, 8443),
    ),

    # --- Vulnerability scanning -------------------------------------------
    AttackVector(
        name="Web Vulnerability Scanning",
        category=AttackCategory.WEB_VULN_SCAN,
        severity=Severity.HIGH,
        difficulty=Difficulty.BEGINNER,
        description="Nikto scan for dangerous files, outdated software and misconfiguration.",
        required_tools=("nikto",),
        commands=("nikto -h {target} -p {port} -nointeractive",),
        references=("https://github.com/sullo/nikto",),
        ports=(80, 443, 8080, 8443),
    ),
    AttackVector(
        name="WordPress Security Scan",
        category=AttackCategory.WEB_VULN_SCAN,
        severity=Severity.HIGH,
        difficulty=Difficulty.INTERMEDIATE,
        description="Enumerates vulnerable WordPress plugins and users.",
        required_tools=("wpscan",),
        commands=("wpscan --url {url} --no-banner --enumerate vp,u",),
        references=("https://wpscan.com/",),
        ports=(80, 443),
    ),
    AttackVector(
        name="Template Vulnerability Scan",
        category=AttackCategory.VULNERABILITY_SCAN,
        severity=Severity.HIGH,
        difficulty=Difficulty.BEGINNER,
        description="Runs nuclei community templates against the service.",
        required_tools=("nuclei",),
        commands=("nuclei -u {url} -jsonl -silent -severity low,medium,high,critical",),
        references=("https://github.com/projectdiscovery/nuclei",),
        ports=(80, 443, 8080, 8443),
    ),
    AttackVector(
        name="SQL Injection Testing",
        category=AttackCategory.VULNERABILITY_SCAN,
        severity=Severity.CRITICAL,
        difficulty=Difficulty.ADVANCED,
        description="Automated SQL injection detection with sqlmap.",
        required_tools=("sqlmap",),
        commands=("sqlmap -u {url}/?id=1 --batch --level=2 --risk=1",),
        references=("https://sqlmap.org/", "https://owasp.org/www-community/attacks/SQL_Injection"),
        ports=(80, 443, 8080),
    ),

    # --- Network reconnaissance -------------------------------------------
    AttackVector(
        name="Port Service Detection",
        category=AttackCategory.NETWORK_RECON,
        severity=Severity.LOW,
        difficulty=Difficulty.BEGINNER,
        description="Service and version detection on the target port.",
        required_tools=("nmap",),
        commands=("nmap -Pn -sV -p {port} {target}",),
        references=("https://nmap.org/book/man-version-detection.html",),
    ),
    AttackVector(
        name="SSH Banner Grabbing",
        category=AttackCategory.NETWORK_RECON,
        severity=Severity.LOW,
        difficulty=Difficulty.BEGINNER,
        description="Grabs the SSH banner and supported authentication methods.",
        required_tools=("nmap",),
        commands=("nmap -Pn -sV -p {port} --script banner,ssh-auth-methods {target}",),
        references=("https://nmap.org/nsedoc/scripts/ssh-auth-methods.html",),
        ports=(22,),
    ),
    AttackVector(
        name="Vulnerability Script Scan",
        category=AttackCategory.NETWORK_RECON,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.INTERMEDIATE,
        description="Runs the nmap 'vuln' NSE category against the port.",
        required_tools=("nmap",),
        commands=("nmap -Pn -sV --script vuln -p {port} {target}",),
        references=("https://nmap.org/nsedoc/categories/vuln.html",),
    ),
    AttackVector(
        name="SMB Enumeration",
        category=AttackCategory.NETWORK_RECON,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.INTERMEDIATE,
        description="Enumerates SMB shares and users.",
        required_tools=("nmap",),
        commands=("nmap -Pn -p {port} --script smb-enum-shares,smb-enum-users {target}",),
        references=("https://nmap.org/nsedoc/scripts/smb-enum-shares.html",),
        ports=(139, 445),
    ),

    # --- TLS ----------------------------------------------------------------
    AttackVector(
        name="SSL/TLS Configuration Audit",
        category=AttackCategory.SSL_AUDIT,
        severity=Severity.MEDIUM,
        difficulty=Difficulty.BEGINNER,
        description="Checks protocol versions, cipher suites and the certificate.",
        required_tools=("sslscan",),
        commands=("sslscan --no-colour {target}:{port}",),
        references=("https://github.com/rbsec/sslscan",),
        ports=(443, 465, 993, 995, 8443),
    ),
)

VECTORS: Dict[str, AttackVector] = {v.name: v for v in CATALOG}


def get_vector(name: str) -> AttackVector:
    vector = VECTORS.get(name)
    if vector is None:
        raise WorkbenchError(
            ErrorCode.ATTACK_VECTOR_NOT_FOUND,
            f"Unknown attack vector '{name}'",
            details={"known": sorted(VECTORS)},
        )
    return vector


def list_vectors(category: Optional[AttackCategory] = None) -> List[AttackVector]:
    if category is None:
        return list(CATALOG)
    return [v for v in CATALOG if v.category == category]


def vectors_for_port(port: int) -> List[AttackVector]:
    """Vectors whose usual ports include `port` (port-agnostic vectors always apply)."""
    return [v for v in CATALOG if not v.ports or port in v.ports]
