"""Module classifier: turns raw tool output into credentials, vulnerabilities and files."""
#
# PURPOSE:
# Tools print free-form text. This module pattern-matches that text, line by
# line, into typed findings. It is a pure function of (category, lines):
# no I/O, no state, no exceptions escape.
#
# HOW IT WORKS:
# STRATEGIES maps every AttackCategory to an ordered tuple of PatternRules.
# Each line is tested against every rule of its category. When several
# rules match, the one with the longest literal prefix wins (an anchored
# "^\[SUCCESS\]" beats an unanchored "login: ... password:"); on a tie the
# rule declared first wins. Only the winner may produce a finding.
#
# Adding an attack type = adding a tuple of rules. Nothing else changes.
#
# KEY CONCEPTS:
# - Miss is silent: a line no rule understands produces nothing
# - A rule's builder may still reject its match (return None), e.g. a 404
# - Findings are de-duplicated, first occurrence wins
#

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from attackbench.data.models import AttackCategory, Credential, VulnerabilityFinding

logger = logging.getLogger(__name__)

Finding = Union[Credential, VulnerabilityFinding, str]
Builder = Callable[["re.Match[str]", str, int], Optional[Finding]]

_REGEX_META = set(".^$*+?{}[]|()")
_QUANTIFIERS = set("*?{")


def literal_prefix(pattern: str) -> str:
    """
    Literal text every match of an anchored pattern must start with.

    Unanchored patterns can match anywhere, so their prefix is empty.
    """
    if not pattern.startswith("^"):
        return ""
    prefix: List[str] = []
    i = 1
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            if i + 1 >= len(pattern) or pattern[i + 1].isalnum():
                break  # class escape such as \s or \d
            literal, step = pattern[i + 1], 2
        elif ch in _REGEX_META:
            break
        else:
            literal, step = ch, 1
        nxt = pattern[i + step] if i + step < len(pattern) else ""
        if nxt in _QUANTIFIERS:
            break  # optional or repeated char is not fixed
        prefix.append(literal)
        i += step
        if nxt == "+":
            break
    return "".join(prefix)


@dataclass(frozen=True)
class PatternRule:
    name: str
    kind: str  # "credential", "vulnerability" or "file"
    pattern: str
    build: Builder
    flags: int = 0

    @property
    def regex(self) -> "re.Pattern[str]":
        return _compiled(self.pattern, self.flags)

    @property
    def specificity(self) -> int:
        return len(literal_prefix(self.pattern))


_REGEX_CACHE: Dict[Tuple[str, int], "re.Pattern[str]"] = {}


def _compiled(pattern: str, flags: int) -> "re.Pattern[str]":
    key = (pattern, flags)
    compiled = _REGEX_CACHE.get(key)
    if compiled is None:
        compiled = _REGEX_CACHE[key] = re.compile(pattern, flags)
    return compiled


class Classification(NamedTuple):
    credentials: List[Credential]
    vulnerabilities: List[VulnerabilityFinding]
    files: List[str]

    @property
    def empty(self) -> bool:
        return not (self.credentials or self.vulnerabilities or self.files)


# ============================================================================
# Builders
# ============================================================================

def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _credential(match: "re.Match[str]", line: str, default_port: int) -> Optional[Credential]:
    groups = match.groupdict()
    username = (groups.get("username") or "").strip()
    if not username:
        return None
    return Credential(
        username=username,
        password=(groups.get("password") or "").strip(),
        service=(groups.get("service") or "unknown").lower(),
        port=_int(groups.get("port"), default_port),
    )


def _hydra_generic(match: "re.Match[str]", line: str, default_port: int) -> Optional[Credential]:
    # Service is unknown from this line alone; hydra vectors here are SSH by default
    groups = match.groupdict()
    return Credential(
        username=groups["username"],
        password=groups["password"],
        service="ssh",
        port=default_port,
    )


def nikto_severity(line: str) -> str:
    lowered = line.lower()
    if "critical" in lowered or "CVE-" in line:
        return "critical"
    if "high" in lowered or "OSVDB-" in line:
        return "high"
    if "medium" in lowered:
        return "medium"
    return "low"


def _nikto(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
    description = match.group("description").strip()
    return VulnerabilityFinding(
        type="Web Vulnerability",
        severity=nikto_severity(line),
        description=description,
        proof=line.strip(),
        recommendation="Review the Nikto finding and patch or reconfigure the web server",
    )


def _sqlmap(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
    parameter = match.group("parameter").strip()
    return VulnerabilityFinding(
        type="SQL Injection",
        severity="critical",
        description=f"SQL injection vulnerability in parameter {parameter}",
        proof=line.strip(),
        recommendation="Use parameterized queries and validate all input",
    )


def _nuclei_text(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
    template = match.group("template")
    location = match.group("location")
    return VulnerabilityFinding(
        type=template,
        severity=match.group("severity").lower(),
        description=f"{template} matched on {location}",
        proof=line.strip(),
    )


def _nuclei_json(match: "re.Match[str]", line: str, default_port: int) -> Optional[VulnerabilityFinding]:
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    info = data.get("info")
    if not isinstance(info, dict):
        info = {}
    template = data.get("template-id") or data.get("templateID") or "nuclei"
    location = data.get("matched-at") or data.get("host") or ""
    return VulnerabilityFinding(
        type=template,
        severity=str(info.get("severity", "info")).lower(),
        description=info.get("name") or template,
        proof=location,
        recommendation=info.get("remediation") or "",
    )


def _tagged(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
    return VulnerabilityFinding(
        type="Finding",
        severity=match.group("severity").lower(),
        description=match.group("description").strip(),
        proof=line.strip(),
    )


def _fixed(type_: str, severity: str, description: str, recommendation: str = "") -> Builder:
    def build(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
        return VulnerabilityFinding(
            type=type_,
            severity=severity,
            description=description.format(**{k: v or "" for k, v in match.groupdict().items()}),
            proof=line.strip(),
            recommendation=recommendation,
        )
    return build


# Ports whose exposure is itself worth flagging
MANAGEMENT_PORTS: Dict[int, str] = {
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    445: "SMB",
    1433: "MSSQL",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    6379: "Redis",
    9200: "Elasticsearch",
    27017: "MongoDB",
}


def _open_port(match: "re.Match[str]", line: str, default_port: int) -> VulnerabilityFinding:
    port = int(match.group("port"))
    service = match.group("service")
    version = (match.group("version") or "").strip()
    label = MANAGEMENT_PORTS.get(port)
    detail = f"{port}/{match.group('proto')} {service}" + (f" ({version})" if version else "")
    if label:
        return VulnerabilityFinding(
            type="Exposed Management Interface",
            severity="medium",
            description=f"{label} reachable on {detail}",
            proof=line.strip(),
            recommendation=f"Restrict {label} access to trusted networks",
        )
    return VulnerabilityFinding(
        type="Open Service",
        severity="info",
        description=f"Open service {detail}",
        proof=line.strip(),
    )


# Status codes that mean "something is there"
INTERESTING_STATUS = {200, 204, 301, 302, 307, 308, 401, 403}


def _path_with_status(match: "re.Match[str]", line: str, default_port: int) -> Optional[str]:
    if _int(match.group("status"), 0) not in INTERESTING_STATUS:
        return None
    return match.group("path")


def _path(match: "re.Match[str]", line: str, default_port: int) -> str:
    return match.group("path")


# ============================================================================
# Rule Tables
# ============================================================================

_USERPASS = r"(?P<username>[^\s:]+):(?P<password>\S*)"

CREDENTIAL_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "success_marker", "credential",
        r"^\[SUCCESS\]\s+" + _USERPASS + r"(?:\s+\((?P<service>[\w.-]+)\))?",
        _credential,
    ),
    PatternRule(
        "hydra", "credential",
        r"^\[(?P<port>\d+)\]\[(?P<service>[\w.-]+)\]\s+host:\s*\S+\s+login:\s*(?P<username>\S+)\s+password:\s*(?P<password>\S*)",
        _credential,
    ),
    PatternRule(
        "medusa", "credential",
        r"^ACCOUNT FOUND:\s+\[(?P<service>[\w.-]+)\]\s+Host:\s*\S+\s+User:\s*(?P<username>\S+)\s+Password:\s*(?P<password>\S*)",
        _credential,
    ),
    PatternRule(
        "plus_marker", "credential",
        r"^\[\+\]\s+(?:\S+\\)?" + _USERPASS + r"(?:\s+\((?P<service>[\w.-]+)\))?",
        _credential,
    ),
    PatternRule(
        "login_password", "credential",
        r"login:\s*(?P<username>\S+)\s+password:\s*(?P<password>\S+)",
        _hydra_generic,
    ),
)

SECRET_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "aws_access_key", "vulnerability",
        r"(?P<key>AKIA[0-9A-Z]{16})",
        _fixed("Exposed Secret", "high", "AWS access key id {key} exposed",
               "Revoke the key and move secrets out of served content"),
    ),
    PatternRule(
        "private_key", "vulnerability",
        r"-----BEGIN (?P<kind>[A-Z ]*)PRIVATE KEY-----",
        _fixed("Exposed Secret", "critical", "{kind}private key material exposed",
               "Rotate the key pair and remove it from the exposed location"),
    ),
    PatternRule(
        "github_token", "vulnerability",
        r"(?P<token>gh[pousr]_[A-Za-z0-9]{36,})",
        _fixed("Exposed Secret", "high", "GitHub token exposed",
               "Revoke the token in GitHub settings"),
    ),
)

VULN_SCAN_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "sqlmap_parameter", "vulnerability",
        r"^Parameter:\s+(?P<parameter>.+?)\s+is vulnerable",
        _sqlmap,
    ),
    PatternRule(
        "sqlmap_info", "vulnerability",
        r"(?:GET|POST|URI|Cookie|User-Agent|Referer)?\s*parameter\s+'(?P<parameter>[^']+)'\s+(?:is vulnerable|appears to be)",
        _sqlmap,
        re.IGNORECASE,
    ),
    PatternRule(
        "nikto", "vulnerability",
        r"^\+\s+(?P<description>.*(?:OSVDB-\d+|CVE-\d{4}-\d+).*)$",
        _nikto,
    ),
    PatternRule(
        "nuclei_json", "vulnerability",
        r'^\{.*"template-?[iI][dD]"',
        _nuclei_json,
    ),
    PatternRule(
        "nuclei_text", "vulnerability",
        r"^(?:\[[\d:\- ]+\]\s+)?\[(?P<template>[\w.:/-]+)\]\s+\[(?P<protocol>[\w-]+)\]\s+\[(?P<severity>critical|high|medium|low|info)\]\s+(?P<location>\S+)",
        _nuclei_text,
        re.IGNORECASE,
    ),
    PatternRule(
        "severity_tag", "vulnerability",
        r"^\[(?P<severity>CRITICAL|HIGH|MEDIUM|LOW)\]\s+(?P<description>.+)$",
        _tagged,
        re.IGNORECASE,
    ),
    PatternRule(
        "wpscan_vuln", "vulnerability",
        r"^\s*\|\s+\[!\]\s+Title:\s+(?P<title>.+)$",
        _fixed("WordPress Vulnerability", "high", "{title}",
               "Update WordPress core, themes and plugins"),
    ),
)

FILE_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "gobuster", "file",
        r"^(?P<path>/\S*)\s+\(Status:\s*(?P<status>\d{3})\)",
        _path_with_status,
    ),
    PatternRule(
        "dirb_file", "file",
        r"^\+\s+(?P<path>\S+)\s+\(CODE:(?P<status>\d{3})\|",
        _path_with_status,
    ),
    PatternRule(
        "dirb_directory", "file",
        r"^==> DIRECTORY:\s+(?P<path>\S+)",
        _path,
    ),
    PatternRule(
        "ffuf", "file",
        r"^\s*(?P<path>\S+)\s+\[Status:\s*(?P<status>\d{3}),\s*Size:",
        _path_with_status,
    ),
    PatternRule(
        "feroxbuster", "file",
        r"^(?P<status>\d{3})\s+(?:GET|POST|HEAD)\s+\d+l\s+\d+w\s+\d+c\s+(?P<path>\S+)",
        _path_with_status,
    ),
    PatternRule(
        "found_marker", "file",
        r"^Found:\s+(?P<path>\S+)",
        _path,
    ),
)

RECON_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "nmap_open_port", "vulnerability",
        r"^(?P<port>\d+)/(?P<proto>tcp|udp)\s+open\s+(?P<service>\S+)(?:\s+(?P<version>.+))?$",
        _open_port,
    ),
    PatternRule(
        "nse_vulnerable", "vulnerability",
        r"^\|\s+State:\s+(?:LIKELY\s+)?VULNERABLE",
        _fixed("NSE Script Finding", "high", "Nmap script reported the service as vulnerable",
               "Review the NSE output and patch the affected service"),
    ),
    PatternRule(
        "nse_cve", "vulnerability",
        r"^\|\s+(?:IDs:\s+)?CVE:(?P<cve>CVE-\d{4}-\d+)",
        _fixed("Known CVE", "high", "Service affected by {cve}",
               "Apply the vendor patch for the referenced CVE"),
    ),
)

SSL_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "legacy_protocol", "vulnerability",
        r"(?P<protocol>SSLv2|SSLv3|TLSv1\.0)\s+enabled",
        _fixed("Weak Protocol", "high", "{protocol} is enabled",
               "Disable legacy protocols; allow TLS 1.2 and newer only"),
    ),
    PatternRule(
        "weak_cipher", "vulnerability",
        r"(?P<kind>weak|null|export|rc4|des-cbc3)[\w-]{0,32}\s+cipher",
        _fixed("Weak Cipher", "medium", "{kind} cipher suite accepted",
               "Remove weak cipher suites from the server configuration"),
        re.IGNORECASE,
    ),
    PatternRule(
        "accepted_weak_cipher", "vulnerability",
        r"^Accepted\s+\S+\s+\d+\s+bits\s+(?P<cipher>\S*(?:RC4|NULL|EXP|DES)\S*)",
        _fixed("Weak Cipher", "medium", "Weak cipher {cipher} accepted",
               "Remove weak cipher suites from the server configuration"),
    ),
    PatternRule(
        "expired_certificate", "vulnerability",
        r"certificate\s+(?:has\s+)?expired",
        _fixed("Expired Certificate", "medium", "Server certificate has expired",
               "Renew the TLS certificate"),
        re.IGNORECASE,
    ),
)

STRATEGIES: Dict[AttackCategory, Tuple[PatternRule, ...]] = {
    AttackCategory.BRUTE_FORCE: CREDENTIAL_RULES + SECRET_RULES,
    AttackCategory.WEB_DIRECTORY_ENUM: FILE_RULES + SECRET_RULES,
    AttackCategory.VULNERABILITY_SCAN: VULN_SCAN_RULES + SECRET_RULES,
    AttackCategory.WEB_VULN_SCAN: VULN_SCAN_RULES + FILE_RULES[-1:] + SECRET_RULES,
    AttackCategory.NETWORK_RECON: RECON_RULES + SECRET_RULES,
    AttackCategory.SSL_AUDIT: SSL_RULES + SECRET_RULES,
}


# ============================================================================
# Entry Point
# ============================================================================

def _best_match(rules: Tuple[PatternRule, ...], line: str):
    best = None
    best_score = -1
    for rule in rules:
        match = rule.regex.search(line)
        if match is None:
            continue
        score = rule.specificity
        if score > best_score:
            best, best_score = (rule, match), score
    return best


def classify(
    category: Union[AttackCategory, str],
    lines: Iterable[str],
    default_port: int = 0,
) -> Classification:
    """
    Extract structured findings from tool output.

    Args:
        category: Attack category selecting the rule table
        lines: Raw output lines in order
        default_port: Port credited to credentials whose line names none

    Returns:
        Classification(credentials, vulnerabilities, files); never raises
    """
    try:
        rules = STRATEGIES.get(AttackCategory(category), ())
    except ValueError:
        logger.debug(f"[classifier] No rules for category {category!r}")
        rules = ()

    credentials: Dict[Credential, None] = {}
    vulnerabilities: Dict[VulnerabilityFinding, None] = {}
    files: Dict[str, None] = {}

    for line in lines:
        if not line or not rules:
            continue
        best = _best_match(rules, line)
        if best is None:
            continue
        rule, match = best
        try:
            finding = rule.build(match, line, default_port)
        except Exception as e:
            logger.debug(f"[classifier] Rule {rule.name} rejected line {line!r}: {e}")
            continue
        if finding is None:
            continue
        if isinstance(finding, Credential):
            credentials.setdefault(finding, None)
        elif isinstance(finding, VulnerabilityFinding):
            vulnerabilities.setdefault(finding, None)
        else:
            files.setdefault(finding, None)

    return Classification(list(credentials), list(vulnerabilities), list(files))
