"""Module registry: static catalog of the external tools the workbench drives."""
#
# PURPOSE:
# One table describing every external binary an attack vector may need:
# its human label, the canonical executable name and any aliases it ships
# under (nikto.pl, sqlmap.py, thc-hydra, nc, ...).
#
# The table is built once at import time and never mutated. Installation
# strategies live next door in installer.py; ToolRegistry joins the two for
# the availability monitor.
#
import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Where package managers drop binaries that are often missing from a GUI PATH
EXTRA_BIN_DIRS: List[str] = [
    "/opt/homebrew/bin",
    "/opt/homebrew/sbin",
    "/usr/local/bin",
    "/usr/local/sbin",
    "/usr/bin",
    "/usr/sbin",
    "~/go/bin",
    "~/.local/bin",
    "~/.cargo/bin",
    "/opt/metasploit-framework/bin",
]

# Each tool is defined as a dictionary with:
# - label: Human-readable description (shown in UI)
# - binary: Canonical executable name
# - aliases: Other executable names the same tool is installed as
# - kind: Rough grouping for listings ("network", "web", "credential", ...)

TOOLS: Dict[str, Dict] = {
    "nmap": {
        "label": "Nmap (port and service scanner)",
        "binary": "nmap",
        "kind": "network",
    },
    "masscan": {
        "label": "masscan (very fast port scan)",
        "binary": "masscan",
        "kind": "network",
    },
    "netcat": {
        "label": "netcat (raw TCP/UDP banner grabbing)",
        "binary": "nc",
        "aliases": ["netcat", "ncat"],
        "kind": "network",
    },
    "hydra": {
        "label": "THC Hydra (network login brute force)",
        "binary": "hydra",
        "aliases": ["thc-hydra"],
        "kind": "credential",
    },
    "medusa": {
        "label": "Medusa (parallel login brute force)",
        "binary": "medusa",
        "kind": "credential",
    },
    "john": {
        "label": "John the Ripper (password cracker)",
        "binary": "john",
        "aliases": ["john-the-ripper"],
        "kind": "credential",
    },
    "gobuster": {
        "label": "Gobuster (directory brute force)",
        "binary": "gobuster",
        "kind": "web",
    },
    "dirb": {
        "label": "DIRB (web content scanner)",
        "binary": "dirb",
        "kind": "web",
    },
    "ffuf": {
        "label": "ffuf (web fuzzer)",
        "binary": "ffuf",
        "kind": "web",
    },
    "feroxbuster": {
        "label": "Feroxbuster (recursive discovery)",
        "binary": "feroxbuster",
        "kind": "web",
    },
    "nikto": {
        "label": "Nikto (web vulnerability scanner)",
        "binary": "nikto",
        "aliases": ["nikto.pl"],
        "kind": "web",
    },
    "nuclei": {
        "label": "nuclei (vulnerability templates)",
        "binary": "nuclei",
        "kind": "web",
    },
    "sqlmap": {
        "label": "sqlmap (SQL injection)",
        "binary": "sqlmap",
        "aliases": ["sqlmap.py"],
        "kind": "web",
    },
    "whatweb": {
        "label": "whatweb (fingerprint tech stack)",
        "binary": "whatweb",
        "kind": "web",
    },
    "wpscan": {
        "label": "WPScan (WordPress scanner)",
        "binary": "wpscan",
        "kind": "web",
    },
    "httpx": {
        "label": "httpx (HTTP probing)",
        "binary": "httpx",
        "kind": "web",
    },
    "sslscan": {
        "label": "sslscan (TLS cipher and protocol audit)",
        "binary": "sslscan",
        "kind": "tls",
    },
    "sslyze": {
        "label": "sslyze (TLS scanner)",
        "binary": "sslyze",
        "kind": "tls",
    },
    "enum4linux": {
        "label": "enum4linux (SMB enumeration)",
        "binary": "enum4linux",
        "aliases": ["enum4linux.pl", "enum4linux-ng"],
        "kind": "network",
    },
    "smbclient": {
        "label": "smbclient (SMB share access)",
        "binary": "smbclient",
        "kind": "network",
    },
    "metasploit": {
        "label": "Metasploit Framework console",
        "binary": "msfconsole",
        "aliases": ["metasploit"],
        "kind": "exploit",
    },
    "curl": {
        "label": "curl (HTTP client)",
        "binary": "curl",
        "kind": "web",
    },
}


def _search_path() -> str:
    dirs = os.environ.get("PATH", "").split(os.pathsep)
    for extra in EXTRA_BIN_DIRS:
        expanded = str(Path(extra).expanduser())
        if expanded not in dirs:
            dirs.append(expanded)
    return os.pathsep.join(d for d in dirs if d)


def which_any(candidates: List[str]) -> Optional[str]:
    """First candidate that resolves on PATH (plus EXTRA_BIN_DIRS)."""
    search_path = _search_path()
    for candidate in candidates:
        found = shutil.which(candidate, path=search_path)
        if found:
            return found
    return None


class ToolRegistry:
    """
    Read-only view over TOOLS and the installer strategies.

    Constructed once at startup and handed to whoever needs it.
    """

    def __init__(self, tools: Optional[Dict[str, Dict]] = None, installers: Optional[Dict[str, Dict]] = None):
        if installers is None:
            from attackbench.toolkit.installer import INSTALLERS
            installers = INSTALLERS
        self._tools = dict(TOOLS if tools is None else tools)
        self._installers = dict(installers)

    def is_known(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return sorted(self._tools)

    def label(self, name: str) -> str:
        tool_def = self._tools.get(name)
        return tool_def["label"] if tool_def else name

    def binary_candidates(self, name: str) -> List[str]:
        tool_def = self._tools.get(name)
        if not tool_def:
            return [name]
        return [tool_def["binary"], *tool_def.get("aliases", [])]

    def find(self, name: str) -> Optional[str]:
        return which_any(self.binary_candidates(name))

    def installer(self, name: str) -> Optional[Dict]:
        return self._installers.get(name)

    def can_install(self, name: str) -> bool:
        spec = self._installers.get(name)
        return bool(name in self._tools and spec and spec.get("strategies"))
