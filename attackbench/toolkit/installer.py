"""Module installer: per-tool installation strategies and their execution."""
#
# PURPOSE:
# Knows *how* to install each registry tool (brew, pip, go, gem) and runs
# the chosen strategy through the ProcessRunner so install output streams to
# the caller and can be cancelled like any other tool run.
#
# STRATEGY FORMAT:
#   "tool": {
#       "strategies": [{"cmd": [...tokens, "||", ...tokens], "prerequisite": "go"}],
#       "verify_cmd": ["--version"],
#   }
# Strategies are tried in order until one installs a working binary.
# "&&" / "||" tokens chain commands without a shell.
#
import logging
import shutil
import sys
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

from attackbench.engine.runner import CancelToken, ExitKind, ExitOutcome, LineCallback, ProcessRunner

logger = logging.getLogger(__name__)

INSTALLERS: Dict[str, Dict] = {
    # Homebrew-based tools
    "nmap": {
        "strategies": [{"cmd": ["brew", "install", "nmap"]}],
        "verify_cmd": ["--version"],
    },
    "masscan": {
        "strategies": [{"cmd": ["brew", "install", "masscan"]}],
        "verify_cmd": ["--version"],
    },
    "netcat": {
        "strategies": [{"cmd": ["brew", "install", "netcat"]}],
        "verify_cmd": ["-h"],
    },
    "hydra": {
        "strategies": [{"cmd": ["brew", "install", "hydra"]}],
        "verify_cmd": ["-h"],
    },
    "medusa": {
        "strategies": [{"cmd": ["brew", "install", "medusa"]}],
        "verify_cmd": ["-V"],
    },
    "john": {
        "strategies": [{"cmd": ["brew", "install", "john-jumbo"]}],
        "verify_cmd": ["--list=build-info"],
    },
    "gobuster": {
        "strategies": [
            {"cmd": ["brew", "install", "gobuster"]},
            {"cmd": ["go", "install", "github.com/OJ/gobuster/v3@latest"], "prerequisite": "go"},
        ],
        "verify_cmd": ["version"],
    },
    "dirb": {
        "strategies": [{"cmd": ["brew", "install", "dirb"]}],
        "verify_cmd": [],
    },
    "ffuf": {
        "strategies": [
            {"cmd": ["brew", "install", "ffuf"]},
            {"cmd": ["go", "install", "github.com/ffuf/ffuf/v2@latest"], "prerequisite": "go"},
        ],
        "verify_cmd": ["-V"],
    },
    "feroxbuster": {
        "strategies": [{"cmd": ["brew", "install", "feroxbuster"]}],
        "verify_cmd": ["--version"],
    },
    "nikto": {
        "strategies": [{"cmd": ["brew", "install", "nikto"]}],
        "verify_cmd": ["-Version"],
    },
    "nuclei": {
        "strategies": [
            {"cmd": ["brew", "tap", "projectdiscovery/tap/nuclei", "||", "brew", "install", "nuclei"]},
            {"cmd": ["go", "install", "github.com/projectdiscovery/nuclei/v3/cmd/nuclei@latest"], "prerequisite": "go"},
        ],
        "verify_cmd": ["-version"],
    },
    "httpx": {
        "strategies": [
            {"cmd": ["brew", "tap", "projectdiscovery/tap/httpx", "||", "brew", "install", "httpx"]},
        ],
        "verify_cmd": ["-version"],
    },
    "sslscan": {
        "strategies": [{"cmd": ["brew", "install", "sslscan"]}],
        "verify_cmd": ["--version"],
    },
    "smbclient": {
        "strategies": [{"cmd": ["brew", "install", "samba"]}],
        "verify_cmd": ["--version"],
    },
    "metasploit": {
        "strategies": [{"cmd": ["brew", "install", "--cask", "metasploit"]}],
        "verify_cmd": ["--version"],
    },
    "curl": {
        "strategies": [{"cmd": ["brew", "install", "curl"]}],
        "verify_cmd": ["--version"],
    },

    # Python pip-based tools
    "sqlmap": {
        "strategies": [
            {"cmd": ["brew", "install", "sqlmap"]},
            {"cmd": ["pip", "install", "sqlmap"]},
        ],
        "verify_cmd": ["--version"],
    },
    "sslyze": {
        "strategies": [{"cmd": ["pip", "install", "sslyze"]}],
        "verify_cmd": ["--help"],
    },
    "enum4linux": {
        "strategies": [{"cmd": ["pip", "install", "enum4linux-ng"]}],
        "verify_cmd": ["-h"],
    },

    # Ruby gem-based tools
    "whatweb": {
        "strategies": [{"cmd": ["brew", "install", "whatweb"]}],
        "verify_cmd": ["--version"],
    },
    "wpscan": {
        "strategies": [
            {"cmd": ["brew", "install", "wpscanteam/tap/wpscan"]},
            {"cmd": ["gem", "install", "wpscan"], "prerequisite": "gem"},
        ],
        "verify_cmd": ["--version"],
    },
}


class CommandSegment(NamedTuple):
    """Represents a single command within a chain."""
    cmd: List[str]
    operator_before: Optional[str]  # "&&", "||", or None


class CommandValidator:
    """
    Validates the token structure of command chains (operator placement).
    Shell metacharacters are irrelevant: execution is already tokenized.
    """
    OPERATORS = {"&&", "||"}

    @staticmethod
    def validate_tokens(tokens: List[str]) -> None:
        if not tokens:
            raise ValueError("Empty command token list")

        last_was_op = True  # disallow operator as first token

        for i, tok in enumerate(tokens):
            if tok in CommandValidator.OPERATORS:
                if last_was_op:
                    raise ValueError(f"Invalid operator placement near '{tok}' at index {i}")
                last_was_op = True
            else:
                last_was_op = False

        if last_was_op:
            raise ValueError("Command cannot end with operator")


class CommandChain:
    """
    Command chain parser and executor.

    Handles sequences of commands joined by && (AND) and || (OR) without
    shell=True. Each segment runs through the ProcessRunner.
    """

    def __init__(self, raw_tokens: List[str]):
        CommandValidator.validate_tokens(raw_tokens)
        self.segments: List[CommandSegment] = self._parse(raw_tokens)

    @staticmethod
    def _parse(tokens: List[str]) -> List[CommandSegment]:
        segments = []
        current_cmd: List[str] = []
        last_op = None

        for token in tokens:
            if token in CommandValidator.OPERATORS:
                if current_cmd:
                    segments.append(CommandSegment(current_cmd, last_op))
                    current_cmd = []
                last_op = token
            else:
                current_cmd.append(token)

        if current_cmd:
            segments.append(CommandSegment(current_cmd, last_op))

        return segments

    async def execute(
        self,
        runner: ProcessRunner,
        on_line: Optional[LineCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, Optional[ExitOutcome]]:
        """
        Run the chain with shell-like short-circuit semantics.

        Returns:
            (final exit code, outcome that aborted the chain or None)
        """
        last_rc = 0

        for segment in self.segments:
            if segment.operator_before == "&&" and last_rc != 0:
                continue
            if segment.operator_before == "||" and last_rc == 0:
                continue

            if on_line is not None:
                on_line(f"$ {' '.join(segment.cmd)}")
            outcome = await runner.run(
                segment.cmd[0],
                segment.cmd[1:],
                on_line=on_line,
                cancel_token=cancel_token,
                timeout=timeout,
            )
            if outcome.kind in (ExitKind.CANCELLED, ExitKind.TIMED_OUT):
                return 1, outcome
            if outcome.kind is ExitKind.SPAWN_FAILED:
                if on_line is not None:
                    on_line(f"executable not found: {segment.cmd[0]}")
                last_rc = 127
                continue
            last_rc = outcome.code or 0

        return last_rc, None


@dataclass
class InstallReport:
    tool: str
    status: str  # "installed", "error" or "cancelled"
    message: str = ""
    log: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "installed"


def resolve_strategy_tokens(strategy: Dict) -> List[str]:
    """Resolve pip to `python -m pip` and go to its absolute path."""
    prerequisite = strategy.get("prerequisite")
    resolved: List[str] = []
    for part in strategy["cmd"]:
        if part in ("pip", "pip3"):
            resolved.extend([sys.executable, "-m", "pip"])
        elif part == "go" and prerequisite == "go":
            resolved.append(shutil.which("go") or "go")
        else:
            resolved.append(part)
    return resolved


def install_hint(name: str) -> str:
    """One-line human hint on how to get a tool installed."""
    spec = INSTALLERS.get(name)
    if not spec or not spec.get("strategies"):
        return f"Install '{name}' manually and make sure it is on PATH"
    first = " ".join(t for t in spec["strategies"][0]["cmd"])
    return f"Run: {first}"


async def install_tool(
    name: str,
    registry,
    runner: ProcessRunner,
    on_line: Optional[LineCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    timeout: Optional[float] = None,
) -> InstallReport:
    """
    Install a single tool using the strategy-based installation system.

    Args:
        name: Registry tool name
        registry: ToolRegistry used for strategies and binary lookup
        runner: ProcessRunner that executes every install command
        on_line: Receives install output as it is produced
        cancel_token: Aborts the running strategy when fired
        timeout: Per-command time limit
    """
    installation_log: List[str] = []

    def _log(line: str) -> None:
        installation_log.append(line)
        if on_line is not None:
            on_line(line)

    spec = registry.installer(name)
    if not registry.is_known(name):
        return InstallReport(name, "error", f"Tool '{name}' not in registry")
    if not spec or not spec.get("strategies"):
        return InstallReport(name, "error", f"No installer defined for '{name}'")

    last_error = None

    for idx, strategy in enumerate(spec["strategies"]):
        prerequisite = strategy.get("prerequisite")
        if prerequisite and not shutil.which(prerequisite):
            last_error = f"Strategy {idx + 1} requires '{prerequisite}' but it's not installed"
            _log(f"⊗ {last_error}")
            continue

        try:
            chain = CommandChain(resolve_strategy_tokens(strategy))
        except ValueError as e:
            last_error = f"Strategy {idx + 1} is malformed: {e}"
            _log(f"⊗ {last_error}")
            continue

        rc, aborted = await chain.execute(runner, on_line=_log, cancel_token=cancel_token, timeout=timeout)
        if aborted is not None:
            status = "cancelled" if aborted.kind is ExitKind.CANCELLED else "error"
            _log(f"⊗ Install {aborted.describe()}")
            logger.warning(f"[installer] {name}: install {aborted.describe()}")
            return InstallReport(name, status, f"Install {aborted.describe()}", installation_log)

        if rc != 0:
            last_error = f"Strategy {idx + 1} failed with exit code {rc}"
            _log(f"⊗ {last_error}")
            continue

        binary = registry.find(name)
        if not binary:
            last_error = f"Command succeeded but no binary for '{name}' found in PATH"
            _log(f"⊗ {last_error}")
            continue

        verify_cmd = spec.get("verify_cmd")
        if verify_cmd:
            outcome = await runner.run(binary, verify_cmd, cancel_token=cancel_token, timeout=10.0)
            if outcome.kind is ExitKind.SPAWN_FAILED or outcome.kind is ExitKind.TIMED_OUT:
                last_error = f"Verification of '{binary}' {outcome.describe()}"
                _log(f"⊗ {last_error}")
                continue
            if outcome.kind is ExitKind.CANCELLED:
                return InstallReport(name, "cancelled", "Install cancelled", installation_log)

        _log(f"✓ '{binary}' installed and verified")
        logger.info(f"[installer] {name} installed at {binary}")
        return InstallReport(name, "installed", f"Installed {binary}", installation_log)

    logger.warning(f"[installer] All strategies failed for {name}: {last_error}")
    return InstallReport(name, "error", f"All strategies failed. Last error: {last_error}", installation_log)
