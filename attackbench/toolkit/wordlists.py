"""Module wordlists: guarantees brute-force and enumeration vectors have input files."""
import logging
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

USERNAMES: List[str] = [
    "admin", "administrator", "root", "user", "test", "guest",
    "oracle", "postgres", "mysql", "ftp", "mail", "www",
    "daemon", "nobody", "bin", "sys", "sync", "games",
]

PASSWORDS: List[str] = [
    "password", "123456", "password123", "admin", "admin123", "root",
    "toor", "pass", "test", "guest", "qwerty", "12345",
    "letmein", "welcome", "monkey", "dragon", "master",
    "login", "abc123", "password1", "1234567890",
]

WEB_PATHS: List[str] = [
    "admin", "administrator", "login", "wp-admin", "phpmyadmin",
    "backup", "backups", "config", "database", "db", "sql",
    "uploads", "images", "css", "js", "api", "v1", "v2",
    "test", "dev", "staging", "robots.txt", "sitemap.xml",
    ".env", ".git/config", ".git/HEAD", ".htaccess", "web.config",
    "phpinfo.php", "info.php", "server-status", "swagger.json",
    "index.php", "index.html", "default.php", "default.html",
]


class WordlistManager:
    """
    Ensures a valid wordlist is always available.
    Strategy:
    1. System wordlist for web content (Kali/Linux standards, Homebrew)
    2. Synthesize the built-in list under the data dir
    """

    SYSTEM_WEB_PATHS = [
        "/usr/share/wordlists/dirb/common.txt",
        "/usr/share/wordlists/seclists/Discovery/Web-Content/common.txt",
        "/usr/share/seclists/Discovery/Web-Content/common.txt",
        "/opt/homebrew/share/wordlists/dirb/common.txt",
        "/usr/local/share/wordlists/dirb/common.txt",
    ]

    BUILTIN: Dict[str, List[str]] = {
        "users.txt": USERNAMES,
        "passwords.txt": PASSWORDS,
        "web_common.txt": WEB_PATHS,
    }

    def __init__(self, directory: Path, prefer_system: bool = True):
        self.directory = Path(directory)
        self.prefer_system = prefer_system

    def userlist(self) -> str:
        return self._synthesize("users.txt")

    def passlist(self) -> str:
        return self._synthesize("passwords.txt")

    def web_wordlist(self) -> str:
        if self.prefer_system:
            for path_str in self.SYSTEM_WEB_PATHS:
                p = Path(path_str)
                if p.exists():
                    logger.debug(f"Using system wordlist: {p}")
                    return str(p.resolve())
        return self._synthesize("web_common.txt")

    def placeholders(self) -> Dict[str, str]:
        """Template placeholder values for command rendering."""
        return {
            "userlist": self.userlist(),
            "passlist": self.passlist(),
            "wordlist": self.web_wordlist(),
        }

    def _synthesize(self, name: str) -> str:
        """Write a built-in wordlist to disk if it isn't there yet."""
        target_file = self.directory / name
        if not target_file.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Creating wordlist at {target_file}")
            target_file.write_text("\n".join(self.BUILTIN[name]) + "\n", encoding="utf-8")
        return str(target_file.resolve())
