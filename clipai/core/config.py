"""Runtime configuration loaded from the environment and an optional .env file."""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_STORAGE_DIR = os.path.expanduser("~/.clipai")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ClipAIConfig:
    """Settings shared by the monitor, the store and the server."""

    storage_dir: str = DEFAULT_STORAGE_DIR
    poll_interval: float = 0.5
    ignored_apps: List[str] = field(default_factory=list)
    browser_urls: bool = True
    url_timeout: float = 1.0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ClipAIConfig":
        return cls(
            storage_dir=os.path.expanduser(
                os.getenv("CLIPAI_STORAGE_DIR", DEFAULT_STORAGE_DIR)
            ),
            poll_interval=float(os.getenv("CLIPAI_POLL_INTERVAL", "0.5")),
            ignored_apps=_env_list("CLIPAI_IGNORED_APPS"),
            browser_urls=_env_bool("CLIPAI_BROWSER_URLS", True),
            url_timeout=float(os.getenv("CLIPAI_URL_TIMEOUT", "1.0")),
            log_level=os.getenv("CLIPAI_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("CLIPAI_LOG_FILE") or None,
        )

    @property
    def ignore_list_file(self) -> str:
        return os.path.join(self.storage_dir, "ignore_list.json")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Send logs to stderr (stdout carries the MCP stream) and optionally a file."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        log_file = os.path.expanduser(log_file)
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
