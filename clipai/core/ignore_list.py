"""Applications whose clipboard content must never be captured."""

import json
import logging
import os
from typing import Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

# Suggested entries, most common first
DEFAULT_PASSWORD_MANAGERS = [
    "com.1password.1password",
    "com.agilebits.onepassword7",
    "com.agilebits.onepassword4",
    "com.bitwarden.desktop",
    "com.lastpass.LastPass",
    "com.dashlane.Dashlane",
    "com.keepersecurity.passwordmanager",
]


class IgnorePolicy(Protocol):
    def is_ignored(self, identifier: Optional[str]) -> bool: ...


class IgnoreList:
    """Set of ignored application identifiers, optionally backed by a JSON file."""

    def __init__(self, identifiers: Iterable[str] = (), path: Optional[str] = None):
        self.path = os.path.expanduser(path) if path else None
        self._identifiers = {i for i in identifiers if i}

    def identifiers(self) -> List[str]:
        return sorted(self._identifiers)

    def is_ignored(self, identifier: Optional[str]) -> bool:
        if not identifier:
            return False
        return identifier in self._identifiers

    def add(self, identifier: str) -> bool:
        """Add an identifier; returns False when it was already present."""
        if identifier in self._identifiers:
            logger.debug(f"Identifier already in ignore list: {identifier}")
            return False

        self._identifiers.add(identifier)
        self.save()
        logger.info(f"Added to ignore list: {identifier}")
        return True

    def remove(self, identifier: str) -> bool:
        """Remove an identifier; returns False when it was not present."""
        if identifier not in self._identifiers:
            logger.debug(f"Identifier not in ignore list: {identifier}")
            return False

        self._identifiers.discard(identifier)
        self.save()
        logger.info(f"Removed from ignore list: {identifier}")
        return True

    def load(self):
        """Merge identifiers stored at ``path`` into the list."""
        if not self.path or not os.path.exists(self.path):
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                saved = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load ignore list: {e}")
            return

        if isinstance(saved, list):
            self._identifiers.update(str(item) for item in saved if item)
            logger.debug(f"Loaded {len(saved)} ignored apps from {self.path}")

    def save(self):
        if not self.path:
            return

        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.identifiers(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save ignore list: {e}")
