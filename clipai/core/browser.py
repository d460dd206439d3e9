"""Browser address-bar URL extraction for clips copied from a web browser."""

import logging
import platform
import shutil
import subprocess
from typing import Dict, Optional

from clipai.core.sources import RunningApp, parse_web_url

logger = logging.getLogger(__name__)


class BrowserURLExtractor:
    """Asks a supported browser for the URL of its active tab.

    Extraction needs macOS automation access (``osascript``). Without it every
    call returns None immediately and no process is spawned.
    """

    # identifier -> AppleScript returning the active tab URL
    SUPPORTED_BROWSERS: Dict[str, str] = {
        "com.apple.Safari": 'tell application "Safari" to return URL of front document',
        "com.google.Chrome": 'tell application "Google Chrome" to return URL of active tab of front window',
        "com.microsoft.edgemac": 'tell application "Microsoft Edge" to return URL of active tab of front window',
        "org.mozilla.firefox": (
            'tell application "System Events" to tell process "Firefox" to '
            "return value of UI element 1 of combo box 1 of toolbar "
            '"Navigation" of first group of front window'
        ),
    }

    BROWSER_NAMES: Dict[str, str] = {
        "Safari": "com.apple.Safari",
        "Google Chrome": "com.google.Chrome",
        "Microsoft Edge": "com.microsoft.edgemac",
        "Firefox": "org.mozilla.firefox",
    }

    def __init__(self, enabled: bool = True, timeout: float = 1.0):
        self.enabled = enabled
        self.timeout = timeout

    def permission_granted(self) -> bool:
        return (
            self.enabled
            and platform.system() == "Darwin"
            and shutil.which("osascript") is not None
        )

    def browser_identifier(self, identifier: Optional[str]) -> Optional[str]:
        """Normalise a bundle identifier or display name to a supported bundle id."""
        if not identifier:
            return None
        if identifier in self.SUPPORTED_BROWSERS:
            return identifier
        return self.BROWSER_NAMES.get(identifier)

    def is_supported_browser(self, identifier: Optional[str]) -> bool:
        return self.browser_identifier(identifier) is not None

    def extract_url(self, app: Optional[RunningApp]) -> Optional[str]:
        """Return the active tab URL, or None. Never raises."""
        if app is None:
            logger.debug("Cannot extract URL: app is None")
            return None

        if not self.permission_granted():
            logger.debug("Cannot extract URL: no automation permission")
            return None

        bundle_id = self.browser_identifier(app.bundle_identifier) or self.browser_identifier(
            app.name
        )
        if bundle_id is None:
            logger.debug(f"Cannot extract URL: {app.identifier} is not a supported browser")
            return None

        try:
            result = subprocess.run(
                ["osascript", "-e", self.SUPPORTED_BROWSERS[bundle_id]],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"URL extraction failed for {bundle_id}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"URL extraction failed for {bundle_id}: {result.stderr.strip()}")
            return None

        url = self.parse_url(result.stdout)
        if url:
            logger.debug(f"Found URL in {bundle_id}: {url}")
        return url

    @staticmethod
    def parse_url(value: Optional[str]) -> Optional[str]:
        return parse_web_url(value)
