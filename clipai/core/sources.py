"""Clipboard and frontmost-application sources consumed by the monitor.

On macOS the native pasteboard (pyobjc/AppKit) supplies a real change
counter that moves on every write, even when the same content is copied
twice. Elsewhere pyperclip and Pillow are read and the counter is derived
from a payload fingerprint.
"""

import hashlib
import logging
import platform
import subprocess
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import urlparse

import pyperclip
from PIL import Image, ImageGrab

logger = logging.getLogger(__name__)

# Uniform type identifiers behind NSPasteboardTypeString / NSPasteboardTypeURL
PLAIN_TEXT_TYPE = "public.utf8-plain-text"
URL_TYPE = "public.url"


def parse_web_url(value: Optional[str]) -> Optional[str]:
    """Return the trimmed value when it is an http(s) URL with a host."""
    if not value:
        return None

    candidate = value.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None

    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return candidate


@dataclass(frozen=True)
class RunningApp:
    """The application that owned focus when the clipboard changed."""

    name: Optional[str] = None
    bundle_identifier: Optional[str] = None
    pid: Optional[int] = None

    @property
    def identifier(self) -> Optional[str]:
        return self.bundle_identifier or self.name


class ClipboardSource(Protocol):
    def change_count(self) -> int: ...

    def text_payload(self) -> Optional[str]: ...

    def image_payload(self) -> Optional[Any]: ...

    def url_payload(self) -> Optional[str]: ...

    def write_text(self, text: str) -> bool: ...


class AppResolver(Protocol):
    def frontmost_application(self) -> Optional[RunningApp]: ...


def read_clipboard_image() -> Optional[Image.Image]:
    try:
        data = ImageGrab.grabclipboard()
    except Exception as e:
        logger.debug(f"Clipboard image read failed: {e}")
        return None
    if isinstance(data, Image.Image):
        return data
    return None


class MacPasteboard:
    """Clipboard source backed by ``NSPasteboard.generalPasteboard()``."""

    def __init__(self, pasteboard: Any = None):
        if pasteboard is None:
            from AppKit import NSPasteboard

            pasteboard = NSPasteboard.generalPasteboard()
        self.pasteboard = pasteboard

    def change_count(self) -> int:
        return int(self.pasteboard.changeCount())

    def text_payload(self) -> Optional[str]:
        text = self.pasteboard.stringForType_(PLAIN_TEXT_TYPE)
        return str(text) if text else None

    def image_payload(self) -> Optional[Image.Image]:
        return read_clipboard_image()

    def url_payload(self) -> Optional[str]:
        url = self.pasteboard.stringForType_(URL_TYPE)
        if url:
            return str(url).strip() or None
        return parse_web_url(self.text_payload())

    def write_text(self, text: str) -> bool:
        self.pasteboard.clearContents()
        return bool(self.pasteboard.setString_forType_(text, PLAIN_TEXT_TYPE))


class SystemClipboard:
    """Clipboard source backed by pyperclip (text) and Pillow (images).

    Neither library exposes a change counter, so one is derived: every call
    to ``change_count`` fingerprints the current payload and bumps the
    counter when the fingerprint moves. Copying identical content twice is
    therefore indistinguishable from no copy at all.
    """

    def __init__(self):
        self._count = 0
        self._fingerprint: Optional[str] = None

    def change_count(self) -> int:
        fingerprint = self._current_fingerprint()
        if fingerprint != self._fingerprint:
            if self._fingerprint is not None or fingerprint is not None:
                self._count += 1
            self._fingerprint = fingerprint
        return self._count

    def text_payload(self) -> Optional[str]:
        try:
            text = pyperclip.paste()
        except Exception as e:
            logger.debug(f"Clipboard read failed: {e}")
            return None
        return text or None

    def image_payload(self) -> Optional[Image.Image]:
        return read_clipboard_image()

    def url_payload(self) -> Optional[str]:
        return parse_web_url(self.text_payload())

    def write_text(self, text: str) -> bool:
        pyperclip.copy(text)
        return True

    def _current_fingerprint(self) -> Optional[str]:
        text = self.text_payload()
        if text is not None:
            return "text:" + hashlib.sha256(text.encode("utf-8")).hexdigest()

        image = self.image_payload()
        if image is not None:
            return "image:" + hashlib.sha256(image.tobytes()).hexdigest()

        return None


class MacAppResolver:
    """Frontmost application from ``NSWorkspace``."""

    def __init__(self, workspace: Any = None):
        if workspace is None:
            from AppKit import NSWorkspace

            workspace = NSWorkspace.sharedWorkspace()
        self.workspace = workspace

    def frontmost_application(self) -> Optional[RunningApp]:
        app = self.workspace.frontmostApplication()
        if app is None:
            return None

        name = app.localizedName()
        bundle_id = app.bundleIdentifier()
        pid = app.processIdentifier()
        return RunningApp(
            name=str(name) if name else None,
            bundle_identifier=str(bundle_id) if bundle_id else None,
            pid=int(pid) if pid is not None and pid >= 0 else None,
        )


class FrontmostAppResolver:
    """Best-effort lookup of the focused X11 window via ``xdotool``."""

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout

    def frontmost_application(self) -> Optional[RunningApp]:
        try:
            window_id = self._run(["xdotool", "getactivewindow"])
            if not window_id:
                return None

            name = self._run(["xdotool", "getwindowname", window_id])
            pid = self._run(["xdotool", "getwindowpid", window_id])
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Frontmost application lookup failed: {e}")
            return None

        return RunningApp(
            name=name,
            pid=int(pid) if pid and pid.isdigit() else None,
        )

    def _run(self, args) -> Optional[str]:
        result = subprocess.run(
            args, capture_output=True, text=True, timeout=self.timeout
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None


def default_clipboard() -> ClipboardSource:
    if platform.system() == "Darwin":
        return MacPasteboard()
    return SystemClipboard()


def default_app_resolver() -> AppResolver:
    if platform.system() == "Darwin":
        return MacAppResolver()
    return FrontmostAppResolver()
