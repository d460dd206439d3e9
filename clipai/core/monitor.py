"""Clipboard change detection and clip capture."""

import asyncio
import base64
import io
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from clipai.core.browser import BrowserURLExtractor
from clipai.core.ignore_list import IgnorePolicy
from clipai.core.sources import (
    AppResolver,
    ClipboardSource,
    RunningApp,
    default_app_resolver,
    default_clipboard,
)
from clipai.models.schemas import Clip, ClipContentType, ClipMetadata

DEDUPLICATION_WINDOW = 5.0
DEFAULT_INTERVAL = 0.5
READ_TIMEOUT = 2.0

ClipCallback = Callable[[Clip], Awaitable[None]]


class ClipboardMonitor:
    """Polls a clipboard source and hands new clips to an async callback.

    A tick compares the source's change counter with the last one seen and
    only reads the clipboard when it moved. Identical content captured again
    within the deduplication window is dropped. Nothing raised while reading
    the clipboard or running the callback escapes ``check_for_changes``.

    Source reads run in worker threads and are bounded by ``read_timeout`` so
    a slow pasteboard or window lookup never stalls the event loop.
    """

    def __init__(
        self,
        on_clip_captured: ClipCallback,
        clipboard: Optional[ClipboardSource] = None,
        app_resolver: Optional[AppResolver] = None,
        browser_url_extractor: Optional[BrowserURLExtractor] = None,
        ignore_policy: Optional[IgnorePolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
        deduplication_window: float = DEDUPLICATION_WINDOW,
        url_timeout: float = 1.0,
        read_timeout: float = READ_TIMEOUT,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.on_clip_captured = on_clip_captured
        self.clipboard = clipboard if clipboard is not None else default_clipboard()
        self.app_resolver = app_resolver if app_resolver is not None else default_app_resolver()
        self.browser_url_extractor = browser_url_extractor
        self.ignore_policy = ignore_policy
        self.clock = clock
        self.deduplication_window = deduplication_window
        self.url_timeout = url_timeout
        self.read_timeout = read_timeout

        self._change_count = self.clipboard.change_count()
        self._last_captured_content: Optional[str] = None
        self._last_capture_time: Optional[float] = None
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        self._has_url_permission = self._check_url_permission()
        self.logger.debug(
            f"ClipboardMonitor initialized with changeCount {self._change_count}, "
            f"browser URL permission: {self._has_url_permission}"
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def change_count(self) -> int:
        return self._change_count

    async def start(self, interval: float = DEFAULT_INTERVAL):
        """Start polling every ``interval`` seconds. No-op when already running."""
        if self._task is not None:
            self.logger.debug("Already monitoring, skipping start")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(interval, self._stop_event))
        self.logger.info(f"Starting clipboard monitoring with interval: {interval}s")

    async def stop(self):
        """Stop polling. A check already in progress is allowed to finish."""
        if self._task is None:
            self.logger.debug("Not monitoring, skipping stop")
            return

        task, self._task = self._task, None
        self._stop_event.set()
        if task is not asyncio.current_task():
            await task
        self.logger.info("Stopped clipboard monitoring")

    async def check_for_changes(self):
        """Run one detection tick."""
        async with self._lock:
            try:
                current = await self._read(self.clipboard.change_count)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Clipboard change count read timed out after {self.read_timeout}s"
                )
                return
            except Exception as e:
                self.logger.warning(f"Failed to read clipboard change count: {e}")
                return

            if current == self._change_count:
                return

            self.logger.debug(f"Change detected: {self._change_count} -> {current}")
            self._change_count = current

            try:
                clip = await self._capture_clip()
            except Exception as e:
                self.logger.warning(f"Clipboard capture failed: {e}")
                return

            if clip is None:
                return

            if self._is_duplicate(clip):
                self.logger.debug("Skipped duplicate clip within deduplication window")
                return

            self._last_captured_content = clip.content
            self._last_capture_time = self.clock()
            self.logger.debug(f"Captured new clip: {clip.id} ({clip.content_type.value})")

            try:
                await self.on_clip_captured(clip)
            except Exception as e:
                self.logger.error(f"Clip callback failed for {clip.id}: {e}")

    async def copy_to_clipboard(self, text: str) -> bool:
        """Write ``text`` to the clipboard without capturing it back.

        The change counter baseline is advanced past our own write, so the
        next tick only reacts to copies made after this one.
        """
        async with self._lock:
            written = await self._read(self.clipboard.write_text, text)
            self._change_count = await self._read(self.clipboard.change_count)
            self.logger.debug(f"Wrote clipboard text, changeCount now {self._change_count}")
            return bool(written)

    async def _read(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self.read_timeout
        )

    async def _run(self, interval: float, stop_event: asyncio.Event):
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.check_for_changes()

    async def _capture_clip(self) -> Optional[Clip]:
        text = await self._read(self.clipboard.text_payload)
        if text is not None:
            app = await self._frontmost_app()
            if self._is_ignored(app):
                return None
            return Clip(
                content=text,
                content_type=ClipContentType.TEXT,
                source_app=app.name if app else None,
                source_url=await self._resolve_url(app),
                metadata=ClipMetadata.for_text(len(text)),
            )

        image = await self._read(self.clipboard.image_payload)
        if image is not None:
            app = await self._frontmost_app()
            if self._is_ignored(app):
                return None
            width, height = image.size
            return Clip(
                content=self._image_to_base64(image),
                content_type=ClipContentType.IMAGE,
                source_app=app.name if app else None,
                metadata=ClipMetadata.for_image(int(width), int(height)),
            )

        self.logger.debug("No supported content type found in clipboard")
        return None

    async def _frontmost_app(self) -> Optional[RunningApp]:
        try:
            return await self._read(self.app_resolver.frontmost_application)
        except Exception as e:
            self.logger.debug(f"Could not resolve frontmost application: {e}")
            return None

    def _is_ignored(self, app: Optional[RunningApp]) -> bool:
        policy = self.ignore_policy
        if policy is None or app is None:
            return False
        if policy.is_ignored(app.identifier):
            self.logger.debug(f"Skipping clipboard content from ignored app: {app.identifier}")
            return True
        return False

    async def _resolve_url(self, app: Optional[RunningApp]) -> Optional[str]:
        try:
            url = await self._read(self.clipboard.url_payload)
        except Exception as e:
            self.logger.debug(f"Clipboard URL read failed: {e}")
            url = None
        if url:
            return url

        extractor = self.browser_url_extractor
        if extractor is None or app is None or not self._has_url_permission:
            return None
        if not (
            extractor.is_supported_browser(app.bundle_identifier)
            or extractor.is_supported_browser(app.name)
        ):
            return None

        try:
            url = await asyncio.wait_for(
                asyncio.to_thread(extractor.extract_url, app), timeout=self.url_timeout
            )
        except Exception as e:
            self.logger.debug(f"Browser URL extraction failed: {e}")
            return None

        if url:
            self.logger.debug(f"Extracted browser URL: {url}")
        return url

    def _check_url_permission(self) -> bool:
        if self.browser_url_extractor is None:
            return False
        try:
            return bool(self.browser_url_extractor.permission_granted())
        except Exception as e:
            self.logger.debug(f"Browser URL permission check failed: {e}")
            return False

    def _is_duplicate(self, clip: Clip) -> bool:
        if self._last_captured_content is None or self._last_capture_time is None:
            return False
        elapsed = self.clock() - self._last_capture_time
        return clip.content == self._last_captured_content and elapsed < self.deduplication_window

    def _image_to_base64(self, image: Any) -> str:
        try:
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
        except Exception as e:
            self.logger.warning(f"Failed to convert image to PNG data: {e}")
            return ""
        return base64.b64encode(buffer.getvalue()).decode("ascii")
