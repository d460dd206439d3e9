"""Knowledge store: deduplicated clips mirrored to a single knowledge.json file."""

import asyncio
import json
import logging
import os
from collections import Counter
from typing import Any, Dict, List, Optional

from clipai.core.config import DEFAULT_STORAGE_DIR
from clipai.core.errors import ClipNotFound, DeleteFailed, LoadFailed, SaveFailed
from clipai.models.schemas import Clip, KnowledgeFile

KNOWLEDGE_FILE_NAME = "knowledge.json"


def _take(clips: List[Clip], limit: Optional[int]) -> List[Clip]:
    """First ``limit`` clips. ``None`` means all, negative limits mean none."""
    if limit is None:
        return clips
    return clips[: max(limit, 0)]


class ClipStorage:
    """JSON document storage for clips, upserted by (source_app, content).

    The in-memory list is authoritative; every mutation rewrites the whole
    document. Mutations are serialised by a lock that is held across the
    write so no caller ever observes a change that failed to persist.
    """

    def __init__(
        self,
        storage_dir: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._storage_dir = os.path.expanduser(storage_dir or DEFAULT_STORAGE_DIR)
        self.logger = logger or logging.getLogger(__name__)

        self._clips: List[Clip] = []
        self._loaded = False
        self._lock = asyncio.Lock()

        self.logger.debug(f"ClipStorage initialized with directory: {self._storage_dir}")

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    @property
    def knowledge_file(self) -> str:
        return os.path.join(self._storage_dir, KNOWLEDGE_FILE_NAME)

    async def load_from_disk(self):
        """Load knowledge.json into memory, starting empty when it does not exist."""
        async with self._lock:
            await self._load()

    async def save(self, clip: Clip) -> Clip:
        """Insert a clip, or refresh the timestamp of the clip sharing its key."""
        async with self._lock:
            await self._ensure_loaded()
            previous = list(self._clips)

            index = self._index_of_key(clip.source_app, clip.content)
            if index is not None:
                existing = self._clips[index]
                self.logger.debug(
                    f"Found existing clip with same key, updating timestamp for clip: {existing.id}"
                )
                stored = existing.with_updated_timestamp(clip.timestamp)
                self._clips[index] = stored
            else:
                stored = clip
                self._clips.append(clip)

            try:
                await self._persist()
            except SaveFailed:
                self._clips = previous
                raise

            self.logger.debug(f"Saved clip {stored.id}")
            return stored

    async def load_all(self) -> List[Clip]:
        """All clips, newest first."""
        async with self._lock:
            return sorted(self._clips, key=lambda c: c.timestamp, reverse=True)

    async def list_recent(self, limit: Optional[int] = 10) -> List[Clip]:
        clips = await self.load_all()
        return _take(clips, limit)

    async def find_clip(self, source_app: Optional[str], content: str) -> Optional[Clip]:
        """Point lookup by natural key."""
        async with self._lock:
            index = self._index_of_key(source_app, content)
            return self._clips[index] if index is not None else None

    async def get_clip(self, clip_id: str) -> Optional[Clip]:
        async with self._lock:
            for clip in self._clips:
                if clip.id == clip_id:
                    return clip
            return None

    async def search(self, query: str, limit: Optional[int] = None) -> List[Clip]:
        """Case-insensitive search: content matches first, then source app matches."""
        clips = await self.load_all()
        needle = query.strip().lower()
        if not needle:
            return _take(clips, limit)

        content_matches = [c for c in clips if needle in c.content.lower()]
        app_matches = [
            c
            for c in clips
            if needle not in c.content.lower()
            and c.source_app is not None
            and needle in c.source_app.lower()
        ]
        results = content_matches + app_matches
        return _take(results, limit)

    async def delete(self, clip_id: str):
        """Remove a clip by ID."""
        async with self._lock:
            await self._ensure_loaded()

            index = next(
                (i for i, clip in enumerate(self._clips) if clip.id == clip_id), None
            )
            if index is None:
                self.logger.warning(f"Clip not found: {clip_id}")
                raise ClipNotFound(clip_id)

            previous = list(self._clips)
            del self._clips[index]

            try:
                await self._persist()
            except SaveFailed as e:
                self._clips = previous
                raise DeleteFailed(e.reason) from e

            self.logger.debug(f"Deleted clip {clip_id}")

    async def clear_all(self):
        """Remove every clip from memory and disk."""
        async with self._lock:
            previous = self._clips
            self._clips = []

            try:
                await self._persist()
            except SaveFailed:
                self._clips = previous
                raise

            self._loaded = True
            self.logger.info("Cleared all clips from storage")

    async def get_stats(self) -> Dict[str, Any]:
        """Get statistics about stored clips."""
        clips = await self.load_all()

        if not clips:
            return {
                "total_clips": 0,
                "text_clips": 0,
                "image_clips": 0,
                "top_sources": [],
                "storage_path": self.knowledge_file,
            }

        type_counts = Counter(clip.content_type.value for clip in clips)
        source_counts = Counter(clip.source_app for clip in clips if clip.source_app)

        return {
            "total_clips": len(clips),
            "text_clips": type_counts.get("text", 0),
            "image_clips": type_counts.get("image", 0),
            "top_sources": source_counts.most_common(10),
            "storage_path": self.knowledge_file,
            "oldest_clip": clips[-1].timestamp.isoformat(),
            "newest_clip": clips[0].timestamp.isoformat(),
        }

    # Internal helpers; callers hold self._lock.

    def _index_of_key(self, source_app: Optional[str], content: str) -> Optional[int]:
        for i, clip in enumerate(self._clips):
            if clip.source_app == source_app and clip.content == content:
                return i
        return None

    async def _ensure_loaded(self):
        if not self._loaded:
            await self._load()

    async def _load(self):
        try:
            self._ensure_directory()
        except OSError as e:
            self._clips = []
            self.logger.error(f"Failed to create storage directory: {e}")
            raise LoadFailed(str(e)) from e

        if not os.path.exists(self.knowledge_file):
            self.logger.info("No existing knowledge.json file, starting with empty clips")
            self._clips = []
            self._loaded = True
            return

        try:
            raw = await asyncio.to_thread(self._read_document)
            document = KnowledgeFile.model_validate_json(raw)
        except (OSError, ValueError) as e:
            self._clips = []
            self.logger.error(f"Failed to load knowledge.json: {e}")
            raise LoadFailed(str(e)) from e

        self._clips = list(document.clips)
        self._loaded = True
        self.logger.info(f"Loaded {len(self._clips)} clips from knowledge.json")

    async def _persist(self):
        try:
            document = KnowledgeFile(clips=self._clips).model_dump(mode="json")
            payload = json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False)
            await asyncio.to_thread(self._write_document, payload)
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to save knowledge.json: {e}")
            raise SaveFailed(str(e)) from e

        self.logger.debug(f"Saved {len(self._clips)} clips to knowledge.json")

    def _ensure_directory(self):
        os.makedirs(self._storage_dir, exist_ok=True)

    def _read_document(self) -> bytes:
        with open(self.knowledge_file, "rb") as f:
            return f.read()

    def _write_document(self, payload: str):
        self._ensure_directory()
        tmp_path = f"{self.knowledge_file}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.write("\n")
        os.replace(tmp_path, self.knowledge_file)
