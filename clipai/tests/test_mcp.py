"""Tests for MCP server functionality."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from mcp import types

from clipai.core.config import ClipAIConfig
from clipai.core.errors import SaveFailed
from clipai.core.ignore_list import DEFAULT_PASSWORD_MANAGERS
from clipai.core.monitor import ClipboardMonitor
from clipai.core.storage import ClipStorage
from clipai.mcp_server import MAX_LIMIT, PREVIEW_LENGTH, ClipAIMCPServer
from clipai.models.schemas import Clip, ClipContentType, ClipMetadata

BASE_TIME = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def text_clip(content, source_app="Safari", minutes=0):
    return Clip(
        content=content,
        content_type=ClipContentType.TEXT,
        source_app=source_app,
        metadata=ClipMetadata.for_text(len(content)),
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


class TestClipAIMCPServer:
    """Test the MCP tool handlers against a real store."""

    @pytest.fixture
    async def server(self, tmp_path):
        config = ClipAIConfig(storage_dir=str(tmp_path), ignored_apps=["com.bitwarden.desktop"])
        storage = ClipStorage(config.storage_dir)
        await storage.load_from_disk()

        monitor = Mock(spec=ClipboardMonitor)
        monitor.is_running = True
        monitor.copy_to_clipboard = AsyncMock(return_value=True)

        return ClipAIMCPServer(config=config, storage=storage, monitor=monitor)

    @pytest.mark.asyncio
    async def test_captured_clip_is_saved(self, server):
        await server.handle_captured_clip(text_clip("Hello"))
        await server.handle_captured_clip(text_clip("Hello", minutes=1))

        clips = await server.storage.load_all()
        assert len(clips) == 1
        assert clips[0].timestamp == BASE_TIME + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_capture_callback_swallows_storage_errors(self, server):
        server.storage.save = AsyncMock(side_effect=SaveFailed("disk full"))

        await server.handle_captured_clip(text_clip("Hello"))

        server.storage.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_clip_list_truncates_long_content(self, server):
        long_text = "x" * (PREVIEW_LENGTH + 50)
        await server.storage.save(text_clip("short", minutes=0))
        await server.storage.save(text_clip(long_text, minutes=1))

        result = await server._dispatch_tool_call("clip_list", {"limit": 5})

        assert result["count"] == 2
        assert result["clips"][0]["content"] == "x" * PREVIEW_LENGTH + "..."
        assert result["clips"][1]["content"] == "short"

    @pytest.mark.asyncio
    async def test_clip_search(self, server):
        await server.storage.save(text_clip("python tips", "Notes"))
        await server.storage.save(text_clip("unrelated", "Terminal", minutes=1))

        result = await server._dispatch_tool_call("clip_search", {"query": "PYTHON"})

        assert result["count"] == 1
        assert result["results"][0]["content"] == "python tips"

    @pytest.mark.asyncio
    async def test_clip_get_and_remove(self, server):
        clip = await server.storage.save(text_clip("Hello"))

        fetched = await server._dispatch_tool_call("clip_get", {"clip_id": clip.id})
        assert fetched["id"] == clip.id
        assert fetched["metadata"] == {"text_length": 5}

        removed = await server._dispatch_tool_call("clip_remove", {"clip_id": clip.id})
        assert removed == {"id": clip.id, "status": "removed"}

        missing = await server._dispatch_tool_call("clip_remove", {"clip_id": clip.id})
        assert missing["status"] == "not_found"

        missing = await server._dispatch_tool_call("clip_get", {"clip_id": clip.id})
        assert missing["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_clip_clear(self, server):
        await server.storage.save(text_clip("a"))
        await server.storage.save(text_clip("b"))

        result = await server._dispatch_tool_call("clip_clear", {})

        assert result == {"status": "cleared"}
        assert await server.storage.load_all() == []

    @pytest.mark.asyncio
    async def test_clip_stats(self, server):
        await server.storage.save(text_clip("a"))

        stats = await server._dispatch_tool_call("clip_stats", {})

        assert stats["total_clips"] == 1
        assert stats["monitoring"] is True
        assert stats["ignored_apps"] == ["com.bitwarden.desktop"]

        # Tool output must be JSON serialisable
        json.dumps(stats)

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        with pytest.raises(ValueError, match="Unknown tool"):
            await server._dispatch_tool_call("clip_add", {})

    @pytest.mark.asyncio
    async def test_limits_are_clamped(self, server):
        for i in range(3):
            await server.storage.save(text_clip(f"clip {i}", minutes=i))

        result = await server._dispatch_tool_call("clip_list", {"limit": -1})
        assert result["limit"] == 1
        assert [c["content"] for c in result["clips"]] == ["clip 2"]

        result = await server._dispatch_tool_call("clip_list", {"limit": 10_000})
        assert result["limit"] == MAX_LIMIT
        assert result["count"] == 3

        result = await server._dispatch_tool_call("clip_search", {"query": "clip", "limit": 0})
        assert result["count"] == 1

    @pytest.mark.asyncio
    async def test_clip_copy(self, server):
        clip = await server.storage.save(text_clip("paste me"))

        result = await server._dispatch_tool_call("clip_copy", {"clip_id": clip.id})

        assert result == {"id": clip.id, "status": "copied"}
        server.monitor.copy_to_clipboard.assert_awaited_once_with("paste me")

        missing = await server._dispatch_tool_call("clip_copy", {"clip_id": "nonexistent"})
        assert missing["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_clip_copy_rejects_images(self, server):
        image = await server.storage.save(
            Clip(
                content="aGVsbG8=",
                content_type=ClipContentType.IMAGE,
                source_app="Preview",
                metadata=ClipMetadata.for_image(4, 3),
            )
        )

        result = await server._dispatch_tool_call("clip_copy", {"clip_id": image.id})

        assert result["status"] == "unsupported"
        server.monitor.copy_to_clipboard.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ignore_tools_update_shared_list(self, server):
        listing = await server._dispatch_tool_call("ignore_list", {})
        assert listing["ignored_apps"] == ["com.bitwarden.desktop"]
        assert "com.bitwarden.desktop" not in listing["suggestions"]
        assert "com.1password.1password" in listing["suggestions"]
        assert len(listing["suggestions"]) == len(DEFAULT_PASSWORD_MANAGERS) - 1

        added = await server._dispatch_tool_call("ignore_add", {"identifier": " com.apple.Terminal "})
        assert added == {"identifier": "com.apple.Terminal", "status": "added"}
        assert server.ignore_list.is_ignored("com.apple.Terminal")

        again = await server._dispatch_tool_call("ignore_add", {"identifier": "com.apple.Terminal"})
        assert again["status"] == "already_ignored"

        with open(server.config.ignore_list_file, "r", encoding="utf-8") as f:
            assert "com.apple.Terminal" in json.load(f)

        removed = await server._dispatch_tool_call(
            "ignore_remove", {"identifier": "com.apple.Terminal"}
        )
        assert removed["status"] == "removed"
        assert not server.ignore_list.is_ignored("com.apple.Terminal")

        missing = await server._dispatch_tool_call("ignore_remove", {"identifier": "nope"})
        assert missing["status"] == "not_ignored"

        with pytest.raises(ValueError):
            await server._dispatch_tool_call("ignore_add", {"identifier": "  "})

    @pytest.mark.asyncio
    async def test_tools_are_listed_over_protocol(self, server):
        handler = server.app.request_handlers[types.ListToolsRequest]

        result = await handler(types.ListToolsRequest(method="tools/list"))

        names = {tool.name for tool in result.root.tools}
        assert names == {
            "clip_list",
            "clip_search",
            "clip_get",
            "clip_remove",
            "clip_clear",
            "clip_stats",
            "clip_copy",
            "ignore_list",
            "ignore_add",
            "ignore_remove",
        }

    @pytest.mark.asyncio
    async def test_tool_call_over_protocol(self, server):
        await server.storage.save(text_clip("a"))
        handler = server.app.request_handlers[types.CallToolRequest]

        result = await handler(
            types.CallToolRequest(
                method="tools/call",
                params=types.CallToolRequestParams(name="clip_stats", arguments={}),
            )
        )

        [content] = result.root.content
        assert json.loads(content.text)["total_clips"] == 1
