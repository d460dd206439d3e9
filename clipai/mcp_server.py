#!/usr/bin/env python3
"""ClipAI MCP Server - clipboard capture with a deduplicated knowledge store."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent
from mcp.server.models import InitializationOptions
from mcp.server.lowlevel import NotificationOptions

from clipai.core.browser import BrowserURLExtractor
from clipai.core.config import ClipAIConfig, configure_logging
from clipai.core.errors import ClipNotFound, ClipStorageError
from clipai.core.ignore_list import DEFAULT_PASSWORD_MANAGERS, IgnoreList
from clipai.core.monitor import ClipboardMonitor
from clipai.core.storage import ClipStorage
from clipai.models.schemas import Clip, ClipContentType

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def clamp_limit(value: Any) -> int:
    """Coerce a tool ``limit`` argument into 1..MAX_LIMIT."""
    return max(1, min(MAX_LIMIT, int(value)))


def clip_summary(clip: Clip) -> Dict[str, Any]:
    """Clip as returned by list/search tools; long content is truncated."""
    data = clip.model_dump(mode="json")
    if len(clip.content) > PREVIEW_LENGTH:
        data["content"] = clip.content[:PREVIEW_LENGTH] + "..."
    return data


class ClipAIMCPServer:
    """MCP server exposing the knowledge store while the monitor captures clips."""

    def __init__(
        self,
        config: Optional[ClipAIConfig] = None,
        storage: Optional[ClipStorage] = None,
        monitor: Optional[ClipboardMonitor] = None,
    ):
        self.config = config or ClipAIConfig.from_env()
        self.storage = storage or ClipStorage(self.config.storage_dir)

        self.ignore_list = IgnoreList(
            self.config.ignored_apps, path=self.config.ignore_list_file
        )
        self.ignore_list.load()

        self.monitor = monitor or ClipboardMonitor(
            on_clip_captured=self.handle_captured_clip,
            browser_url_extractor=BrowserURLExtractor(
                enabled=self.config.browser_urls, timeout=self.config.url_timeout
            ),
            ignore_policy=self.ignore_list,
            url_timeout=self.config.url_timeout,
        )

        self.app = Server("clipai")
        self._register_handlers()

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.app.list_tools()
        async def list_tools() -> List[Tool]:
            return [
                Tool(
                    name="clip_list",
                    description="List captured clipboard entries, newest first",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "limit": {
                                "type": "integer",
                                "description": "Number of entries to return",
                                "default": 10,
                                "minimum": 1,
                                "maximum": 100,
                            }
                        },
                    },
                ),
                Tool(
                    name="clip_search",
                    description="Search clipboard history by content, then by source app",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "query": {
                                "type": "string",
                                "description": "Case-insensitive search text",
                            },
                            "limit": {
                                "type": "integer",
                                "description": "Maximum results to return",
                                "default": 10,
                                "minimum": 1,
                                "maximum": 100,
                            },
                        },
                        "required": ["query"],
                    },
                ),
                Tool(
                    name="clip_get",
                    description="Get the full clipboard entry for an ID",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "clip_id": {
                                "type": "string",
                                "description": "Unique clip identifier",
                            }
                        },
                        "required": ["clip_id"],
                    },
                ),
                Tool(
                    name="clip_remove",
                    description="Remove clipboard entry by ID",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "clip_id": {
                                "type": "string",
                                "description": "Unique clip identifier",
                            }
                        },
                        "required": ["clip_id"],
                    },
                ),
                Tool(
                    name="clip_clear",
                    description="Remove every clipboard entry",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="clip_stats",
                    description="Get clipboard knowledge statistics",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="clip_copy",
                    description="Copy a stored text entry back onto the clipboard",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "clip_id": {
                                "type": "string",
                                "description": "Unique clip identifier",
                            }
                        },
                        "required": ["clip_id"],
                    },
                ),
                Tool(
                    name="ignore_list",
                    description="List ignored applications and suggested password managers",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="ignore_add",
                    description="Stop capturing clipboard content from an application",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "identifier": {
                                "type": "string",
                                "description": "Bundle identifier (macOS) or application name",
                            }
                        },
                        "required": ["identifier"],
                    },
                ),
                Tool(
                    name="ignore_remove",
                    description="Resume capturing clipboard content from an application",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "identifier": {
                                "type": "string",
                                "description": "Bundle identifier (macOS) or application name",
                            }
                        },
                        "required": ["identifier"],
                    },
                ),
            ]

        @self.app.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            """Handle MCP tool calls with structured output."""
            try:
                result = await self._dispatch_tool_call(name, arguments or {})
                return [
                    TextContent(
                        type="text",
                        text=json.dumps(result, indent=2, ensure_ascii=False),
                    )
                ]
            except Exception as e:
                error_result = {"error": str(e), "tool": name, "arguments": arguments}
                return [
                    TextContent(type="text", text=json.dumps(error_result, indent=2))
                ]

    async def _dispatch_tool_call(
        self, name: str, arguments: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Dispatch tool calls to appropriate handlers."""
        handlers = {
            "clip_list": self._handle_clip_list,
            "clip_search": self._handle_clip_search,
            "clip_get": self._handle_clip_get,
            "clip_remove": self._handle_clip_remove,
            "clip_clear": self._handle_clip_clear,
            "clip_stats": self._handle_clip_stats,
            "clip_copy": self._handle_clip_copy,
            "ignore_list": self._handle_ignore_list,
            "ignore_add": self._handle_ignore_add,
            "ignore_remove": self._handle_ignore_remove,
        }

        handler = handlers.get(name)
        if not handler:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    async def handle_captured_clip(self, clip: Clip):
        """Capture callback: persist the clip, logging storage failures."""
        try:
            stored = await self.storage.save(clip)
        except ClipStorageError as e:
            logger.error(f"Failed to save clip: {e}")
            return
        logger.info(f"Saved clip: {stored.id}")

    async def _handle_clip_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        limit = clamp_limit(args.get("limit", DEFAULT_LIMIT))
        clips = await self.storage.list_recent(limit)

        return {
            "clips": [clip_summary(clip) for clip in clips],
            "count": len(clips),
            "limit": limit,
        }

    async def _handle_clip_search(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args["query"]
        limit = clamp_limit(args.get("limit", DEFAULT_LIMIT))
        clips = await self.storage.search(query, limit)

        return {
            "query": query,
            "results": [clip_summary(clip) for clip in clips],
            "count": len(clips),
        }

    async def _handle_clip_get(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        clip = await self.storage.get_clip(clip_id)
        if clip is None:
            return {"id": clip_id, "status": "not_found"}
        return clip.model_dump(mode="json")

    async def _handle_clip_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        try:
            await self.storage.delete(clip_id)
        except ClipNotFound:
            return {"id": clip_id, "status": "not_found"}
        return {"id": clip_id, "status": "removed"}

    async def _handle_clip_clear(self, args: Dict[str, Any]) -> Dict[str, Any]:
        await self.storage.clear_all()
        return {"status": "cleared"}

    async def _handle_clip_stats(self, args: Dict[str, Any]) -> Dict[str, Any]:
        stats = await self.storage.get_stats()
        stats["monitoring"] = self.monitor.is_running
        stats["ignored_apps"] = self.ignore_list.identifiers()
        return stats

    async def _handle_clip_copy(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        clip = await self.storage.get_clip(clip_id)
        if clip is None:
            return {"id": clip_id, "status": "not_found"}
        if clip.content_type is not ClipContentType.TEXT:
            return {"id": clip_id, "status": "unsupported", "content_type": clip.content_type.value}

        copied = await self.monitor.copy_to_clipboard(clip.content)
        return {"id": clip_id, "status": "copied" if copied else "failed"}

    async def _handle_ignore_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        ignored = self.ignore_list.identifiers()
        return {
            "ignored_apps": ignored,
            "suggestions": [i for i in DEFAULT_PASSWORD_MANAGERS if i not in ignored],
        }

    async def _handle_ignore_add(self, args: Dict[str, Any]) -> Dict[str, Any]:
        identifier = args["identifier"].strip()
        if not identifier:
            raise ValueError("identifier must not be empty")
        added = self.ignore_list.add(identifier)
        return {"identifier": identifier, "status": "added" if added else "already_ignored"}

    async def _handle_ignore_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        identifier = args["identifier"].strip()
        removed = self.ignore_list.remove(identifier)
        return {"identifier": identifier, "status": "removed" if removed else "not_ignored"}

    async def run(self):
        """Load the store, start capturing and serve MCP over stdio."""
        try:
            await self.storage.load_from_disk()
        except ClipStorageError as e:
            logger.error(f"Failed to load clips from disk: {e}")

        await self.monitor.start(self.config.poll_interval)
        logger.info("ClipAI is now monitoring clipboard")

        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.app.run(
                    read_stream,
                    write_stream,
                    InitializationOptions(
                        server_name="clipai",
                        server_version="1.0.0",
                        capabilities=self.app.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={},
                        ),
                    ),
                )
        finally:
            await self.monitor.stop()


async def async_main():
    """Main async entry point."""
    config = ClipAIConfig.from_env()
    configure_logging(config.log_level, config.log_file)
    server = ClipAIMCPServer(config=config)
    await server.run()


def main():
    """Synchronous entry point for console script."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("ClipAI MCP Server stopped")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise


if __name__ == "__main__":
    main()
