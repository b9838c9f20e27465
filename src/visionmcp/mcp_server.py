"""
MCP (Model Context Protocol) server for visionmcp.

Exposes image analysis backed by OpenRouter vision models as MCP tools that
any MCP-compatible client (Claude Desktop, LM Studio, Cursor, etc.) can use:

  analyze_image                  general description / custom prompt
  analyze_webpage_screenshot     layout, content and accessibility review
  analyze_mobile_app_screenshot  platform conventions and UX heuristics

Protocol: JSON-RPC 2.0 over stdio (one JSON object per line).  Logs go to
stderr so they never corrupt the protocol stream.

Usage
-----
Run via the CLI:
    OPENROUTER_API_KEY=... visionmcp

Client mcpServers entry
-----------------------
{
  "mcpServers": {
    "visionmcp": {
      "command": "visionmcp",
      "args": [],
      "env": {"OPENROUTER_API_KEY": "sk-or-..."}
    }
  }
}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Callable, Coroutine

from .config import AppConfig, load_config, setup_logging
from .images import ImageNormalizer
from .openrouter import VisionClient
from .tools import TOOL_SCHEMAS, ToolDispatcher

log = logging.getLogger(__name__)

SERVER_NAME = "visionmcp"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------

def _ok(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _write(obj: dict) -> None:
    sys.stdout.write(json.dumps(obj) + "\n")
    sys.stdout.flush()


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

class VisionMCPServer:
    def __init__(
        self,
        dispatcher: ToolDispatcher,
        *,
        write: Callable[[dict], None] | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self._write = write or _write
        self._tasks: set[asyncio.Task] = set()

    async def handle(self, line: str) -> None:
        try:
            req = json.loads(line)
        except json.JSONDecodeError:
            self._write(_err(None, -32700, "Parse error"))
            return
        if not isinstance(req, dict):
            self._write(_err(None, -32600, "Invalid Request"))
            return

        req_id = req.get("id")
        method = req.get("method", "")
        params = req.get("params") or {}

        try:
            await self._dispatch(req_id, method, params)
        except Exception as exc:  # noqa: BLE001
            log.error("Request %s failed: %s", method, exc, exc_info=True)
            if req_id is not None:
                self._write(_err(req_id, -32603, f"Internal error: {exc}"))

    async def _dispatch(self, req_id: Any, method: str, params: dict) -> None:
        if method == "initialize":
            client_ver = params.get("protocolVersion", PROTOCOL_VERSIONS[0])
            agreed_ver = client_ver if client_ver in PROTOCOL_VERSIONS else PROTOCOL_VERSIONS[0]
            self._write(_ok(req_id, {
                "protocolVersion": agreed_ver,
                "capabilities": {"tools": {}},
                "serverInfo": {
                    "name": SERVER_NAME,
                    "version": SERVER_VERSION,
                },
            }))

        elif method in ("notifications/initialized", "initialized"):
            # Notification, no response
            pass

        elif method == "tools/list":
            self._write(_ok(req_id, {"tools": TOOL_SCHEMAS}))

        elif method == "tools/call":
            tool_name = params.get("name")
            if not tool_name or not isinstance(tool_name, str):
                if req_id is not None:
                    self._write(_err(req_id, -32602, "Invalid params: tool name is required"))
                return
            response = await self.dispatcher.call(tool_name, params.get("arguments"))
            if req_id is not None:
                self._write(_ok(req_id, response.to_mcp()))

        elif method == "ping":
            self._write(_ok(req_id, {}))

        else:
            if req_id is not None:
                self._write(_err(req_id, -32601, f"Method not found: {method}"))

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run *coro* in the background, keeping a reference until it finishes."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def serve(self, reader: asyncio.StreamReader) -> None:
        """Read requests until EOF; every line is handled as its own task."""
        while True:
            try:
                line_bytes = await reader.readline()
            except (ValueError, asyncio.LimitOverrunError) as exc:
                # readline has already discarded the oversized chunk
                log.error("Request line rejected: %s", exc)
                self._write(_err(None, -32600, "Request too large"))
                continue
            except ConnectionError as exc:
                log.error("stdin read failed: %s", exc)
                break
            if not line_bytes:
                break
            line = line_bytes.decode(errors="replace").strip()
            if line:
                self.spawn(self.handle(line))
        await self.drain()


async def run_startup_checks(client: VisionClient, model: str) -> None:
    """Log upstream reachability and model availability; never blocks serving."""
    log.info("Testing OpenRouter API connection...")
    if await client.test_connection():
        log.info("OpenRouter API connection successful")
    else:
        log.error("Failed to connect to OpenRouter API - tools may not work")
    if await client.validate_model(model):
        log.info("Model validation successful: %s", model)
    else:
        log.warning("Model validation failed: %s - tools may not work as expected", model)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _stdin_reader() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    # 64 MiB line limit: base64 payloads arrive inline.
    reader = asyncio.StreamReader(limit=64 * 1024 * 1024)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def _run(config: AppConfig) -> None:
    normalizer = ImageNormalizer()
    client = VisionClient(config.api_key, config.model, config.base_url)
    dispatcher = ToolDispatcher(normalizer, client, max_image_size=config.max_image_size)
    server = VisionMCPServer(dispatcher)
    try:
        reader = await _stdin_reader()
        log.info("visionmcp MCP server started")
        log.info("Using model: %s", config.model)
        log.info("Max image size: %d bytes", config.max_image_size)
        log.info("Log level: %s", config.log_level)
        checks = asyncio.create_task(run_startup_checks(client, config.model))
        try:
            await server.serve(reader)
        finally:
            checks.cancel()
            await asyncio.gather(checks, return_exceptions=True)
    finally:
        await client.aclose()
        await normalizer.aclose()
        log.info("visionmcp MCP server stopped")


def main(config: AppConfig | None = None) -> None:
    config = config or load_config()
    setup_logging(config.log_level)
    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        log.info("Received interrupt, shutting down")
