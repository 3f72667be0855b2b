"""JSON-RPC 2.0 tool server (Model Context Protocol, 2024-11-05 revision).

Requests arrive as raw text from the transport, get validated and routed
here, and every reply is serialized and handed back through ``sender``.
Tool bodies run on the shared :class:`SerialExecutor`, so ``tools/call``
replies are sent from that thread once the body returns.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Optional, Union

from .executor import SerialExecutor
from .registry import MissingArgumentError, Tool, ToolRegistry

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
NOTIFICATION_PREFIX = "notifications"
MAX_PAYLOAD_SIZE = 8000
# headroom kept free below the ceiling while a page fills up
PAYLOAD_RESERVE = 30


def _encode(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _cursor_size(name: str) -> int:
    return len(("," + _encode("nextCursor") + ":" + _encode(name)).encode("utf-8"))


def _is_number(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int) and not isinstance(value, bool)


class McpServer:
    def __init__(
        self,
        registry: ToolRegistry,
        executor: SerialExecutor,
        sender: Callable[[str], None],
        server_name: str = "deskclock",
        server_version: str = "0.1.0",
        camera=None,
        max_payload_size: int = MAX_PAYLOAD_SIZE,
    ):
        self.registry = registry
        self.executor = executor
        self.sender = sender
        self.server_name = server_name
        self.server_version = server_version
        self.camera = camera
        self.max_payload_size = max_payload_size

    def handle_message(self, message: Union[str, bytes]) -> None:
        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError:
                logger.error("Failed to decode MCP message (%s bytes)", len(message))
                return
        try:
            payload = json.loads(message)
        except ValueError:
            logger.error("Failed to parse MCP message: %s", message)
            return
        if not isinstance(payload, dict):
            logger.error("MCP message is not an object: %s", message)
            return
        self.handle_payload(payload)

    def handle_payload(self, payload: dict) -> None:
        version = payload.get("jsonrpc")
        if version != JSONRPC_VERSION:
            logger.error("Invalid JSONRPC version: %s", version)
            return

        method = payload.get("method")
        if not isinstance(method, str):
            logger.error("Missing method")
            return
        if method.startswith(NOTIFICATION_PREFIX):
            return

        params = payload.get("params")
        if params is not None and not isinstance(params, dict):
            logger.error("Invalid params for method: %s", method)
            return

        request_id = payload.get("id")
        if not _is_number(request_id):
            logger.error("Invalid id for method: %s", method)
            return
        if isinstance(request_id, float) and request_id.is_integer():
            request_id = int(request_id)

        if method == "initialize":
            self._initialize(request_id, params)
        elif method == "tools/list":
            cursor = ""
            include_restricted = False
            if params is not None:
                if isinstance(params.get("cursor"), str):
                    cursor = params["cursor"]
                if isinstance(params.get("withUserTools"), bool):
                    include_restricted = params["withUserTools"]
            self.list_tools(request_id, cursor, include_restricted)
        elif method == "tools/call":
            if params is None:
                logger.error("tools/call: Missing params")
                self.reply_error(request_id, "Missing params")
                return
            tool_name = params.get("name")
            if not isinstance(tool_name, str):
                logger.error("tools/call: Missing name")
                self.reply_error(request_id, "Missing name")
                return
            arguments = params.get("arguments")
            if arguments is not None and not isinstance(arguments, dict):
                logger.error("tools/call: Invalid arguments")
                self.reply_error(request_id, "Invalid arguments")
                return
            self.call_tool(request_id, tool_name, arguments)
        else:
            logger.error("Method not implemented: %s", method)
            self.reply_error(request_id, f"method not implemented: {method}")

    def _initialize(self, request_id, params: Optional[dict]) -> None:
        if params is not None and isinstance(params.get("capabilities"), dict):
            self._parse_capabilities(params["capabilities"])
        self.reply_result(
            request_id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.server_name, "version": self.server_version},
            },
        )

    def _parse_capabilities(self, capabilities: dict) -> None:
        vision = capabilities.get("vision")
        if not isinstance(vision, dict):
            return
        url = vision.get("url")
        token = vision.get("token")
        if isinstance(url, str) and self.camera is not None:
            self.camera.set_explain_url(url, token if isinstance(token, str) else "")
            logger.info("Vision explain url set to %s", url)

    def list_tools(self, request_id, cursor: str = "", include_restricted: bool = False) -> None:
        # size counts '{"tools":[' plus each entry with its trailing ',' or ']'
        size = len('{"tools":[')
        tools = []
        entries = []
        next_cursor = ""
        for tool in self.registry.iter_tools(cursor, include_restricted):
            entry = tool.to_dict()
            entry_size = len(_encode(entry).encode("utf-8")) + 1
            if size + entry_size + PAYLOAD_RESERVE > self.max_payload_size:
                next_cursor = tool.name
                break
            tools.append(entry)
            entries.append((tool.name, entry_size))
            size += entry_size

        # a long cursor name may not fit behind the page; move tools to the next page until it does
        while next_cursor and tools and size + _cursor_size(next_cursor) + 1 > self.max_payload_size:
            tools.pop()
            next_cursor, entry_size = entries.pop()
            size -= entry_size

        if next_cursor and not tools:
            logger.error("tools/list: Failed to add tool %s because of payload size limit", next_cursor)
            self.reply_error(request_id, f"Failed to add tool {next_cursor} because of payload size limit")
            return

        result: dict = {"tools": tools}
        if next_cursor:
            result["nextCursor"] = next_cursor
        self.reply_result(request_id, result)

    def call_tool(self, request_id, tool_name: str, arguments: Optional[dict]) -> None:
        tool = self.registry.lookup(tool_name)
        if tool is None:
            logger.error("tools/call: Unknown tool: %s", tool_name)
            self.reply_error(request_id, f"Unknown tool: {tool_name}")
            return
        try:
            bound = tool.bind(arguments)
        except MissingArgumentError as exc:
            logger.error("tools/call: %s", exc)
            self.reply_error(request_id, str(exc))
            return
        self.executor.schedule(lambda: self._run_tool(request_id, tool, bound))

    def _run_tool(self, request_id, tool: Tool, arguments: dict) -> None:
        result = tool.call(arguments)
        if result.ok:
            self.reply_result(request_id, result.to_content())
        else:
            self.reply_error(request_id, result.error)

    def reply_result(self, request_id, result: Any) -> None:
        self._send({"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result})

    def reply_error(self, request_id, message: str) -> None:
        self._send({"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": {"message": message}})

    def _send(self, payload: dict) -> None:
        try:
            self.sender(_encode(payload))
        except Exception:
            logger.error("Failed to send MCP reply for id %s", payload.get("id"), exc_info=True)
