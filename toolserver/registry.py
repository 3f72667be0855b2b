from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

_NO_DEFAULT = object()


class ParameterType(str, Enum):
    BOOLEAN = "boolean"
    INTEGER = "integer"
    STRING = "string"


class MissingArgumentError(ValueError):
    def __init__(self, name: str):
        super().__init__(f"missing valid argument: {name}")
        self.name = name


@dataclass(frozen=True)
class Parameter:
    """A typed tool parameter. Without a default it must be supplied on every call.

    ``minimum``/``maximum`` are advertised in the schema only; tool bodies
    enforce ranges themselves if they care.
    """

    name: str
    type: ParameterType
    default: Any = _NO_DEFAULT
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT

    def extract(self, arguments: Optional[dict]) -> Tuple[bool, Any]:
        if not isinstance(arguments, dict) or self.name not in arguments:
            return False, None
        value = arguments[self.name]
        if self.type == ParameterType.BOOLEAN and isinstance(value, bool):
            return True, value
        if self.type == ParameterType.INTEGER and isinstance(value, (int, float)) and not isinstance(value, bool):
            # 1e400 and NaN decode to non-finite floats that int() refuses
            if isinstance(value, float) and not math.isfinite(value):
                return False, None
            return True, int(value)
        if self.type == ParameterType.STRING and isinstance(value, str):
            return True, value
        return False, None

    def to_schema(self) -> dict:
        schema: Dict[str, Any] = {"type": self.type.value}
        if self.has_default:
            schema["default"] = self.default
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        return schema


@dataclass
class ToolResult:
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "ToolResult":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(error=message)

    def text(self) -> str:
        value = self.value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
        if value is None:
            return ""
        return str(value)

    def to_content(self) -> dict:
        return {"content": [{"type": "text", "text": self.text()}], "isError": False}


@dataclass
class Tool:
    name: str
    description: str
    parameters: List[Parameter] = field(default_factory=list)
    callback: Optional[Callable[[Dict[str, Any]], Any]] = None
    restricted: bool = False

    def to_dict(self) -> dict:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if not p.has_default]
        if required:
            schema["required"] = required
        data: Dict[str, Any] = {"name": self.name, "description": self.description, "inputSchema": schema}
        if self.restricted:
            data["annotations"] = {"audience": ["user"]}
        return data

    def bind(self, arguments: Optional[dict]) -> Dict[str, Any]:
        bound: Dict[str, Any] = {}
        for param in self.parameters:
            found, value = param.extract(arguments)
            if found:
                bound[param.name] = value
            elif param.has_default:
                bound[param.name] = param.default
            else:
                raise MissingArgumentError(param.name)
        return bound

    def call(self, arguments: Dict[str, Any]) -> ToolResult:
        try:
            value = self.callback(arguments) if self.callback else None
        except Exception as exc:
            logger.error("tools/call %s failed: %s", self.name, exc, exc_info=True)
            return ToolResult.failure(str(exc) or exc.__class__.__name__)
        if isinstance(value, ToolResult):
            return value
        return ToolResult.success(value)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: List[Tool] = []

    def register(self, tool: Tool) -> bool:
        if self.lookup(tool.name) is not None:
            logger.warning("Tool %s already added", tool.name)
            return False
        logger.info("Add tool: %s%s", tool.name, " [user]" if tool.restricted else "")
        self._tools.append(tool)
        return True

    def add_tool(
        self,
        name: str,
        description: str,
        parameters: Optional[List[Parameter]] = None,
        callback: Optional[Callable[[Dict[str, Any]], Any]] = None,
        restricted: bool = False,
    ) -> bool:
        return self.register(Tool(name, description, list(parameters or []), callback, restricted))

    def lookup(self, name: str) -> Optional[Tool]:
        for tool in self._tools:
            if tool.name == name:
                return tool
        return None

    def iter_tools(self, cursor: str = "", include_restricted: bool = False) -> Iterator[Tool]:
        found_cursor = not cursor
        for tool in list(self._tools):
            if not found_cursor:
                if tool.name != cursor:
                    continue
                found_cursor = True
            if tool.restricted and not include_restricted:
                continue
            yield tool

    def names(self) -> List[str]:
        return [t.name for t in self._tools]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return any(t.name == name for t in self._tools)
