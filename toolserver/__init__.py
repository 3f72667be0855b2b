"""Tool-invocation server for the device."""

from .executor import SerialExecutor
from .registry import MissingArgumentError, Parameter, ParameterType, Tool, ToolRegistry, ToolResult
from .server import McpServer
