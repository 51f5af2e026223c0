"""Tool surface: input schemas and operations exposed over MCP."""

from jules_command.tools.operations import ToolOperations

__all__ = ["ToolOperations"]
