"""Integritas MCP host - LLM tool-calling orchestration over an MCP tool server."""

__version__ = "0.1.0"
