"""
Pytest configuration and fixtures for the Integritas MCP host tests.
"""
import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from integritas_host.config import Settings

ToolHandler = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

STAMP_SCHEMA = {
    "type": "object",
    "properties": {
        "req": {
            "type": "object",
            "properties": {
                "api_key": {"type": "string"},
                "file_hash": {"type": "string"},
                "file_url": {"type": "string"},
            },
            "required": ["api_key"],
        }
    },
    "required": ["req"],
}

VERIFY_SCHEMA = {
    "type": "object",
    "properties": {"req": {"$ref": "#/$defs/VerifyRequest"}},
    "required": ["req"],
    "$defs": {
        "VerifyRequest": {
            "type": "object",
            "properties": {
                "api_key": {"type": "string"},
                "file_url": {"type": "string"},
            },
            "required": ["api_key", "file_url"],
        }
    },
}

DEFAULT_TOOLS = [
    {"name": "stamp_data", "description": "Stamp a file or hash on Minima", "inputSchema": STAMP_SCHEMA},
    {"name": "verify_data", "description": "Verify a proof file", "inputSchema": VERIFY_SCHEMA},
    {"name": "health", "description": "Server health", "inputSchema": {"type": "object"}},
    {"name": "ready", "description": "Server readiness", "inputSchema": {"type": "object"}},
]

DEFAULT_RESOURCES = [
    {"uri": "integritas://docs/overview", "name": "Overview"},
    {"uri": "integritas://docs/tools", "name": "Tools"},
    {"uri": "integritas://docs/pricing", "name": "Pricing", "description": "Plans and pricing"},
    {"uri": "file:///changelog", "name": "Changelog"},
]


class FakeToolServer:
    """In-memory stand-in for the MCP tool server."""

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        resources: list[dict[str, Any]] | None = None,
        texts: dict[str, str] | None = None,
        handler: ToolHandler | None = None,
    ):
        self.tools = DEFAULT_TOOLS if tools is None else tools
        self.resources = DEFAULT_RESOURCES if resources is None else resources
        self.texts = texts or {
            "integritas://docs/overview": "Integritas stamps data hashes on the Minima chain.",
            "integritas://docs/tools": "stamp_data, verify_data",
        }
        self.handler = handler
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.reads: list[str] = []

    async def list_tools(self) -> dict[str, Any]:
        return {"tools": self.tools}

    async def list_resources(self) -> dict[str, Any]:
        return {"resources": self.resources}

    async def read_resource(self, uri: str) -> dict[str, Any]:
        self.reads.append(uri)
        text = self.texts.get(uri)
        if text is None:
            return {"contents": [{"uri": uri, "blob": "AAAA", "mimeType": "application/pdf"}]}
        return {"contents": [{"uri": uri, "text": text, "mimeType": "text/markdown"}]}

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        progress_callback: Any = None,
    ) -> dict[str, Any]:
        self.calls.append((name, arguments))
        if self.handler is not None:
            return await self.handler(name, arguments)
        if name == "stamp_data":
            return {
                "content": [{"type": "text", "text": '{"uid": "u-1", "tx_id": "0xabc"}'}],
                "structuredContent": {
                    "summary": "stamped",
                    "uid": "u-1",
                    "tx_id": "0xabc",
                    "stamped_at": "2024-01-01T00:00:00Z",
                },
            }
        if name == "verify_data":
            return {
                "structuredContent": {
                    "summary": "match found",
                    "verification_url": "https://verify.example/r/1",
                },
            }
        await asyncio.sleep(0)
        return {"structuredContent": {"summary": f"{name} ok"}}


@pytest.fixture
def fake_tool_server() -> FakeToolServer:
    """Tool server with stamp/verify/diagnostic tools and docs resources."""
    return FakeToolServer()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests (mock provider, no .env)."""
    return Settings(
        _env_file=None,
        app_env="development",
        llm_provider="mock",
        anthropic_api_key="sk-ant-test",
        openai_api_key="sk-openai-test",
        openrouter_api_key="sk-or-test",
        tool_call_timeout_seconds=5,
    )


@pytest.fixture
def app(fake_tool_server: FakeToolServer, test_settings: Settings) -> FastAPI:
    """Create test FastAPI application with an injected tool server."""
    from integritas_host.api.deps import get_chat_service
    from integritas_host.domain.chat.service import ChatService
    from integritas_host.api.ratelimit import limiter
    from integritas_host.main import create_app

    limiter.reset()
    app = create_app()
    app.state.tool_server = fake_tool_server
    app.dependency_overrides[get_chat_service] = lambda: ChatService(
        fake_tool_server, settings=test_settings
    )
    return app


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
