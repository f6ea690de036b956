"""Unit tests for chat turn orchestration."""

from types import SimpleNamespace

import httpx
import openai
import pytest

HASH = "C0FFEE" * 10 + "ABCD"


class ScriptedHandler:
    """Handler double: optionally calls tools, then returns fixed text."""

    provider = "fake"
    model = "fake-1"

    def __init__(self, text="", tool_calls=None, error=None):
        self.text = text
        self.tool_calls = tool_calls or []
        self.error = error
        self.runs = []

    async def run(self, messages, options):
        from integritas_host.domain.chat.types import HandlerResult

        self.runs.append(SimpleNamespace(messages=messages, options=options))
        if self.error is not None:
            raise self.error
        for name, args in self.tool_calls:
            await options.call_tool(name, args)
        return HandlerResult(text=self.text)


def _service(tool_server, settings, handler):
    from integritas_host.domain.chat.service import ChatService

    return ChatService(tool_server, settings=settings, handler_factory=lambda choice, s: handler)


def _request(text="hello", **kwargs):
    from integritas_host.domain.chat.service import ChatTurnRequest

    return ChatTurnRequest(messages=[{"role": "user", "content": text}], **kwargs)


class TestValidation:
    """Test request validation and normalization."""

    @pytest.mark.asyncio
    async def test_empty_messages_rejected(self, fake_tool_server, test_settings):
        from integritas_host.domain.chat.service import ChatTurnRequest
        from integritas_host.shared.exceptions import ValidationError

        handler = ScriptedHandler()
        service = _service(fake_tool_server, test_settings, handler)

        with pytest.raises(ValidationError):
            await service.handle_turn(ChatTurnRequest(messages=[]))

        assert handler.runs == []

    @pytest.mark.asyncio
    async def test_unknown_roles_replaced_by_placeholder(self, fake_tool_server, test_settings):
        from integritas_host.domain.chat.service import ChatTurnRequest

        handler = ScriptedHandler(text="hi")
        service = _service(fake_tool_server, test_settings, handler)

        await service.handle_turn(ChatTurnRequest(messages=[{"role": "tool", "content": "x"}]))

        messages = handler.runs[0].messages
        assert [(m.role, m.content) for m in messages] == [("user", "Hello")]

    @pytest.mark.asyncio
    async def test_disallowed_model_rejected_before_provider_call(
        self, fake_tool_server, test_settings
    ):
        from integritas_host.domain.chat.handler_factory import LLMChoice
        from integritas_host.domain.chat.service import ChatService
        from integritas_host.shared.exceptions import ConfigurationError

        service = ChatService(fake_tool_server, settings=test_settings)

        with pytest.raises(ConfigurationError):
            await service.handle_turn(
                _request("stamp my file", llm=LLMChoice(provider="openai", model="gpt-x"))
            )

        assert fake_tool_server.calls == []


class TestDeterministicFallbacks:
    """Test turns answered without a model call."""

    @pytest.mark.asyncio
    async def test_stamp_hash_fallback(self, fake_tool_server, test_settings):
        handler = ScriptedHandler()
        service = _service(fake_tool_server, test_settings, handler)

        result = await service.handle_turn(_request(f"stamp this hash: {HASH}"))

        assert fake_tool_server.calls == [("stamp_data", {"req": {"file_hash": HASH.lower()}})]
        assert len(result.tool_steps) == 1
        assert result.tool_steps[0].tx_id == "0xabc"
        assert result.final_text.startswith("Hash stamped on Minima. uid=u-1, tx_id=0xabc")
        assert handler.runs == []

    @pytest.mark.asyncio
    async def test_stamp_hash_fallback_rejected_by_server(self, test_settings):
        from tests.conftest import FakeToolServer

        async def reject(name, args):
            return {
                "isError": True,
                "structuredContent": {"summary": "stamp failed: invalid api key"},
            }

        handler = ScriptedHandler()
        service = _service(FakeToolServer(handler=reject), test_settings, handler)

        result = await service.handle_turn(_request(f"stamp this hash: {HASH}"))

        assert result.final_text == "stamp_data did not complete: stamp failed: invalid api key."
        assert "Hash stamped" not in result.final_text
        assert handler.runs == []

    @pytest.mark.asyncio
    async def test_stamp_hash_fallback_timeout(self, test_settings):
        import asyncio

        from tests.conftest import FakeToolServer

        async def hang(name, args):
            await asyncio.sleep(10)
            return {}

        test_settings.tool_call_timeout_seconds = 0.05
        service = _service(FakeToolServer(handler=hang), test_settings, ScriptedHandler())

        result = await service.handle_turn(_request(f"stamp this hash: {HASH}"))

        assert [step.ok for step in result.tool_steps] == [False]
        assert result.final_text.startswith("stamp_data did not complete:")
        assert "timed out" in result.final_text

    @pytest.mark.asyncio
    async def test_verify_args_fallback(self, fake_tool_server, test_settings):
        handler = ScriptedHandler()
        service = _service(fake_tool_server, test_settings, handler)

        result = await service.handle_turn(
            _request(
                "anything at all",
                tool_args={"verify_data": {"req": {"file_url": "https://x/proof.json"}}},
                api_key="user-key",
            )
        )

        assert [step.name for step in result.tool_steps] == ["verify_data"]
        assert handler.runs == []
        name, args = fake_tool_server.calls[0]
        assert args["req"] == {"file_url": "https://x/proof.json", "api_key": "user-key"}
        assert result.tool_steps[0].args["req"]["api_key"] == "<redacted>"
        assert result.final_text == "Verification: match found. Report: https://verify.example/r/1"
        assert result.links == ["https://verify.example/r/1"]

    @pytest.mark.asyncio
    async def test_stamp_args_fallback(self, fake_tool_server, test_settings):
        handler = ScriptedHandler()
        service = _service(fake_tool_server, test_settings, handler)

        result = await service.handle_turn(
            _request("go", tool_args={"stamp_data": {"req": {"file_url": "https://x/f"}}})
        )

        assert [step.name for step in result.tool_steps] == ["stamp_data"]
        assert handler.runs == []

    @pytest.mark.asyncio
    async def test_hash_without_stamp_intent_uses_model(self, fake_tool_server, test_settings):
        handler = ScriptedHandler(text="ok")
        service = _service(fake_tool_server, test_settings, handler)

        await service.handle_turn(_request(f"look at {HASH}"))

        assert len(handler.runs) == 1
        assert fake_tool_server.calls == []


class TestDocsPath:
    """Test documentation answers."""

    @pytest.mark.asyncio
    async def test_docs_answer_grounded_without_tools(self, fake_tool_server, test_settings):
        handler = ScriptedHandler(text="I can stamp and verify data.")
        service = _service(fake_tool_server, test_settings, handler)

        result = await service.handle_turn(_request(f"what can you do with hash {HASH}?"))

        options = handler.runs[0].options
        assert options.tools == []
        assert options.max_tool_rounds == 0
        assert "Integritas stamps data hashes" in options.system_prompt
        assert result.final_text == "I can stamp and verify data."
        assert result.sources[:2] == ["integritas://docs/overview", "integritas://docs/tools"]
        assert result.tool_steps == []
        assert fake_tool_server.calls == []

    @pytest.mark.asyncio
    async def test_docs_callback_refuses_tools(self, fake_tool_server, test_settings):
        from integritas_host.shared.exceptions import ToolCallRefusedError

        handler = ScriptedHandler(tool_calls=[("stamp_data", {})])
        service = _service(fake_tool_server, test_settings, handler)

        with pytest.raises(ToolCallRefusedError):
            await service.handle_turn(_request("what can you do?"))

        assert fake_tool_server.calls == []

    @pytest.mark.asyncio
    async def test_empty_docs_answer(self, fake_tool_server, test_settings):
        service = _service(fake_tool_server, test_settings, ScriptedHandler(text=""))

        result = await service.handle_turn(_request("help"))

        assert result.final_text == "Done."


class TestModelPath:
    """Test the tool-calling path."""

    @pytest.mark.asyncio
    async def test_scoped_tools_and_prompt(self, fake_tool_server, test_settings):
        handler = ScriptedHandler(text="ok")
        service = _service(fake_tool_server, test_settings, handler)

        await service.handle_turn(_request("please stamp my file"))

        options = handler.runs[0].options
        assert [tool.name for tool in options.tools] == ["stamp_data"]
        assert options.max_tool_rounds == 3
        assert options.response_as_json is True
        assert "User goal: please stamp my file" in options.system_prompt
        assert "OUTPUT FORMAT (REQUIRED):" in options.system_prompt

    @pytest.mark.asyncio
    async def test_explicit_args_force_scope(self, fake_tool_server, test_settings):
        handler = ScriptedHandler(text="ok")
        service = _service(fake_tool_server, test_settings, handler)

        await service.handle_turn(
            _request("good morning", tool_args={"verify_data": {"mode": "strict"}, "health": {}})
        )

        assert [tool.name for tool in handler.runs[0].options.tools] == ["verify_data"]

    @pytest.mark.asyncio
    async def test_tool_steps_finalized_from_primary(self, fake_tool_server, test_settings):
        handler = ScriptedHandler(
            text="Stamped on Bitcoin!",
            tool_calls=[("stamp_data", {"req": {"file_url": "https://x/f"}})],
        )
        service = _service(fake_tool_server, test_settings, handler)

        result = await service.handle_turn(_request("stamp my file", api_key="k"))

        assert result.final_text == (
            "Hash stamped on Minima. uid=u-1, tx_id=0xabc, stamped_at=2024-01-01T00:00:00Z."
        )
        step = result.tool_steps[0]
        assert step.uid == "u-1"
        assert step.args["req"]["file_url"] == "<provided>"

    @pytest.mark.asyncio
    async def test_non_json_without_primary_is_done(self, fake_tool_server, test_settings):
        service = _service(fake_tool_server, test_settings, ScriptedHandler(text=""))

        result = await service.handle_turn(_request("hi there"))

        assert result.final_text == "Done."


class TestErrorBoundary:
    """Test LLM error recovery and propagation."""

    @pytest.mark.asyncio
    async def test_rate_limit_becomes_friendly_reply(self, fake_tool_server, test_settings):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, request=request, headers={"retry-after": "30"})
        error = openai.RateLimitError("Rate limit reached", response=response, body=None)
        service = _service(fake_tool_server, test_settings, ScriptedHandler(error=error))

        result = await service.handle_turn(_request("stamp my file"))

        assert "30 seconds" in result.final_text
        assert "Rate limit reached" not in result.final_text
        assert result.tool_steps == []

    @pytest.mark.asyncio
    async def test_transport_error_drops_partial_steps(self, fake_tool_server, test_settings):
        class FailAfterTool(ScriptedHandler):
            async def run(self, messages, options):
                await options.call_tool("stamp_data", {})
                raise RuntimeError("503 Service Unavailable from model api")

        service = _service(fake_tool_server, test_settings, FailAfterTool())

        result = await service.handle_turn(_request("stamp my file"))

        assert result.tool_steps == []
        assert "temporarily unavailable" in result.final_text

    @pytest.mark.asyncio
    async def test_non_transport_error_propagates(self, fake_tool_server, test_settings):
        service = _service(
            fake_tool_server, test_settings, ScriptedHandler(error=KeyError("choices"))
        )

        with pytest.raises(KeyError):
            await service.handle_turn(_request("stamp my file"))

    @pytest.mark.asyncio
    async def test_tool_failure_propagates(self, test_settings):
        from tests.conftest import FakeToolServer

        async def broken(name, args):
            raise ConnectionError("connection error talking to tool backend")

        handler = ScriptedHandler(tool_calls=[("stamp_data", {})])
        service = _service(FakeToolServer(handler=broken), test_settings, handler)

        with pytest.raises(ConnectionError):
            await service.handle_turn(_request("stamp my file"))

    @pytest.mark.asyncio
    async def test_tool_timeout_does_not_end_turn(self, test_settings):
        import asyncio

        from tests.conftest import FakeToolServer

        async def hang(name, args):
            await asyncio.sleep(10)
            return {}

        test_settings.tool_call_timeout_seconds = 0.05
        handler = ScriptedHandler(text="", tool_calls=[("stamp_data", {})])
        service = _service(FakeToolServer(handler=hang), test_settings, handler)

        result = await service.handle_turn(_request("stamp my file"))

        assert result.tool_steps[0].ok is False
        assert result.final_text == (
            'stamp_data did not complete: The "stamp_data" tool timed out after 0s.'
        )
