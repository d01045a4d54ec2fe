"""Tests for the node executor."""

import httpx
import pytest

from nodeflow.engine.executor import NodeExecutor
from nodeflow.models.node import Node
from nodeflow.nodes.base import NodeConfigError
from nodeflow.nodes.registry import default_registry
from tests.conftest import StubTransport, make_settings


def node(type_name: str, config: dict) -> Node:
    return Node(id=f"{type_name}-1", pipeline_id="p-1", name=type_name, type=type_name, config=config)


@pytest.fixture
def stub():
    return StubTransport(lambda r: httpx.Response(200, json={"ok": True}))


@pytest.fixture
def executor(stub):
    return NodeExecutor(default_registry(), make_settings(), transport=stub)


class TestValidateConfig:
    def test_valid_config_returns_model(self, executor):
        config = executor.validate_config(node("text", {"content": "hi"}))
        assert config.content == "hi"

    def test_invalid_config_raises(self, executor):
        with pytest.raises(NodeConfigError, match="Text node requires: content"):
            executor.validate_config(node("text", {}))

    def test_unknown_type_raises(self, executor):
        with pytest.raises(NodeConfigError, match="Unknown node type: condition"):
            executor.validate_config(node("condition", {}))


class TestExecute:
    @pytest.mark.asyncio
    async def test_success(self, executor):
        n = node("text", {"content": "Hi {{name}}"})
        result = await executor.execute(n, {"name": "Ada"}, executor.context_for("run-1", n))
        assert result.succeeded
        assert result.status == "completed"
        assert result.output["text"] == "Hi Ada"
        assert result.error is None
        assert result.duration_ms >= 0
        await executor.close()

    @pytest.mark.asyncio
    async def test_invalid_method_fails_before_any_request(self, executor, stub):
        n = node("http_request", {"url": "https://api.test", "method": "teleport"})
        result = await executor.execute(n, {}, executor.context_for("run-1", n))
        assert result.status == "failed"
        assert result.error == "Invalid HTTP method: teleport"
        assert result.retryable is False
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_unknown_type_is_not_retryable(self, executor):
        n = node("transform", {"expression": "x"})
        result = await executor.execute(n, {}, executor.context_for("run-1", n))
        assert result.status == "failed"
        assert result.error == "Unknown node type: transform"
        assert result.retryable is False

    @pytest.mark.asyncio
    async def test_missing_api_key_is_retryable_failure(self, executor, stub):
        n = node("llm", {"model": "m", "user_prompt": "hi"})
        result = await executor.execute(n, {}, executor.context_for("run-1", n))
        assert result.status == "failed"
        assert result.error == "No API key found for provider openrouter"
        assert result.retryable is True
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_http_call_through_shared_client(self, executor, stub):
        n = node("http_request", {"url": "https://api.test/{{path}}", "method": "get"})
        result = await executor.execute(n, {"path": "ping"}, executor.context_for("run-1", n))
        assert result.succeeded
        assert result.output["body"] == {"ok": True}
        assert str(stub.requests[0].url) == "https://api.test/ping"
        await executor.close()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_captured(self, executor):
        class Boom:
            type_name = "text"

            def validate_config(self, config):
                return config

            async def execute(self, config, inputs, context):
                raise RuntimeError("kaboom")

        executor.registry.register(Boom())
        n = node("text", {"content": "x"})
        result = await executor.execute(n, {}, executor.context_for("run-1", n))
        assert result.status == "failed"
        assert result.error == "RuntimeError: kaboom"
        assert result.retryable is True
