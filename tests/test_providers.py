"""Unit tests for provider adapters and the adapter builder."""

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.generation.models import Provider, ProviderError, TokenUsage
from src.generation.prompts import BJJ_CONTEXT
from src.generation.providers import ChatModelAdapter, GeminiAdapter, build_adapters


def _settings(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "openai_api_key": "sk-test",
        "openai_model": "gpt-4o-mini",
        "openai_base_url": "",
        "anthropic_api_key": "sk-ant-test",
        "anthropic_model": "claude-3-5-haiku-latest",
        "gemini_api_key": "gm-test",
        "gemini_model": "gemini-1.5-flash",
        "provider_order": "openai,anthropic,gemini",
        "provider_timeout_seconds": 5.0,
        "generation_temperature": 0.7,
        "generation_max_tokens": 500,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# ---------------------------------------------------------------------------
# ChatModelAdapter
# ---------------------------------------------------------------------------


class TestChatModelAdapter:
    async def test_returns_text_from_fake_chat_model(self) -> None:
        llm = GenericFakeChatModel(messages=iter([AIMessage(content="Frame first, then shrimp.")]))
        adapter = ChatModelAdapter("openai", "gpt-4o-mini", llm)

        reply = await adapter.attempt("How do I retain guard?", BJJ_CONTEXT, 5.0)

        assert reply.text == "Frame first, then shrimp."
        assert reply.model == "gpt-4o-mini"

    async def test_sends_system_and_human_messages(self) -> None:
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="ok"))
        adapter = ChatModelAdapter("anthropic", "claude-3-5-haiku-latest", llm)

        await adapter.attempt("How do I retain guard?", BJJ_CONTEXT, 5.0)

        messages = llm.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert "Joseph Llanes" in messages[0].content
        assert isinstance(messages[1], HumanMessage)
        assert "How do I retain guard?" in messages[1].content
        callbacks = llm.ainvoke.call_args.kwargs["config"]["callbacks"]
        assert callbacks[0].provider == "anthropic"

    async def test_reads_usage_metadata(self) -> None:
        message = AIMessage(
            content="answer",
            usage_metadata={"input_tokens": 12, "output_tokens": 34, "total_tokens": 46},
            response_metadata={"model_name": "gpt-4o-mini-2024-07-18"},
        )
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=message)
        adapter = ChatModelAdapter("openai", "gpt-4o-mini", llm)

        reply = await adapter.attempt("q", None, 5.0)

        assert reply.token_usage == TokenUsage(prompt=12, completion=34, total=46)
        assert reply.model == "gpt-4o-mini-2024-07-18"

    async def test_joins_content_blocks(self) -> None:
        message = AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}])
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=message)

        reply = await ChatModelAdapter("anthropic", "claude", llm).attempt("q", None, 5.0)

        assert reply.text == "Part one. Part two."

    async def test_empty_response_raises(self) -> None:
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="  "))
        with pytest.raises(ProviderError, match="Empty response"):
            await ChatModelAdapter("openai", "gpt-4o-mini", llm).attempt("q", None, 5.0)

    async def test_transport_errors_propagate(self) -> None:
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=ConnectionError("reset by peer"))
        with pytest.raises(ConnectionError):
            await ChatModelAdapter("openai", "gpt-4o-mini", llm).attempt("q", None, 5.0)


# ---------------------------------------------------------------------------
# GeminiAdapter
# ---------------------------------------------------------------------------


def _gemini_client(response: Any) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response)
    return client


class TestGeminiAdapter:
    async def test_returns_text_and_usage(self) -> None:
        response = SimpleNamespace(
            text="Scan before the ball arrives.",
            usage_metadata=SimpleNamespace(prompt_token_count=5, candidates_token_count=7, total_token_count=12),
        )
        client = _gemini_client(response)
        adapter = GeminiAdapter(api_key="k", model="gemini-1.5-flash", client=client)

        reply = await adapter.attempt("passing tips", None, 2.5)

        assert reply.text == "Scan before the ball arrives."
        assert reply.token_usage == TokenUsage(prompt=5, completion=7, total=12)
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-1.5-flash"
        assert "passing tips" in kwargs["contents"]
        assert kwargs["config"].http_options.timeout == 2500

    async def test_empty_text_raises(self) -> None:
        client = _gemini_client(SimpleNamespace(text=None, usage_metadata=None))
        adapter = GeminiAdapter(api_key="k", model="gemini-1.5-flash", client=client)
        with pytest.raises(ProviderError):
            await adapter.attempt("q", None, 1.0)


# ---------------------------------------------------------------------------
# build_adapters
# ---------------------------------------------------------------------------


class TestBuildAdapters:
    def test_follows_configured_order(self) -> None:
        with (
            patch("src.generation.providers.create_chat_model", return_value=MagicMock()),
            patch("src.generation.providers.genai.Client"),
        ):
            adapters = build_adapters(_settings(provider_order="gemini, anthropic ,openai"))  # type: ignore[arg-type]

        assert [a.name for a in adapters] == ["gemini", "anthropic", "openai"]

    def test_skips_providers_without_keys(self) -> None:
        with patch("src.generation.providers.create_chat_model", return_value=MagicMock()):
            adapters = build_adapters(_settings(anthropic_api_key="", gemini_api_key=""))  # type: ignore[arg-type]

        assert [a.name for a in adapters] == ["openai"]

    def test_skips_unknown_and_duplicate_names(self) -> None:
        with patch("src.generation.providers.create_chat_model", return_value=MagicMock()):
            adapters = build_adapters(
                _settings(provider_order="openai,mistral,openai,fallback", gemini_api_key="")  # type: ignore[arg-type]
            )

        assert [a.name for a in adapters] == ["openai"]

    def test_no_keys_means_no_adapters(self) -> None:
        adapters = build_adapters(
            _settings(openai_api_key="", anthropic_api_key="", gemini_api_key="")  # type: ignore[arg-type]
        )
        assert adapters == []

    def test_chat_models_built_per_provider(self) -> None:
        with patch("src.generation.providers.create_chat_model", return_value=MagicMock()) as factory:
            build_adapters(_settings(gemini_api_key=""))  # type: ignore[arg-type]

        providers = [c.args[0] for c in factory.call_args_list]
        assert providers == [Provider.OPENAI, Provider.ANTHROPIC]
