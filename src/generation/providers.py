"""Provider adapters: a uniform async ``attempt`` over each external backend.

Every adapter either returns a :class:`ProviderReply` with non-empty text or
raises. Adapters do not retry and do not fall back; the orchestrator owns both.
"""

import logging
from typing import Any, Protocol

from google import genai
from google.genai import types as genai_types
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from src.config import Settings
from src.generation.llm import create_chat_model
from src.generation.models import Provider, ProviderError, ProviderReply, TokenUsage
from src.generation.prompts import GENERIC_CONTEXT, CoachingContext, build_coaching_prompt, build_system_prompt
from src.observability.callbacks import MetricsCallbackHandler

logger = logging.getLogger(__name__)


class ProviderAdapter(Protocol):
    name: str
    model: str

    async def attempt(self, prompt: str, context: CoachingContext | None, timeout_seconds: float) -> ProviderReply: ...


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Anthropic may return a list of content blocks
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


class ChatModelAdapter:
    """Adapter over any LangChain chat model (OpenAI, Anthropic, test fakes)."""

    def __init__(self, name: str, model: str, llm: BaseChatModel) -> None:
        self.name = name
        self.model = model
        self._llm = llm

    async def attempt(self, prompt: str, context: CoachingContext | None, timeout_seconds: float) -> ProviderReply:
        ctx = context or GENERIC_CONTEXT
        messages = [
            SystemMessage(content=build_system_prompt(ctx)),
            HumanMessage(content=build_coaching_prompt(prompt, ctx)),
        ]
        config: RunnableConfig = {"callbacks": [MetricsCallbackHandler(self.name)]}
        result = await self._llm.ainvoke(messages, config=config)
        if not isinstance(result, AIMessage):
            msg = f"{self.name} returned {type(result).__name__}, expected AIMessage"
            raise ProviderError(msg)

        text = _message_text(result).strip()
        if not text:
            msg = f"Empty response from {self.name}"
            raise ProviderError(msg)

        usage: TokenUsage | None = None
        if result.usage_metadata:
            usage = TokenUsage(
                prompt=result.usage_metadata.get("input_tokens", 0),
                completion=result.usage_metadata.get("output_tokens", 0),
                total=result.usage_metadata.get("total_tokens", 0),
            )
        model = str(result.response_metadata.get("model_name") or self.model)
        return ProviderReply(text=text, model=model, token_usage=usage)


class GeminiAdapter:
    """Adapter over the Google GenAI async client."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_output_tokens: int = 1000,
        client: Any = None,
    ) -> None:
        self.name = Provider.GEMINI.value
        self.model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._client = client if client is not None else genai.Client(api_key=api_key)

    async def attempt(self, prompt: str, context: CoachingContext | None, timeout_seconds: float) -> ProviderReply:
        ctx = context or GENERIC_CONTEXT
        config = genai_types.GenerateContentConfig(
            system_instruction=build_system_prompt(ctx),
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            http_options=genai_types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=build_coaching_prompt(prompt, ctx),
            config=config,
        )
        text = (response.text or "").strip()
        if not text:
            msg = "Empty response from gemini"
            raise ProviderError(msg)

        usage: TokenUsage | None = None
        meta = response.usage_metadata
        if meta is not None:
            usage = TokenUsage(
                prompt=meta.prompt_token_count or 0,
                completion=meta.candidates_token_count or 0,
                total=meta.total_token_count or 0,
            )
        return ProviderReply(text=text, model=self.model, token_usage=usage)


def _credentials_for(provider: Provider, settings: Settings) -> str:
    return {
        Provider.OPENAI: settings.openai_api_key,
        Provider.ANTHROPIC: settings.anthropic_api_key,
        Provider.GEMINI: settings.gemini_api_key,
    }.get(provider, "")


def build_adapters(settings: Settings) -> list[ProviderAdapter]:
    """Build adapters in the configured static priority order.

    Unknown provider names and providers without credentials are skipped. The
    local fallback is not part of this list; the orchestrator always appends it.
    """
    adapters: list[ProviderAdapter] = []
    seen: set[Provider] = set()

    for raw_name in settings.provider_order.split(","):
        name = raw_name.strip().lower()
        if not name:
            continue
        try:
            provider = Provider(name)
        except ValueError:
            logger.warning("Unknown provider '%s' in PROVIDER_ORDER — skipping", name)
            continue
        if provider == Provider.FALLBACK or provider in seen:
            continue
        seen.add(provider)

        if not _credentials_for(provider, settings):
            logger.info("Provider '%s' disabled — no API key configured", provider)
            continue

        if provider == Provider.GEMINI:
            adapters.append(
                GeminiAdapter(
                    api_key=settings.gemini_api_key,
                    model=settings.gemini_model,
                    temperature=settings.generation_temperature,
                    max_output_tokens=settings.generation_max_tokens,
                )
            )
        else:
            model = settings.openai_model if provider == Provider.OPENAI else settings.anthropic_model
            adapters.append(ChatModelAdapter(provider.value, model, create_chat_model(provider, settings)))

    logger.info("Generation providers in priority order: %s", [a.name for a in adapters] + ["fallback"])
    return adapters
