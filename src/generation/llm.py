"""LLM factory — creates the LangChain chat model for each configured provider."""

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from src.config import Settings
from src.generation.models import Provider


def create_openai_chat(settings: Settings, timeout_seconds: float) -> ChatOpenAI:
    """Create a ChatOpenAI instance.

    Retries are disabled: the orchestrator owns failover, and a retrying
    client would stretch a single attempt past its timeout.
    """
    return ChatOpenAI(
        model=settings.openai_model,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,  # pyright: ignore[reportCallIssue]
        api_key=SecretStr(settings.openai_api_key),
        base_url=settings.openai_base_url or None,
        timeout=timeout_seconds,
        max_retries=0,
    )


def create_anthropic_chat(settings: Settings, timeout_seconds: float) -> ChatAnthropic:
    return ChatAnthropic(  # pyright: ignore[reportCallIssue]
        model=settings.anthropic_model,  # pyright: ignore[reportCallIssue]
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,  # pyright: ignore[reportCallIssue]
        api_key=SecretStr(settings.anthropic_api_key),
        timeout=timeout_seconds,
        max_retries=0,
    )


def create_chat_model(provider: Provider, settings: Settings) -> BaseChatModel:
    """Create a chat model for a LangChain-backed provider.

    Args:
        provider: ``Provider.OPENAI`` or ``Provider.ANTHROPIC``.
        settings: Application settings (keys, model names, generation params).

    Raises:
        ValueError: For providers that are not served through LangChain.
    """
    timeout = settings.provider_timeout_seconds
    if provider == Provider.OPENAI:
        return create_openai_chat(settings, timeout)
    if provider == Provider.ANTHROPIC:
        return create_anthropic_chat(settings, timeout)
    msg = f"No LangChain chat model for provider '{provider}'"
    raise ValueError(msg)
