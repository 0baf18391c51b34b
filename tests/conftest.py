"""Shared pytest configuration and fixtures."""

from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import pytest

from src.config import Settings, get_settings


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run e2e tests that hit real providers (requires .env with valid API keys)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e flag to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _no_dotenv(request: pytest.FixtureRequest) -> Generator[None]:
    """Block .env loading so a developer's real API keys never leak into tests.

    Sets Settings.model_config['env_file'] = None before each test (except e2e).
    Tests that use mock_settings bypass Settings() entirely, so this is transparent.
    """
    if "e2e" in request.keywords:
        yield
        return

    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings() -> Generator[Any]:
    """Provide fake settings so tests don't need a .env file.

    Patches get_settings at every import site so cached references are overridden.
    No provider keys are set, so the orchestrator answers from the local fallback.
    """
    fake_settings = type(
        "FakeSettings",
        (),
        {
            "openai_api_key": "",
            "openai_model": "gpt-4o-mini",
            "openai_base_url": "",
            "anthropic_api_key": "",
            "anthropic_model": "claude-3-5-haiku-latest",
            "gemini_api_key": "",
            "gemini_model": "gemini-1.5-flash",
            "provider_order": "openai,anthropic,gemini",
            "provider_timeout_seconds": 1.0,
            "generation_temperature": 0.7,
            "generation_max_tokens": 256,
            # Rate limiting
            "quota_policies_path": "",
            "rate_limit_fail_open": False,
            "rate_limit_sweep_seconds": 0,
            # Audit store
            "audit_db_path": ":memory:",
            "terms_version": "test-1",
        },
    )()
    with (
        patch("src.config.get_settings", return_value=fake_settings),
        patch("src.audit.store.get_settings", return_value=fake_settings),
        patch("src.ratelimit.sweeper.get_settings", return_value=fake_settings),
        patch("src.coaching.service.get_settings", return_value=fake_settings),
        patch("src.api.main.get_settings", return_value=fake_settings),
    ):
        yield fake_settings
