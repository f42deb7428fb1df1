from __future__ import annotations

import asyncio

import pytest

from contribconnect.config.settings import settings
from contribconnect.errors import GenerationError, SchemaViolationError
from contribconnect.models.recommendation import UserAnalysis
from contribconnect.services.llm import LLMService, parse_json_response, strip_code_fences


@pytest.fixture
def anthropic_service(monkeypatch) -> LLMService:
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setattr(settings, "LLM_BACKOFF_BASE_SECONDS", 0)
    monkeypatch.setattr(settings, "LLM_MAX_ATTEMPTS", 2)
    return LLMService(provider="anthropic")


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_response_validates_schema() -> None:
    parsed = parse_json_response(
        '```json\n{"experience_level": "beginner", "primary_languages": ["go"], "suggested_focus_areas": []}\n```',
        UserAnalysis,
    )

    assert parsed.primary_languages == ["go"]

    with pytest.raises(SchemaViolationError):
        parse_json_response("Here are some projects you might like!", UserAnalysis)
    with pytest.raises(SchemaViolationError):
        parse_json_response('{"experience_level": "beginner"}', UserAnalysis)


def test_provider_configuration_is_checked(monkeypatch) -> None:
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)

    with pytest.raises(ValueError):
        LLMService(provider="openai")
    with pytest.raises(ValueError):
        LLMService(provider="not-a-provider")


def test_timeouts_are_retried(anthropic_service: LLMService) -> None:
    attempts: list[int] = []

    async def flaky_text(prompt, system):
        attempts.append(1)
        if len(attempts) == 1:
            raise asyncio.TimeoutError()
        return "recovered"

    anthropic_service._text_anthropic = flaky_text

    assert asyncio.run(anthropic_service.generate_text("hello")) == "recovered"
    assert len(attempts) == 2


def test_exhausted_retries_raise_generation_error(anthropic_service: LLMService) -> None:
    async def always_timeout(prompt, system):
        raise asyncio.TimeoutError()

    anthropic_service._text_anthropic = always_timeout

    with pytest.raises(GenerationError):
        asyncio.run(anthropic_service.generate_text("hello"))


def test_provider_errors_are_not_retried(anthropic_service: LLMService) -> None:
    attempts: list[int] = []

    async def broken(prompt, schema, system):
        attempts.append(1)
        raise RuntimeError("invalid request")

    anthropic_service._object_anthropic = broken

    with pytest.raises(GenerationError):
        asyncio.run(anthropic_service.generate_object("hello", UserAnalysis))
    assert len(attempts) == 1


def test_structured_output_is_validated(anthropic_service: LLMService) -> None:
    async def tool_input(prompt, schema, system):
        return {"experience_level": "experienced", "primary_languages": ["rust"]}

    anthropic_service._object_anthropic = tool_input

    with pytest.raises(SchemaViolationError):
        asyncio.run(anthropic_service.generate_object("hello", UserAnalysis))
