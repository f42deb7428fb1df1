"""Generative model adapter with structured and free-text call modes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import anthropic
import google.generativeai as genai
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from contribconnect.config.settings import settings
from contribconnect.errors import GenerationError, SchemaViolationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SYSTEM_MESSAGE = (
    "You recommend open-source repositories to developers. "
    "Only use repositories supplied in the prompt and never invent links."
)
JSON_ONLY_INSTRUCTION = "IMPORTANT: Respond ONLY with valid JSON. No markdown, no explanation text."

_TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
)


class LLMService:
    """Provider-switched LLM calls (openai, anthropic or gemini).

    Every attempt is bounded by ``LLM_TIMEOUT_SECONDS``; timeouts and
    connection errors are retried up to ``LLM_MAX_ATTEMPTS`` times. Anything
    still failing surfaces as ``GenerationError``, and output that does not
    match the schema as ``SchemaViolationError``.
    """

    def __init__(self, provider: Optional[str] = None):
        self.provider = provider or settings.LLM_PROVIDER

        if self.provider == "openai":
            if not settings.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'")
            self.openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        elif self.provider == "anthropic":
            if not settings.ANTHROPIC_API_KEY:
                raise ValueError("ANTHROPIC_API_KEY is required when LLM_PROVIDER is 'anthropic'")
            self.anthropic_client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        elif self.provider == "gemini":
            if not settings.GEMINI_API_KEY:
                raise ValueError("GEMINI_API_KEY is required when LLM_PROVIDER is 'gemini'")
            genai.configure(api_key=settings.GEMINI_API_KEY)
            self.gemini_model = genai.GenerativeModel(settings.GEMINI_MODEL)
        else:
            raise ValueError(f"Unsupported LLM provider: {self.provider}")

    async def generate_object(self, prompt: str, schema: type[ModelT], *, system: str = SYSTEM_MESSAGE) -> ModelT:
        """Ask the provider for an object conforming to ``schema``."""

        if self.provider == "openai":
            content = await self._call(lambda: self._object_openai(prompt, schema, system))
            return _validate_json(content, schema)
        elif self.provider == "anthropic":
            payload = await self._call(lambda: self._object_anthropic(prompt, schema, system))
            try:
                return schema.model_validate(payload)
            except ValidationError as e:
                raise SchemaViolationError(f"Structured output failed validation: {e}") from e
        else:
            content = await self._call(lambda: self._gemini(f"{system}\n\n{prompt}", json_mode=True))
            return parse_json_response(content, schema)

    async def generate_text(self, prompt: str, *, system: str = SYSTEM_MESSAGE) -> str:
        """Plain completion, returned as raw text."""

        if self.provider == "openai":
            return await self._call(lambda: self._text_openai(prompt, system))
        elif self.provider == "anthropic":
            return await self._call(lambda: self._text_anthropic(prompt, system))
        return await self._call(lambda: self._gemini(f"{system}\n\n{prompt}", json_mode=False))

    async def _call(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(settings.LLM_MAX_ATTEMPTS),
                wait=wait_exponential(multiplier=settings.LLM_BACKOFF_BASE_SECONDS, max=settings.LLM_BACKOFF_MAX_SECONDS),
                retry=retry_if_exception_type(_TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.wait_for(factory(), timeout=settings.LLM_TIMEOUT_SECONDS)
        except SchemaViolationError:
            raise
        except asyncio.TimeoutError as e:
            raise GenerationError(f"{self.provider} call timed out after {settings.LLM_TIMEOUT_SECONDS}s") from e
        except Exception as e:
            logger.warning(f"{self.provider} generation call failed: {e}")
            raise GenerationError(f"{self.provider} generation failed: {e}") from e

    async def _object_openai(self, prompt: str, schema: type[BaseModel], system: str) -> str:
        response = await self.openai_client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema.__name__, "schema": schema.model_json_schema()},
            },
        )
        return response.choices[0].message.content or ""

    async def _object_anthropic(self, prompt: str, schema: type[BaseModel], system: str) -> Any:
        tool_name = f"emit_{schema.__name__.lower()}"
        response = await self.anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
            system=system,
            tools=[
                {
                    "name": tool_name,
                    "description": "Return the recommendation result.",
                    "input_schema": schema.model_json_schema(),
                }
            ],
            tool_choice={"type": "tool", "name": tool_name},
            messages=[{"role": "user", "content": prompt}],
        )
        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                return block.input
        raise SchemaViolationError("Anthropic response contained no tool_use block")

    async def _text_openai(self, prompt: str, system: str) -> str:
        response = await self.openai_client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
        )
        return response.choices[0].message.content or ""

    async def _text_anthropic(self, prompt: str, system: str) -> str:
        response = await self.anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(getattr(block, "text", "") for block in response.content)

    async def _gemini(self, prompt: str, *, json_mode: bool) -> str:
        config = genai.types.GenerationConfig(
            temperature=settings.LLM_TEMPERATURE,
            max_output_tokens=settings.LLM_MAX_TOKENS,
            response_mime_type="application/json" if json_mode else "text/plain",
        )

        # Gemini API is sync, so we need to run it in executor
        loop = asyncio.get_event_loop()
        response = await loop.run_in_executor(
            None,
            lambda: self.gemini_model.generate_content(prompt, generation_config=config),
        )
        return response.text


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code block, if any."""
    content = (content or "").strip()
    if content.startswith("```"):
        content = content.split("```")[1]
        if content.startswith("json"):
            content = content[4:]
        content = content.strip()
    return content


def parse_json_response(content: str, schema: type[ModelT]) -> ModelT:
    """Parse free-text model output as JSON and validate it against ``schema``."""
    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SchemaViolationError(f"Model output is not valid JSON: {e}") from e
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise SchemaViolationError(f"Model output failed validation: {e}") from e


def _validate_json(content: str, schema: type[ModelT]) -> ModelT:
    try:
        return schema.model_validate_json(content)
    except ValidationError as e:
        raise SchemaViolationError(f"Structured output failed validation: {e}") from e
