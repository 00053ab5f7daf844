"""LLM Utilities - xAI Grok API wrapper for traider.

call_grok is the raw chat-completions call (returns a status dict, never
raises). GrokGenerator layers the Generator protocol on top of it:
schema-validated structured output for trade decisions and free text
for trade announcements.

Environment:
    XAI_API_KEY: xAI API key (required)
"""

from __future__ import annotations

import json
import os
import re
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError


DEFAULT_MODEL = "grok-4-1-fast-reasoning"
XAI_BASE_URL = "https://api.x.ai/v1"

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class GenerationError(Exception):
    """The model call failed or its output did not match the schema."""


class Generator(Protocol):
    """Anything that can turn a prompt into a validated object or text."""

    async def generate_object(self, prompt: str, schema: type[M], system_prompt: str = "") -> M:
        ...

    async def generate_text(self, prompt: str, system_prompt: str = "") -> str:
        ...


async def call_grok(
    prompt: str,
    system_prompt: str = "",
    model: str = DEFAULT_MODEL,
    max_tokens: int = 1024,
    temperature: float = 0.3,
    timeout: float = 30.0,
    response_format: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Call xAI Grok chat completions.

    Args:
        prompt: User message
        system_prompt: System context
        model: xAI model identifier
        max_tokens: Max response tokens
        temperature: Sampling temperature (low = deterministic)
        timeout: Request timeout in seconds
        response_format: Optional OpenAI-style response_format

    Returns:
        Dict with status, content, model, usage info
    """
    api_key = os.environ.get("XAI_API_KEY", "")
    if not api_key:
        return {
            "status": "ERROR",
            "error": "XAI_API_KEY not set in environment",
            "content": "",
        }

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if response_format:
        payload["response_format"] = response_format

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                f"{XAI_BASE_URL}/chat/completions",
                headers=headers,
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

            content = data["choices"][0]["message"]["content"]
            usage = data.get("usage", {})

            return {
                "status": "OK",
                "content": content,
                "model": data.get("model", model),
                "usage": {
                    "prompt_tokens": usage.get("prompt_tokens", 0),
                    "completion_tokens": usage.get("completion_tokens", 0),
                    "reasoning_tokens": usage.get("reasoning_tokens", 0),
                },
            }

    except httpx.HTTPStatusError as e:
        return {
            "status": "ERROR",
            "error": f"xAI API error: {e.response.status_code} {e.response.text[:200]}",
            "content": "",
        }
    except Exception as e:
        return {
            "status": "ERROR",
            "error": f"xAI call failed: {e}",
            "content": "",
        }


def extract_json(content: str) -> Any:
    """Parse a JSON object out of a model reply.

    Accepts bare JSON, fenced ```json blocks, or an object embedded in
    surrounding prose.
    """
    text = content.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise GenerationError(f"No JSON object in model output: {content[:120]!r}")
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise GenerationError(f"Malformed JSON in model output: {e}") from e


class GrokGenerator:
    """Generator backed by call_grok."""

    def __init__(self, model: str = DEFAULT_MODEL, temperature: float = 0.3, max_tokens: int = 1024):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def _complete(self, prompt: str, system_prompt: str, json_mode: bool) -> str:
        result = await call_grok(
            prompt,
            system_prompt=system_prompt,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"} if json_mode else None,
        )
        if result["status"] != "OK":
            raise GenerationError(result.get("error", "unknown LLM error"))
        return result["content"]

    async def generate_object(self, prompt: str, schema: type[M], system_prompt: str = "") -> M:
        schema_hint = json.dumps(schema.model_json_schema())
        full_prompt = f"{prompt}\n\nRespond with a single JSON object matching this JSON schema:\n{schema_hint}"
        content = await self._complete(full_prompt, system_prompt, json_mode=True)
        try:
            return schema.model_validate(extract_json(content))
        except ValidationError as e:
            raise GenerationError(f"Model output failed validation: {e}") from e

    async def generate_text(self, prompt: str, system_prompt: str = "") -> str:
        content = await self._complete(prompt, system_prompt, json_mode=False)
        return content.strip()
