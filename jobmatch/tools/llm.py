"""Ollama client for completions and embeddings, plus JSON-answer helpers."""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from jobmatch.errors import LLMError, LLMParsingError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

REPAIR_PROMPT = """Your previous response was not valid JSON. Respond with ONLY a valid JSON object.

Previous response:
{previous_response}

Please fix the JSON and respond with ONLY the corrected JSON object.
"""


class LLMClient(Protocol):
    async def complete(self, prompt: str, temperature: float = 0.1) -> str: ...

    async def embed(self, text: str) -> list[float]: ...


class OllamaClient:
    """Talks to a local Ollama server over its HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3",
        embedding_model: str = "nomic-embed-text",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.embedding_model = embedding_model
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, prompt: str, temperature: float = 0.1) -> str:
        data = await self._post(
            "/api/generate",
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": temperature, "num_predict": 1024},
            },
        )
        return data.get("response", "")

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise LLMError("Cannot embed empty text")
        data = await self._post(
            "/api/embeddings",
            {"model": self.embedding_model, "prompt": text[:8000]},
        )
        embedding = data.get("embedding")
        if not embedding:
            raise LLMError("Ollama returned no embedding")
        return [float(x) for x in embedding]

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            response = await self._client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise LLMError(f"Ollama request to {path} timed out") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"Ollama HTTP {e.response.status_code} on {path}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise LLMError(f"Ollama request to {path} failed: {e}") from e


async def ask_json(llm: LLMClient, prompt: str, schema: type[ModelT]) -> ModelT:
    """Ask for a JSON object and validate it against ``schema``.

    Retries once with a repair prompt, then raises LLMParsingError.
    """
    response_text = await llm.complete(prompt)
    result = parse_json_model(response_text, schema)
    if result is not None:
        return result

    logger.info("First %s answer was not valid JSON, retrying with repair prompt", schema.__name__)
    repair_response = await llm.complete(
        REPAIR_PROMPT.format(previous_response=response_text[:1500])
    )
    result = parse_json_model(repair_response, schema)
    if result is not None:
        return result

    raise LLMParsingError(f"Failed to parse LLM response as {schema.__name__} JSON")


def parse_json_model(raw: str, schema: type[ModelT]) -> ModelT | None:
    """Parse and validate an LLM response, returning None if it does not fit."""
    json_str = extract_json(raw or "")
    if not json_str:
        logger.warning("No JSON found in LLM response")
        return None
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error: %s", e)
        return None
    if not isinstance(data, dict):
        logger.warning("LLM JSON was %s, expected an object", type(data).__name__)
        return None
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        logger.warning("Pydantic validation error: %s", e)
        return None


def extract_json(text: str) -> str | None:
    """Extract a JSON object from text that may contain surrounding content."""
    text = text.strip()
    if text.startswith("{"):
        depth = 0
        in_string = False
        escaped = False
        for i, ch in enumerate(text):
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[: i + 1]

    match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if match:
        return match.group(1)

    match = re.search(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}", text, re.DOTALL)
    if match:
        return match.group(0)

    return None
