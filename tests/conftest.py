"""Shared fakes for pipeline tests."""

from __future__ import annotations

import pytest

from jobmatch.errors import LLMError


class FakeLLM:
    """Scripted LLM: answers completions in order and embeds by keyword."""

    def __init__(
        self,
        responses: list[str] | None = None,
        default_response: str = "• Good fit",
        embeddings: dict[str, list[float]] | None = None,
        default_embedding: list[float] | None = None,
        fail_embed_containing: tuple[str, ...] = (),
        fail_complete_containing: tuple[str, ...] = (),
    ) -> None:
        self.responses = list(responses or [])
        self.default_response = default_response
        self.embeddings = embeddings or {}
        self.default_embedding = default_embedding or [1.0, 0.0, 0.0]
        self.fail_embed_containing = fail_embed_containing
        self.fail_complete_containing = fail_complete_containing
        self.prompts: list[str] = []
        self.embedded: list[str] = []

    async def complete(self, prompt: str, temperature: float = 0.1) -> str:
        self.prompts.append(prompt)
        if any(token in prompt for token in self.fail_complete_containing):
            raise LLMError("model unavailable")
        if self.responses:
            return self.responses.pop(0)
        return self.default_response

    async def embed(self, text: str) -> list[float]:
        self.embedded.append(text)
        if any(token in text for token in self.fail_embed_containing):
            raise LLMError("embedding failed")
        for token, vector in self.embeddings.items():
            if token in text:
                return vector
        return self.default_embedding


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def no_sleep():
    """Async sleep replacement that records requested delays."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
