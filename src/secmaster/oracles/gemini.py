"""Gemini adapters for the embedding and reasoning oracles.

Uses the google-genai SDK.  Retries and timeouts are applied by the
calling stage (``call_with_retry``), not here, so one adapter call is
exactly one API round-trip.
"""

from __future__ import annotations

import structlog
from google import genai
from google.genai import types

logger = structlog.get_logger()


def create_client(api_key: str) -> genai.Client:
    """Create a Gemini API client.

    Args:
        api_key: Google AI Studio API key.

    Returns:
        Configured genai.Client instance.
    """
    return genai.Client(api_key=api_key)


class GeminiEmbeddingOracle:
    """Embeds security descriptions with a Gemini embedding model."""

    def __init__(self, client: genai.Client, model: str, dimension: int = 768):
        self.client = client
        self.model = model
        self.dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.aio.models.embed_content(
            model=self.model,
            contents=texts,
            config=types.EmbedContentConfig(
                task_type="SEMANTIC_SIMILARITY",
                output_dimensionality=self.dimension,
            ),
        )
        embeddings = response.embeddings or []
        logger.debug("gemini_embed_complete", texts=len(texts), vectors=len(embeddings))
        return [list(e.values or []) for e in embeddings]


class GeminiReasoningOracle:
    """Sends adjudication prompts to a Gemini text model."""

    def __init__(
        self,
        client: genai.Client,
        model: str,
        system_instruction: str,
        temperature: float = 0.0,
        max_output_tokens: int = 256,
    ):
        self.client = client
        self.model = model
        self.system_instruction = system_instruction
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def complete(self, prompt: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=self.system_instruction,
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            ),
        )

        usage = response.usage_metadata
        logger.debug(
            "gemini_call_complete",
            prompt_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )
        return response.text or ""
