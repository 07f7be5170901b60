"""Narrow contracts for the two external oracles.

The pipeline never sees a vendor SDK directly: scoring talks to an
``EmbeddingOracle`` and adjudication to a ``ReasoningOracle``.  Each
real backend gets one adapter; tests plug in deterministic fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingOracle(Protocol):
    """Maps text descriptions to fixed-length numeric vectors."""

    model: str

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        ...


@runtime_checkable
class ReasoningOracle(Protocol):
    """Answers a free-text prompt with free text."""

    model: str

    async def complete(self, prompt: str) -> str:
        ...
