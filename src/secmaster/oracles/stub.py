"""Offline, deterministic embedding oracle.

Feature-hashes character trigrams into a fixed number of buckets and
L2-normalizes the result.  Identical text always gives an identical
vector, and descriptions that share most of their characters ("HSBC
HOLDINGS" vs "HSBC HLDGS") land close together.  Useful for dry runs
and local development without network access.
"""

from __future__ import annotations

import hashlib
import math


class HashingEmbeddingOracle:
    """Character-trigram hashing embedder."""

    def __init__(self, dimension: int = 768, model: str = "hashing-trigram-v1"):
        self.dimension = dimension
        self.model = model

    def embed_one(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        padded = f"  {text.upper()}  "
        for i in range(len(padded) - 2):
            digest = hashlib.blake2b(padded[i:i + 3].encode(), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            sign = 1.0 if value & 1 else -1.0
            vector[(value >> 1) % self.dimension] += sign

        norm = math.sqrt(math.fsum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_one(t) for t in texts]


class ScriptedReasoningOracle:
    """Reasoning oracle that replays canned responses in order.

    Once the script is exhausted the last response is repeated.  Prompts
    are recorded on ``prompts`` for inspection.
    """

    def __init__(self, responses: list[str], model: str = "scripted-v1"):
        if not responses:
            raise ValueError("ScriptedReasoningOracle needs at least one response")
        self.responses = list(responses)
        self.model = model
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        index = min(len(self.prompts), len(self.responses)) - 1
        return self.responses[index]
