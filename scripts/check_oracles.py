"""Live smoke test of the Gemini embedding and reasoning oracles.

Usage:
    SECMASTER_GEMINI_API_KEY=... .venv/bin/python scripts/check_oracles.py
"""
from __future__ import annotations

import asyncio
import os
import sys

from secmaster.adjudication.parser import parse_verdict
from secmaster.adjudication.prompt import SYSTEM_PROMPT, format_pair_prompt
from secmaster.domain import HarmonizedEntity, SourceFeed
from secmaster.errors import InconclusiveAdjudicationError
from secmaster.matching.config import AdjudicationConfig, EmbeddingConfig
from secmaster.oracles.gemini import GeminiEmbeddingOracle, GeminiReasoningOracle, create_client
from secmaster.scoring.similarity import cosine_similarity

# Same instrument, abbreviated differently by two vendors (expect: APPROVED)
PAIR_SAME = (
    HarmonizedEntity(
        harmonized_id="FA_SEC0001", source=SourceFeed.FEED_A, native_id="SEC0001",
        name_clean="HSBC HOLDINGS EQUITY", issuer_clean="HSBC HOLDINGS", asset_type="EQUITY",
        isin="GB0005405286",
    ),
    HarmonizedEntity(
        harmonized_id="FB_HSBA.L", source=SourceFeed.FEED_B, native_id="HSBA.L",
        name_clean="HSBC HLDGS EQUITY", issuer_clean="HSBC HLDGS", asset_type="EQUITY",
        isin="GB0005405286",
    ),
)

# Same issuer, different instruments (expect: REJECTED)
PAIR_DIFFERENT = (
    HarmonizedEntity(
        harmonized_id="FA_SEC0002", source=SourceFeed.FEED_A, native_id="SEC0002",
        name_clean="BARCLAYS PLC EQUITY", issuer_clean="BARCLAYS PLC", asset_type="EQUITY",
    ),
    HarmonizedEntity(
        harmonized_id="FB_BARC.PFD", source=SourceFeed.FEED_B, native_id="BARC.PFD",
        name_clean="BARCLAYS BANK PREFERENCE SHARES", issuer_clean="BARCLAYS BANK",
        asset_type="EQUITY",
    ),
)


async def check_pair(embedder, reasoner, pair, label, expected):
    print(f"\n{'='*60}")
    print(f"TEST: {label}")
    e1, e2 = pair
    vectors = await embedder.embed([e1.description, e2.description])
    score = cosine_similarity(vectors[0], vectors[1])
    print(f"  {e1.description}\n  {e2.description}\n  Similarity: {score}")

    response = await reasoner.complete(format_pair_prompt(e1, e2, score))
    print(f"  Response: {response}")
    try:
        verdict, rationale = parse_verdict(response)
    except InconclusiveAdjudicationError:
        print("  [INCONCLUSIVE]")
        return False
    ok = verdict.value == expected
    print(f"  [{'PASS' if ok else 'FAIL'}] {verdict.value}: {rationale}")
    return ok


async def main():
    api_key = os.environ.get("SECMASTER_GEMINI_API_KEY", "")
    if not api_key:
        print("ERROR: Set SECMASTER_GEMINI_API_KEY environment variable")
        sys.exit(1)

    embedding_config = EmbeddingConfig()
    adjudication_config = AdjudicationConfig()
    client = create_client(api_key)
    embedder = GeminiEmbeddingOracle(client, embedding_config.model, embedding_config.dimension)
    reasoner = GeminiReasoningOracle(client, adjudication_config.model, SYSTEM_PROMPT)

    print(f"Embedding model: {embedder.model}  Reasoning model: {reasoner.model}")
    results = [
        await check_pair(embedder, reasoner, PAIR_SAME, "Vendor abbreviation", "APPROVED"),
        await check_pair(embedder, reasoner, PAIR_DIFFERENT, "Ordinary vs preference", "REJECTED"),
    ]
    print(f"\n  Result: {sum(results)}/{len(results)} passed")


if __name__ == "__main__":
    asyncio.run(main())
