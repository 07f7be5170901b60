"""Prompt template and security formatting for oracle adjudication."""
from __future__ import annotations

from secmaster.domain import HarmonizedEntity

SYSTEM_PROMPT = """You are an expert in financial entity resolution.

Your task: decide whether two security records from different data feeds
refer to the SAME financial instrument.

Consider:
- Company name variations (Holdings, Hldgs, PLC, Ltd, Limited)
- Asset type match
- Issuer similarity
- Overall context

Respond ONLY with one of these exact formats:
APPROVED - [reason in 1-2 sentences]
REJECTED - [reason in 1-2 sentences]"""


def format_pair_prompt(
    entity_1: HarmonizedEntity,
    entity_2: HarmonizedEntity,
    score: float,
) -> str:
    """Format two harmonized securities for adjudication.

    Args:
        entity_1: First security (earlier-ranked feed).
        entity_2: Second security.
        score: Cosine similarity of their descriptions.

    Returns:
        User message for the reasoning oracle.
    """
    return f"""Are these two securities the same instrument?

Security 1: {entity_1.name_clean}
Issuer 1: {entity_1.issuer_clean}
Asset Type 1: {entity_1.asset_type}

Security 2: {entity_2.name_clean}
Issuer 2: {entity_2.issuer_clean}
Asset Type 2: {entity_2.asset_type}

Vector Similarity Score: {score:.4f}

Respond ONLY with one of these exact formats:
APPROVED - [reason in 1-2 sentences]
REJECTED - [reason in 1-2 sentences]"""
