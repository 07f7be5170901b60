from secmaster.oracles.base import EmbeddingOracle, ReasoningOracle
from secmaster.oracles.stub import HashingEmbeddingOracle, ScriptedReasoningOracle

__all__ = [
    "EmbeddingOracle",
    "HashingEmbeddingOracle",
    "ReasoningOracle",
    "ScriptedReasoningOracle",
]
