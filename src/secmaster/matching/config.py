"""Resolution run configuration with sensible defaults.

All parameters can be overridden via ``config/matching.yaml``.
If the file does not exist, defaults are used.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator


class ThresholdConfig(BaseModel):
    """Similarity bands for the decision engine.

    ``score >= approve`` is auto-approved, ``pending <= score < approve``
    goes to adjudication, anything lower is discarded.
    """

    approve: float = 0.90
    pending: float = 0.80

    @model_validator(mode="after")
    def check_band_order(self) -> "ThresholdConfig":
        if self.pending > self.approve:
            raise ValueError(
                f"pending threshold {self.pending} exceeds approve threshold {self.approve}"
            )
        return self


class RetryConfig(BaseModel):
    """Per-call timeout and exponential backoff for oracle calls."""

    max_attempts: int = Field(default=4, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=20.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)


class EmbeddingConfig(BaseModel):
    """Embedding oracle and cache settings for the similarity scorer."""

    model: str = "gemini-embedding-001"
    dimension: int = 768
    batch_size: int = Field(default=100, ge=1)
    max_concurrent_requests: int = Field(default=4, ge=1)
    max_description_chars: int = 1000
    cache_enabled: bool = True
    retry: RetryConfig = RetryConfig()


class AdjudicationConfig(BaseModel):
    """Reasoning oracle settings for PENDING decisions."""

    enabled: bool = False
    model: str = "gemini-2.5-flash"
    temperature: float = 0.0
    max_output_tokens: int = 256
    max_concurrent_requests: int = Field(default=4, ge=1)
    retry: RetryConfig = RetryConfig(max_attempts=3, timeout_seconds=60.0)


class GraphConfig(BaseModel):
    """Review flags for canonical entity graph components."""

    flag_duplicate_sources: bool = True
    flag_conflicting_isin: bool = True


class MatchingConfig(BaseModel):
    """Top-level resolution configuration combining all sub-configs."""

    thresholds: ThresholdConfig = ThresholdConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    adjudication: AdjudicationConfig = AdjudicationConfig()
    graph: GraphConfig = GraphConfig()
    probe_oracles: bool = True


def load_matching_config(path: Path) -> MatchingConfig:
    """Load resolution configuration from a YAML file.

    If the file does not exist, returns a ``MatchingConfig`` with all
    default values.  Partial overrides are supported -- only the keys
    present in the YAML file will override defaults.
    """
    if not path.exists():
        return MatchingConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return MatchingConfig(**data)
