"""Error taxonomy for the resolution pipeline.

Per-record and per-pair errors (malformed rows, oracle outages,
unparseable adjudications) are isolated by the stage that raises them
and counted in the run summary.  ``DuplicateDecisionError`` and
``PipelineAbortedError`` are structural and abort the run.
"""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for all resolution pipeline errors."""

    kind = "resolution_error"


class MalformedRecordError(ResolutionError):
    """A source row is missing a required field or fails validation."""

    kind = "malformed_record"

    def __init__(self, message: str, source: str | None = None, native_id: str | None = None):
        super().__init__(message)
        self.source = source
        self.native_id = native_id


class ScoringUnavailableError(ResolutionError):
    """The embedding oracle failed or returned malformed output."""

    kind = "scoring_unavailable"


class AdjudicationUnavailableError(ResolutionError):
    """The reasoning oracle failed after all retry attempts."""

    kind = "adjudication_unavailable"


class InconclusiveAdjudicationError(ResolutionError):
    """The reasoning oracle answered without exactly one verdict token."""

    kind = "adjudication_inconclusive"

    def __init__(self, message: str, response: str = ""):
        super().__init__(message)
        self.response = response


class DuplicateDecisionError(ResolutionError):
    """The same unordered entity pair reached the decision engine twice."""

    kind = "duplicate_decision"


class PipelineAbortedError(ResolutionError):
    """Structural failure: the run stops before producing any output."""

    kind = "pipeline_aborted"
