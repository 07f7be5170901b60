"""Per-run summary reported to operators."""

from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass, field


@dataclass
class RunSummary:
    """Counters for one resolution (or adjudication) run.

    The counters let an operator tell "nothing matched" apart from
    "pipeline degraded": unresolved and unavailable counts are reported
    next to the decision counts, never folded into them.
    """

    run_id: str
    kind: str = "resolve"
    status: str = "completed"
    started_at: dt.datetime | None = None
    finished_at: dt.datetime | None = None

    processed: int = 0
    dropped_malformed: int = 0
    duplicates_skipped: int = 0
    entities: int = 0

    candidate_pairs: int = 0
    scored: int = 0
    unresolved_scoring: int = 0
    below_threshold: int = 0

    decided_approved: int = 0
    decided_pending: int = 0
    decided_rejected: int = 0
    carried_forward: int = 0

    adjudicated_approved: int = 0
    adjudicated_rejected: int = 0
    adjudicated_inconclusive: int = 0
    adjudication_unavailable: int = 0

    canonical_securities: int = 0
    flagged_securities: int = 0

    embedding_calls: int = 0
    embedding_cache_hits: int = 0
    adjudication_calls: int = 0

    blocking: dict = field(default_factory=dict)
    errors: dict[str, int] = field(default_factory=dict)

    def add_errors(self, counts: dict[str, int]) -> None:
        for kind, n in counts.items():
            self.errors[kind] = self.errors.get(kind, 0) + n

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        for key in ("started_at", "finished_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data
