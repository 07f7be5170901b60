from secmaster.adjudication.adjudicator import AdjudicationOutcome, Adjudicator
from secmaster.adjudication.parser import parse_verdict
from secmaster.adjudication.resolver import AdjudicationStats, adjudicate_decisions

__all__ = [
    "AdjudicationOutcome",
    "AdjudicationStats",
    "Adjudicator",
    "adjudicate_decisions",
    "parse_verdict",
]
