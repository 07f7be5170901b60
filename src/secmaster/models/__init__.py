from secmaster.models.adjudication_log import AdjudicationLog
from secmaster.models.base import Base
from secmaster.models.canonical_security import CanonicalSecurity, CanonicalSecurityMember
from secmaster.models.harmonized_security import HarmonizedSecurity
from secmaster.models.match_decision import MatchDecision
from secmaster.models.resolution_run import ResolutionRun
from secmaster.models.security_embedding import SecurityEmbedding

__all__ = [
    "AdjudicationLog",
    "Base",
    "CanonicalSecurity",
    "CanonicalSecurityMember",
    "HarmonizedSecurity",
    "MatchDecision",
    "ResolutionRun",
    "SecurityEmbedding",
]
