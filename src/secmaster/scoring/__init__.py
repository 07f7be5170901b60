from secmaster.scoring.scorer import SimilarityScorer
from secmaster.scoring.similarity import cosine_similarity

__all__ = ["SimilarityScorer", "cosine_similarity"]
