

from .recommendation_repo import RecommendationRepository

__all__ = [
	"RecommendationRepository",
]
