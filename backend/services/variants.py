"""Endpoint flavours of the recommendation pipeline.

A variant is configuration only: which cache collection it owns, which
upstream sources it reads, which prompt template and validation schema it
uses, which model provider answers it, and what the response carries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from services.aggregator import AggregatedSnapshot
from services.extraction import BASIC_RATINGS, EXTENDED_RATINGS, RecommendationSchema
from services import prompts


PromptTemplate = Callable[[AggregatedSnapshot, str, RecommendationSchema], str]


@dataclass(frozen=True)
class PipelineVariant:
    name: str
    collection: str
    sources: Tuple[str, ...]
    template: PromptTemplate
    schema: RecommendationSchema
    provider: str = "openai"
    include_current_price: bool = False
    include_fetched_data: bool = False


AI_RATING = PipelineVariant(
    name="ai-rating",
    collection="aiRatings",
    sources=("quote",),
    template=prompts.quote_rating,
    schema=RecommendationSchema(ratings=BASIC_RATINGS, criteria_field="criteria_count"),
)

GEMINI_AI_RATING = PipelineVariant(
    name="gemini-ai-rating",
    collection="geminiAiRatings",
    sources=("company_outlook", "esg", "technical_indicators", "quote", "news"),
    template=prompts.outlook_rating,
    schema=RecommendationSchema(ratings=BASIC_RATINGS, confidence_field="confidence"),
    provider="gemini",
    include_current_price=True,
)

AI_PREDICTION = PipelineVariant(
    name="ai-prediction",
    collection="aiPredictions",
    sources=("esg", "technical_indicators", "quote"),
    template=prompts.horizon_prediction,
    schema=RecommendationSchema(
        ratings=EXTENDED_RATINGS,
        rating_field="recommendation",
        reason_field="explanation",
        confidence_field="confidence_score",
        horizons=("1W", "1M"),
    ),
    include_current_price=True,
    include_fetched_data=True,
)

VARIANTS: Dict[str, PipelineVariant] = {v.name: v for v in (AI_RATING, GEMINI_AI_RATING, AI_PREDICTION)}
