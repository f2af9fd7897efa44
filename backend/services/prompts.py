"""Prompt templates that turn an aggregated snapshot into a model instruction.

Templates are pure. Each names the allowed ratings and shows the exact JSON
shape inline; missing sources are described in words rather than rendered
as null, and every list is truncated so the prompt stays bounded.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import json as _json

from services.aggregator import AggregatedSnapshot
from services.extraction import RecommendationSchema
from services.market_data import _safe_float


MAX_TECHNICAL_POINTS = 30
MAX_NEWS_ARTICLES = 5
OUTLOOK_MAX_CHARS = 6000

NO_QUOTE = "No current quote data available."
NO_PRICE = "No current price data available."
NO_ESG = "No recent ESG data available."
NO_TECHNICALS = "No recent technical indicators available."
NO_NEWS = "No recent news available."
NO_OUTLOOK = "No company outlook data available."


def current_price(snapshot: AggregatedSnapshot) -> Optional[float]:
    quote = snapshot.get("quote")
    if isinstance(quote, dict):
        price = _safe_float(quote.get("price"))
        if price is not None:
            return price
    outlook = snapshot.get("company_outlook")
    if isinstance(outlook, dict):
        return _safe_float((outlook.get("profile") or {}).get("price"))
    return None


def _fmt(v: Any) -> str:
    return "n/a" if v is None or v == "" else str(v)


def _describe_quote(quote: Optional[dict]) -> str:
    if not quote:
        return NO_QUOTE
    return "\n".join(
        [
            f"- Name: {_fmt(quote.get('name'))} ({_fmt(quote.get('symbol'))})",
            f"- Current Price: ${_fmt(quote.get('price'))}",
            f"- Percentage Change: {_fmt(quote.get('changesPercentage'))}%",
            f"- Volume: {_fmt(quote.get('volume'))}",
            f"- Market Cap: ${_fmt(quote.get('marketCap'))}",
            f"- P/E Ratio: {_fmt(quote.get('pe'))}",
        ]
    )


def _describe_price(snapshot: AggregatedSnapshot) -> str:
    price = current_price(snapshot)
    return f"${price}" if price is not None else NO_PRICE


def _describe_esg(esg: Optional[dict]) -> str:
    if not esg or esg.get("environmentalScore") is None:
        return NO_ESG
    return (
        f"ESG scores available with environmental: {esg.get('environmentalScore')}, "
        f"social: {_fmt(esg.get('socialScore'))}, governance: {_fmt(esg.get('governanceScore'))}"
    )


def _describe_technicals(points: Optional[List[dict]]) -> str:
    if not points:
        return NO_TECHNICALS
    lines = []
    for p in points[:MAX_TECHNICAL_POINTS]:
        rsi = _safe_float(p.get("rsi"))
        close = _safe_float(p.get("close"))
        rsi_txt = f"{rsi:.2f}" if rsi is not None else "n/a"
        close_txt = f", close {close:.2f}" if close is not None else ""
        lines.append(f"  - {_fmt(p.get('date'))}: RSI(14) {rsi_txt}{close_txt}")
    return "\n" + "\n".join(lines)


def _describe_news(articles: Optional[List[dict]]) -> str:
    if not articles:
        return NO_NEWS
    lines = []
    for a in articles[:MAX_NEWS_ARTICLES]:
        sentiment = a.get("sentiment")
        sent_txt = f", sentiment {sentiment:+.2f}" if isinstance(sentiment, (int, float)) else ""
        lines.append(f"  - {a.get('title') or 'Untitled'} ({_fmt(a.get('source'))}, {_fmt(a.get('date'))}{sent_txt})")
    return "\n" + "\n".join(lines)


def _describe_outlook(outlook: Optional[dict]) -> str:
    if not outlook:
        return NO_OUTLOOK
    dumped = _json.dumps(outlook, default=str, separators=(",", ":"))
    if len(dumped) > OUTLOOK_MAX_CHARS:
        dumped = dumped[:OUTLOOK_MAX_CHARS] + " …(truncated)"
    return dumped


def _ratings_list(schema: RecommendationSchema) -> str:
    quoted = [f'"{r}"' for r in schema.ratings]
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}" if len(quoted) > 1 else quoted[0]


def _fields_example(schema: RecommendationSchema, rating: str) -> Dict[str, Any]:
    example: Dict[str, Any] = {
        schema.rating_field: rating,
        schema.price_field: "target price in USD",
        schema.reason_field: "a very short reason",
    }
    if schema.confidence_field:
        example[schema.confidence_field] = int(schema.confidence_range[1]) - 5
    if schema.criteria_field:
        example[schema.criteria_field] = 10
    return example


def json_shape(schema: RecommendationSchema) -> str:
    """Literal JSON example the model must mirror."""
    rating = "/".join(schema.ratings)
    if schema.horizons:
        shape: Dict[str, Any] = {h: _fields_example(schema, rating) for h in schema.horizons}
    else:
        shape = _fields_example(schema, rating)
    return _json.dumps(shape, indent=2)


def _guidelines(schema: RecommendationSchema) -> str:
    lines = [
        "- Ensure the JSON structure is strictly followed.",
        f'- The "{schema.rating_field}" should be one of {_ratings_list(schema)}.',
        f'- "{schema.price_field}" should be a numerical value representing the target price in USD.',
        f'- "{schema.reason_field}" should be concise, no longer than two sentences.',
    ]
    if schema.confidence_field:
        low, high = schema.confidence_range
        lines.append(
            f'- "{schema.confidence_field}" should be a numerical value between {low:g} and {high:g} '
            "indicating the confidence level."
        )
    if schema.criteria_field:
        lines.append(f'- "{schema.criteria_field}" should be the number of criteria you weighed.')
    if schema.horizons:
        lines.append(f"- Provide one object for each horizon: {', '.join(schema.horizons)}.")
    return "\n".join(lines)


def quote_rating(snapshot: AggregatedSnapshot, symbol: str, schema: RecommendationSchema) -> str:
    return (
        "Analyze the following stock data and provide an investment recommendation.\n\n"
        f"**Stock Information ({symbol}):**\n"
        f"{_describe_quote(snapshot.get('quote'))}\n\n"
        "**Task:**\n"
        "Based on the above data, provide an investment recommendation. "
        "The response should be in JSON format as shown below:\n\n"
        f"```json\n{json_shape(schema)}\n```\n\n"
        "**Guidelines:**\n"
        f"{_guidelines(schema)}\n"
    )


def outlook_rating(snapshot: AggregatedSnapshot, symbol: str, schema: RecommendationSchema) -> str:
    return (
        f"Analyze the following stock data for {symbol} with emphasis on the most recent information "
        "and provide an investment recommendation.\n\n"
        "**Stock Data (focus on the latest ESG data for this year, technical indicators for the past "
        "30 days, and current price):**\n"
        f"- Current Price: {_describe_price(snapshot)}\n"
        f"- ESG Data: {_describe_esg(snapshot.get('esg'))}\n"
        f"- Recent Technical Indicators: {_describe_technicals(snapshot.get('technical_indicators'))}\n"
        f"- Recent News: {_describe_news(snapshot.get('news'))}\n"
        f"- Company Outlook: {_describe_outlook(snapshot.get('company_outlook'))}\n\n"
        "**Task:**\n"
        "Based on the above data, especially the recent data, provide an investment recommendation. "
        "The response should be in JSON format as shown below:\n\n"
        f"```json\n{json_shape(schema)}\n```\n\n"
        "**Guidelines:**\n"
        f"{_guidelines(schema)}\n"
        "- Focus on the most recent data in your analysis.\n"
    )


def horizon_prediction(snapshot: AggregatedSnapshot, symbol: str, schema: RecommendationSchema) -> str:
    horizons = " and ".join(f"**{h}**" for h in schema.horizons)
    return (
        f"Analyze the following stock ({symbol}) using recent data:\n"
        f"- ESG Data: {_describe_esg(snapshot.get('esg'))}\n"
        f"- Current Price: {_describe_price(snapshot)}\n"
        f"- Recent Technical Indicators: {_describe_technicals(snapshot.get('technical_indicators'))}\n\n"
        f"Provide target prices for {horizons}, confidence scores, a short explanation, "
        f"and a recommendation ({', '.join(schema.ratings)}).\n\n"
        f"Format:\n{json_shape(schema)}\n\n"
        "**Guidelines:**\n"
        f"{_guidelines(schema)}\n"
    )
