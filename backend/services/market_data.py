"""Upstream market-data fetchers for Financial Modeling Prep and newsapi.ai.

Each fetcher returns parsed JSON trimmed to what the prompts need, ``None``
when the source has no data for the symbol, and raises UpstreamFetchError
on transport failures, non-2xx answers or malformed JSON.
"""

from datetime import datetime, timedelta
from typing import Any, List, Optional

import requests

import config
from services.errors import UpstreamFetchError
from utils import _format_date


# Company outlook sections that bloat the prompt without helping the rating
OUTLOOK_DROPPED_KEYS = ("insideTrades", "stockNews", "splitsHistory")
TECHNICAL_LOOKBACK_DAYS = 30
RSI_PERIOD = 14
NEWS_SOURCES = (
    "reuters.com",
    "seekingalpha.com",
    "benzinga.com",
    "bloomberg.com",
    "marketwatch.com",
    "barrons.com",
)
NEWS_MAX_ARTICLES = 10


def _safe_float(v):
    try:
        if v is None:
            return None
        f = float(v)
        if f != f:  # NaN check
            return None
        return f
    except Exception:
        return None


def _request_json(method: str, url: str, source: str, timeout: float, **kwargs) -> Any:
    try:
        resp = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise UpstreamFetchError(f"{source} timed out") from e
    except requests.exceptions.RequestException as e:
        raise UpstreamFetchError(f"{source} request failed: {type(e).__name__}") from e
    if resp.status_code < 200 or resp.status_code >= 300:
        snippet = (resp.text or "").strip().replace("\n", " ")[:300]
        print(f"❌ {source} failed: HTTP {resp.status_code} — {snippet}")
        raise UpstreamFetchError(f"{source} API error: {resp.status_code}")
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamFetchError(f"{source} returned malformed JSON") from e


def _fmp_get(path: str, source: str, api_key: str, timeout: float, **params) -> Any:
    params["apikey"] = api_key
    return _request_json("GET", f"{config.FMP_BASE_URL}{path}", source, timeout, params=params)


def fetch_quote(symbol: str, now: datetime, timeout: float, api_key: str) -> Optional[dict]:
    data = _fmp_get(f"/api/v3/quote/{symbol}", "Quote", api_key, timeout)
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    return data[0]


def fetch_company_outlook(symbol: str, now: datetime, timeout: float, api_key: str) -> Optional[dict]:
    data = _fmp_get("/api/v4/company-outlook", "Company Outlook", api_key, timeout, symbol=symbol)
    if not isinstance(data, dict) or not data:
        return None
    return {k: v for k, v in data.items() if k not in OUTLOOK_DROPPED_KEYS}


def fetch_esg(symbol: str, now: datetime, timeout: float, api_key: str) -> Optional[dict]:
    data = _fmp_get(
        "/api/v4/esg-environmental-social-governance-data",
        "ESG",
        api_key,
        timeout,
        symbol=symbol,
        year=now.year,
    )
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    return data[0]


def fetch_technical_indicators(symbol: str, now: datetime, timeout: float, api_key: str) -> Optional[List[dict]]:
    """Daily RSI(14) points for the last 30 days, most recent first."""
    data = _fmp_get(
        f"/api/v3/technical_indicator/daily/{symbol}",
        "Technical Indicators",
        api_key,
        timeout,
        period=RSI_PERIOD,
        type="rsi",
        **{
            "from": _format_date(now - timedelta(days=TECHNICAL_LOOKBACK_DAYS)),
            "to": _format_date(now),
        },
    )
    if not isinstance(data, list) or not data:
        return None
    return [row for row in data if isinstance(row, dict)][:TECHNICAL_LOOKBACK_DAYS]


def fetch_news(symbol: str, now: datetime, timeout: float, api_key: Optional[str]) -> Optional[List[dict]]:
    """Recent title-matching articles from the financial press, with sentiment."""
    if not api_key:
        raise UpstreamFetchError("News API key is not configured")
    keyword = symbol.upper()
    body = {
        "query": {
            "$query": {
                "$and": [
                    {
                        "$or": [
                            {"keyword": keyword, "keywordLoc": "title"},
                            {"keyword": keyword.lower(), "keywordLoc": "title"},
                        ]
                    },
                    {"$or": [{"sourceUri": s} for s in NEWS_SOURCES]},
                    {"lang": "eng"},
                ]
            },
            "$filter": {"forceMaxDataTimeWindow": "31"},
        },
        "resultType": "articles",
        "articlesSortBy": "date",
        "includeArticleSocialScore": True,
        "apiKey": api_key,
    }
    data = _request_json("POST", config.NEWS_API_URL, "News", timeout, json=body)
    results = ((data or {}).get("articles") or {}).get("results") if isinstance(data, dict) else None
    if not results:
        return None
    articles: List[dict] = []
    for a in results[:NEWS_MAX_ARTICLES]:
        if not isinstance(a, dict):
            continue
        articles.append(
            {
                "title": a.get("title") or "",
                "date": a.get("date"),
                "source": (a.get("source") or {}).get("title"),
                "url": a.get("url"),
                "sentiment": _safe_float(a.get("sentiment")),
            }
        )
    return articles or None
