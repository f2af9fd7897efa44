"""Cached AI recommendation pipeline.

cache check -> upstream fan-out -> prompt -> model call -> JSON validation
-> cache write. Failures anywhere after the cache check propagate to the
caller and leave the cache untouched; a stale entry is never served as a
fallback.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional
import threading
import time

from services.aggregator import AggregatedSnapshot, UpstreamSource, aggregate
from services.cache import CacheEntry, FreshnessCache
from services.errors import DeadlineExceeded, InputValidationError
from services.extraction import extract, extract_json_object
from services.llm import GenerativeClient
from services.prompts import current_price
from services.variants import PipelineVariant
from utils import _sanitize_symbol


class _KeyLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class RecommendationPipeline:
    def __init__(
        self,
        variant: PipelineVariant,
        cache: FreshnessCache,
        client: GenerativeClient,
        sources: List[UpstreamSource],
        upstream_timeout: float = 4.0,
        deadline_seconds: float = 10.0,
        single_flight: bool = True,
        extractor: Callable[[str], Dict[str, Any]] = extract_json_object,
    ):
        self.variant = variant
        self.cache = cache
        self.client = client
        self.sources = sources
        self.upstream_timeout = upstream_timeout
        self.deadline_seconds = deadline_seconds
        self.single_flight = single_flight
        self.extractor = extractor
        self._locks: Dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    def synthesize(self, snapshot: AggregatedSnapshot, symbol: str) -> str:
        return self.variant.template(snapshot, symbol, self.variant.schema)

    def run(self, symbol: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        key = _sanitize_symbol(symbol or "")
        if not key:
            raise InputValidationError("Symbol is required")
        now = now or datetime.now(timezone.utc)
        # The deadline covers the whole request, lock waits included
        deadline = time.monotonic() + self.deadline_seconds

        cached = self.cache.get_fresh(key, now)
        if cached is not None:
            print(f"💾 {self.variant.name} cache hit for {key}")
            return self._response(cached)
        if not self.single_flight:
            return self._refresh(key, now, deadline)

        # Only one refresh per key per process; late arrivals re-check the cache
        with self._key_lock(key):
            cached = self.cache.get_fresh(key, now)
            if cached is not None:
                print(f"💾 {self.variant.name} cache hit for {key} (after lock)")
                return self._response(cached)
            return self._refresh(key, now, deadline)

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        # Entries live only while someone holds or waits on them
        with self._locks_guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = self._locks[key] = _KeyLock()
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._locks_guard:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._locks[key]

    def _check_deadline(self, deadline: float, phase: str) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DeadlineExceeded(f"Deadline of {self.deadline_seconds:g}s exceeded {phase}")
        return remaining

    def _refresh(self, key: str, now: datetime, deadline: float) -> Dict[str, Any]:
        print(f"🔄 {self.variant.name}: no fresh entry for {key}, fetching new data")
        started = time.monotonic()
        remaining = self._check_deadline(deadline, "before fetching upstream data")
        snapshot = aggregate(
            key,
            self.sources,
            timeout=min(self.upstream_timeout, remaining),
            now=now,
        )
        self._check_deadline(deadline, "before the model call")

        prompt = self.synthesize(snapshot, key)
        raw = self.client.complete(prompt, deadline=deadline)
        # A late answer is dropped rather than cached
        self._check_deadline(deadline, "waiting for the model")
        recommendation = extract(raw, self.variant.schema, self.extractor)

        fetched_data = snapshot.model_dump()
        price = current_price(snapshot)
        written = self.cache.put(key, recommendation, now, fetched_data=fetched_data, current_price=price)
        if not written:
            stored = self.cache.get(key)
            if stored is not None:
                return self._response(stored)
        print(f"✅ {self.variant.name} refreshed {key} in {int((time.monotonic() - started) * 1000)}ms")
        return self._response(
            CacheEntry(
                symbol=key,
                recommendation=recommendation,
                fetched_data=fetched_data,
                current_price=price,
                last_fetched=now,
                updated_at=now,
            )
        )

    def _response(self, entry: CacheEntry) -> Dict[str, Any]:
        payload = dict(entry.recommendation)
        if self.variant.include_current_price:
            payload["current_price"] = entry.current_price
        if self.variant.include_fetched_data:
            payload["fetchedData"] = entry.fetched_data
        return payload


def build_sources(fmp_api_key: str, news_api_key: Optional[str]) -> Dict[str, UpstreamSource]:
    from functools import partial
    from services import market_data

    return {
        "quote": UpstreamSource("quote", partial(market_data.fetch_quote, api_key=fmp_api_key)),
        "company_outlook": UpstreamSource(
            "company_outlook", partial(market_data.fetch_company_outlook, api_key=fmp_api_key)
        ),
        "esg": UpstreamSource("esg", partial(market_data.fetch_esg, api_key=fmp_api_key)),
        "technical_indicators": UpstreamSource(
            "technical_indicators", partial(market_data.fetch_technical_indicators, api_key=fmp_api_key)
        ),
        "news": UpstreamSource("news", partial(market_data.fetch_news, api_key=news_api_key)),
    }


def build_pipelines(engine) -> Dict[str, RecommendationPipeline]:
    """Construct every variant's pipeline once, failing fast on missing secrets."""
    from datetime import timedelta

    import config
    from services.llm import GeminiClient, ModelConfig, OpenAIClient
    from services.variants import VARIANTS

    fmp_api_key = config.require_setting("FMP_API_KEY")
    sources = build_sources(fmp_api_key, config.NEWS_API_KEY)

    def model_config(model: str) -> ModelConfig:
        return ModelConfig(
            model=model,
            temperature=config.LLM_TEMPERATURE,
            max_tokens=config.LLM_MAX_TOKENS,
            max_retries=config.LLM_MAX_RETRIES,
            backoff_base_seconds=config.LLM_BACKOFF_BASE_SECONDS,
            timeout_seconds=config.PIPELINE_DEADLINE_SECONDS,
        )

    clients: Dict[str, GenerativeClient] = {
        "openai": OpenAIClient(config.require_setting("OPENAI_API_KEY"), model_config(config.OPENAI_MODEL)),
        "gemini": GeminiClient(config.require_setting("GEMINI_API_KEY"), model_config(config.GEMINI_MODEL)),
    }
    ttl = timedelta(seconds=config.RECOMMENDATION_CACHE_TTL_SECONDS)

    pipelines: Dict[str, RecommendationPipeline] = {}
    for name, variant in VARIANTS.items():
        pipelines[name] = RecommendationPipeline(
            variant=variant,
            cache=FreshnessCache(engine, variant.collection, ttl=ttl),
            client=clients[variant.provider],
            sources=[sources[s] for s in variant.sources],
            upstream_timeout=config.UPSTREAM_TIMEOUT_SECONDS,
            deadline_seconds=config.PIPELINE_DEADLINE_SECONDS,
            single_flight=config.SINGLE_FLIGHT_ENABLED,
        )
    return pipelines
