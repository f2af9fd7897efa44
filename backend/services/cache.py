"""Freshness cache for AI recommendations.

Wraps the SQLite document table: answers whether a fresh recommendation
exists for a key and stores new ones with a timestamp. The TTL is a
read-time check only; stale rows stay in place until overwritten.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import json as _json

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine import Engine

from database.repositories.recommendation_repo import RecommendationRepository
from services.errors import CacheError


DEFAULT_TTL = timedelta(hours=24)


class CacheEntry(BaseModel):
    symbol: str
    recommendation: Dict[str, Any]
    fetched_data: Optional[Dict[str, Any]] = None
    current_price: Optional[float] = None
    last_fetched: datetime
    updated_at: datetime


def _utc(ts: datetime) -> datetime:
    # Handle both timezone-aware and naive timestamps; naive ones come from SQLite and are UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def is_fresh(entry: CacheEntry, now: datetime, ttl: timedelta = DEFAULT_TTL) -> bool:
    return _utc(now) - _utc(entry.last_fetched) < ttl


class FreshnessCache:
    """Recommendation cache scoped to one collection (one endpoint variant)."""

    def __init__(self, engine: Engine, collection: str, ttl: timedelta = DEFAULT_TTL):
        self._maker = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        self.collection = collection
        self.ttl = ttl

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            with self._maker() as db:
                row = RecommendationRepository(db).get(self.collection, key)
                if row is None:
                    return None
                return CacheEntry(
                    symbol=row.symbol,
                    recommendation=_json.loads(row.recommendation_json),
                    fetched_data=_json.loads(row.fetched_data_json) if row.fetched_data_json else None,
                    current_price=row.current_price,
                    last_fetched=_utc(row.last_fetched),
                    updated_at=_utc(row.updated_at),
                )
        except SQLAlchemyError as e:
            print(f"❌ cache read failed for {self.collection}/{key}: {e}")
            raise CacheError(f"Recommendation cache unavailable: {type(e).__name__}") from e

    def is_fresh(self, entry: CacheEntry, now: datetime) -> bool:
        return is_fresh(entry, now, self.ttl)

    def get_fresh(self, key: str, now: datetime) -> Optional[CacheEntry]:
        entry = self.get(key)
        if entry is not None and self.is_fresh(entry, now):
            return entry
        return None

    def put(
        self,
        key: str,
        recommendation: Dict[str, Any],
        now: datetime,
        fetched_data: Optional[Dict[str, Any]] = None,
        current_price: Optional[float] = None,
    ) -> bool:
        """Overwrite the entry for ``key``; both timestamps are set to ``now``.

        Returns False if a newer entry is already stored.
        """
        stamp = _utc(now).replace(tzinfo=None)
        try:
            with self._maker() as db:
                written = RecommendationRepository(db).save(
                    collection=self.collection,
                    symbol=key,
                    recommendation_json=_json.dumps(recommendation),
                    fetched_data_json=_json.dumps(fetched_data, default=str) if fetched_data is not None else None,
                    current_price=current_price,
                    last_fetched=stamp,
                )
        except SQLAlchemyError as e:
            print(f"❌ cache write failed for {self.collection}/{key}: {e}")
            raise CacheError(f"Recommendation cache unavailable: {type(e).__name__}") from e
        if written:
            print(f"💾 cached recommendation for {self.collection}/{key}")
        else:
            print(f"⚠️ newer recommendation already cached for {self.collection}/{key}; kept it")
        return written
