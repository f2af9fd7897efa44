from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from database.models import Base
from services.cache import CacheEntry, FreshnessCache, is_fresh
from services.errors import CacheError


NOW = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
REC = {"rating": "Buy", "target_price": 195.0, "reason": "Strong services growth."}


def _engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def _entry(last_fetched: datetime) -> CacheEntry:
    return CacheEntry(symbol="AAPL", recommendation=REC, last_fetched=last_fetched, updated_at=last_fetched)


def test_freshness_boundary_is_strict():
    ttl = timedelta(hours=24)
    assert is_fresh(_entry(NOW - ttl + timedelta(seconds=1)), NOW, ttl)
    assert not is_fresh(_entry(NOW - ttl), NOW, ttl)
    assert not is_fresh(_entry(NOW - ttl - timedelta(seconds=1)), NOW, ttl)


def test_naive_timestamps_are_treated_as_utc():
    naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
    assert is_fresh(_entry(naive), NOW)


def test_missing_key_returns_none():
    cache = FreshnessCache(_engine(), "aiRatings")
    assert cache.get("MSFT") is None
    assert cache.get_fresh("MSFT", NOW) is None


def test_put_then_get_round_trips_entry():
    cache = FreshnessCache(_engine(), "aiRatings")
    assert cache.put("AAPL", REC, NOW, fetched_data={"quote": {"price": 190.1}}, current_price=190.1) is True

    entry = cache.get("AAPL")
    assert entry is not None
    assert entry.recommendation == REC
    assert entry.fetched_data == {"quote": {"price": 190.1}}
    assert entry.current_price == 190.1
    assert entry.last_fetched == NOW
    assert entry.updated_at == NOW


def test_get_fresh_respects_ttl():
    cache = FreshnessCache(_engine(), "aiRatings", ttl=timedelta(hours=24))
    cache.put("AAPL", REC, NOW)

    assert cache.get_fresh("AAPL", NOW + timedelta(hours=23, minutes=59)) is not None
    assert cache.get_fresh("AAPL", NOW + timedelta(hours=24)) is None
    # Stale rows stay in place until overwritten
    assert cache.get("AAPL") is not None


def test_put_overwrites_existing_entry():
    cache = FreshnessCache(_engine(), "aiRatings")
    cache.put("AAPL", REC, NOW - timedelta(days=2))
    newer = {"rating": "Hold", "target_price": 180, "reason": "Fairly valued."}
    assert cache.put("AAPL", newer, NOW) is True

    entry = cache.get("AAPL")
    assert entry.recommendation == newer
    assert entry.last_fetched == NOW


def test_put_refuses_older_write():
    cache = FreshnessCache(_engine(), "aiRatings")
    cache.put("AAPL", REC, NOW)
    older = {"rating": "Sell", "target_price": 150, "reason": "Old view."}

    assert cache.put("AAPL", older, NOW - timedelta(minutes=5)) is False
    assert cache.get("AAPL").recommendation == REC


def test_collections_are_isolated():
    engine = _engine()
    ratings = FreshnessCache(engine, "aiRatings")
    predictions = FreshnessCache(engine, "aiPredictions")
    ratings.put("AAPL", REC, NOW)

    assert ratings.get("AAPL") is not None
    assert predictions.get("AAPL") is None


def test_store_failure_raises_cache_error():
    # No schema created: every query fails
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    cache = FreshnessCache(engine, "aiRatings")

    with pytest.raises(CacheError):
        cache.get("AAPL")
    with pytest.raises(CacheError):
        cache.put("AAPL", REC, NOW)


def test_init_db_creates_schema(tmp_path):
    from database.connection import init_db

    engine = create_engine(f"sqlite:///{tmp_path / 'recommendations.db'}")
    init_db(engine)
    cache = FreshnessCache(engine, "geminiAiRatings")
    assert cache.put("AAPL", REC, NOW) is True
    assert cache.get_fresh("AAPL", NOW) is not None
