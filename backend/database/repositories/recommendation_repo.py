from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session

from ..models import AiRecommendation


class RecommendationRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, collection: str, symbol: str) -> Optional[AiRecommendation]:
        return self.session.get(AiRecommendation, (collection, symbol))

    def save(
        self,
        collection: str,
        symbol: str,
        recommendation_json: str,
        last_fetched: datetime,
        fetched_data_json: str | None = None,
        current_price: float | None = None,
    ) -> bool:
        """Overwrite the document for (collection, symbol).

        Refuses the write and returns False when the stored row was fetched
        later than ``last_fetched``.
        """
        existing = self.get(collection, symbol)
        if existing is not None and _as_naive_utc(existing.last_fetched) > _as_naive_utc(last_fetched):
            return False
        row = AiRecommendation(
            collection=collection,
            symbol=symbol,
            recommendation_json=recommendation_json,
            fetched_data_json=fetched_data_json,
            current_price=current_price,
            last_fetched=last_fetched,
            updated_at=last_fetched,
        )
        try:
            self.session.merge(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return True


def _as_naive_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)
