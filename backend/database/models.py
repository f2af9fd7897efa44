from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Float, Text, DateTime


class Base(DeclarativeBase):
	pass


class AiRecommendation(Base):
	"""One cached recommendation document per (collection, symbol).

	Rows are overwritten on every successful refresh, never appended.
	"""

	__tablename__ = "ai_recommendations"

	collection: Mapped[str] = mapped_column(String, primary_key=True)
	symbol: Mapped[str] = mapped_column(String, primary_key=True)
	recommendation_json: Mapped[str] = mapped_column(Text, nullable=False)
	fetched_data_json: Mapped[Optional[str]] = mapped_column(Text)
	current_price: Mapped[Optional[float]] = mapped_column(Float)
	last_fetched: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
	updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
