"""Parallel fan-out to upstream data sources for one symbol."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import time

from pydantic import BaseModel

from services.errors import UpstreamFetchError


# fetch(symbol, now, timeout) -> parsed payload, or None when the source has no data
FetchFn = Callable[[str, datetime, float], Any]


@dataclass(frozen=True)
class UpstreamSource:
    name: str
    fetch: FetchFn


class AggregatedSnapshot(BaseModel):
    symbol: str
    data: Dict[str, Any] = {}
    failed: List[str] = []

    def get(self, name: str) -> Any:
        return self.data.get(name)

    def has(self, name: str) -> bool:
        return self.data.get(name) is not None


def aggregate(
    symbol: str,
    sources: List[UpstreamSource],
    timeout: float,
    now: Optional[datetime] = None,
) -> AggregatedSnapshot:
    """Fetch every source concurrently and join them all, bounded by ``timeout``.

    A source that raises, times out or returns nothing leaves a ``None`` slot.
    Raises UpstreamFetchError only when no source produced data.
    """
    if not sources:
        raise UpstreamFetchError("No upstream sources configured")
    now = now or datetime.now(timezone.utc)
    data: Dict[str, Any] = {s.name: None for s in sources}
    failed: List[str] = []

    def _fetch_one(src: UpstreamSource) -> Any:
        return src.fetch(symbol, now, timeout)

    t0 = time.time()
    executor = ThreadPoolExecutor(max_workers=len(sources))
    try:
        future_to_name = {executor.submit(_fetch_one, s): s.name for s in sources}
        done, not_done = wait(set(future_to_name.keys()), timeout=timeout)
        for fut in done:
            name = future_to_name[fut]
            try:
                data[name] = fut.result()
            except Exception as e:
                print(f"⚠️ {name} unavailable for {symbol}: {type(e).__name__}: {e}")
                failed.append(name)
        # Best-effort cancel stragglers; their slots stay empty
        for fut in not_done:
            name = future_to_name[fut]
            print(f"⚠️ {name} timed out for {symbol} after {timeout:.1f}s")
            failed.append(name)
            fut.cancel()
    finally:
        executor.shutdown(wait=False)

    available = [name for name, value in data.items() if value is not None]
    print(
        f"📡 aggregated {symbol}: {len(available)}/{len(sources)} sources "
        f"in {int((time.time() - t0) * 1000)}ms"
    )
    if not available:
        raise UpstreamFetchError(f"No upstream data available for {symbol}")
    return AggregatedSnapshot(symbol=symbol, data=data, failed=sorted(failed))
