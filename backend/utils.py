"""Common utility functions used across the application."""

from datetime import datetime
from typing import Dict, List, Optional


def _sanitize_symbol(symbol: str) -> str:
    """Sanitize symbol for safe use in URLs and cache keys."""
    s = (symbol or "").strip().upper()
    allowed = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-"
    s = "".join(ch for ch in s if ch in allowed)
    return s


def _format_date(d: datetime) -> str:
    return d.strftime("%Y-%m-%d")


def _cors_headers(origin: Optional[str], allowed_origins: List[str], primary_origin: str) -> Dict[str, str]:
    """Reflect the request origin when allow-listed, else fall back to the primary origin."""
    allow = origin if origin and origin in allowed_origins else primary_origin
    return {
        "Access-Control-Allow-Origin": allow,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Vary": "Origin",
    }
