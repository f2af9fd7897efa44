"""Extraction and validation of the JSON recommendation embedded in model output.

Models wrap their JSON in prose or markdown fences, so extraction is lenient:
fenced blocks first, then a brace-balanced scan for the first object that
parses. Validation is strict: any field failing its check rejects the whole
object, and nothing is coerced or defaulted in the returned payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Tuple
import json as _json
import math
import re

from services.errors import MalformedJson, NoJsonFound, SchemaViolation


BASIC_RATINGS = ("Buy", "Sell", "Hold")
EXTENDED_RATINGS = ("Strong Buy", "Buy", "Hold", "Sell", "Strong Sell")

_CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


@dataclass(frozen=True)
class RecommendationSchema:
    """Field contract for one endpoint flavour.

    ``horizons`` names nested objects (e.g. "1W", "1M") that each carry the
    fields; when empty the fields live at the top level.
    """

    ratings: Tuple[str, ...] = BASIC_RATINGS
    rating_field: str = "rating"
    price_field: str = "target_price"
    reason_field: str = "reason"
    confidence_field: Optional[str] = None
    confidence_range: Tuple[float, float] = (1, 100)
    criteria_field: Optional[str] = None
    horizons: Tuple[str, ...] = ()


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield every top-level ``{...}`` substring, honouring JSON string escapes."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first JSON object found in ``text``.

    Raises NoJsonFound when nothing object-shaped is present and
    MalformedJson when candidates exist but none parses.
    """
    if not text or not text.strip():
        raise NoJsonFound("AI response is empty.")

    candidates = [m.strip() for m in _CODE_BLOCK_PATTERN.findall(text)]
    candidates.append(text.strip())
    candidates.extend(_balanced_objects(text))

    saw_object = False
    last_error: Optional[Exception] = None
    for candidate in candidates:
        if not candidate.startswith("{"):
            continue
        saw_object = True
        try:
            obj = _json.loads(candidate)
        except ValueError as e:
            last_error = e
            continue
        if isinstance(obj, dict):
            return obj

    if not saw_object and "{" not in text:
        raise NoJsonFound("No JSON object found in AI response.")
    if last_error is None:
        raise MalformedJson("Failed to parse JSON from AI response: unbalanced braces")
    raise MalformedJson(f"Failed to parse JSON from AI response: {last_error}")


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _coercible_price(v: Any) -> bool:
    if _is_number(v):
        return True
    if isinstance(v, str):
        cleaned = v.strip().lstrip("$").replace(",", "").strip()
        try:
            return math.isfinite(float(cleaned))
        except ValueError:
            return False
    return False


def _validate_fields(obj: Any, schema: RecommendationSchema, prefix: str = "") -> None:
    if not isinstance(obj, dict):
        raise SchemaViolation(prefix.rstrip(".") or "recommendation", "expected an object")

    rating = obj.get(schema.rating_field)
    if rating not in schema.ratings:
        raise SchemaViolation(prefix + schema.rating_field, f"{rating!r} is not one of {', '.join(schema.ratings)}")

    price = obj.get(schema.price_field)
    if not _coercible_price(price):
        raise SchemaViolation(prefix + schema.price_field, f"{price!r} is not a numeric price")

    reason = obj.get(schema.reason_field)
    if not isinstance(reason, str):
        raise SchemaViolation(prefix + schema.reason_field, "expected a string")

    if schema.confidence_field:
        confidence = obj.get(schema.confidence_field)
        low, high = schema.confidence_range
        if not _is_number(confidence) or not (low <= confidence <= high):
            raise SchemaViolation(
                prefix + schema.confidence_field, f"{confidence!r} is not a number between {low:g} and {high:g}"
            )

    if schema.criteria_field:
        criteria = obj.get(schema.criteria_field)
        if not _is_number(criteria) or criteria < 0:
            raise SchemaViolation(prefix + schema.criteria_field, f"{criteria!r} is not a non-negative number")


def validate_recommendation(data: Dict[str, Any], schema: RecommendationSchema) -> Dict[str, Any]:
    if schema.horizons:
        for horizon in schema.horizons:
            _validate_fields(data.get(horizon), schema, prefix=f"{horizon}.")
    else:
        _validate_fields(data, schema)
    return data


def extract(
    raw: str,
    schema: RecommendationSchema,
    extractor: Callable[[str], Dict[str, Any]] = extract_json_object,
) -> Dict[str, Any]:
    return validate_recommendation(extractor(raw), schema)
