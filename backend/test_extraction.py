import pytest

from services.errors import MalformedJson, NoJsonFound, SchemaViolation
from services.extraction import (
    EXTENDED_RATINGS,
    RecommendationSchema,
    extract,
    extract_json_object,
    validate_recommendation,
)


RATING = RecommendationSchema(criteria_field="criteria_count")
GEMINI = RecommendationSchema(confidence_field="confidence")
PREDICTION = RecommendationSchema(
    ratings=EXTENDED_RATINGS,
    rating_field="recommendation",
    reason_field="explanation",
    confidence_field="confidence_score",
    horizons=("1W", "1M"),
)


def test_extracts_plain_object():
    assert extract_json_object('{"rating": "Buy"}') == {"rating": "Buy"}


def test_extracts_from_markdown_fence():
    raw = 'Here you go:\n```json\n{"rating": "Hold", "target_price": 100}\n```\nGood luck!'
    assert extract_json_object(raw) == {"rating": "Hold", "target_price": 100}


def test_extracts_first_object_embedded_in_prose():
    raw = 'My answer is {"rating": "Sell", "reason": "a {brace} in text"} and also {"rating": "Buy"}'
    assert extract_json_object(raw) == {"rating": "Sell", "reason": "a {brace} in text"}


def test_skips_unparseable_candidate_for_later_one():
    raw = 'draft {rating: Buy} final {"rating": "Buy"}'
    assert extract_json_object(raw) == {"rating": "Buy"}


@pytest.mark.parametrize("raw", ["", "   ", "I cannot help with that."])
def test_no_object_raises_no_json_found(raw):
    with pytest.raises(NoJsonFound):
        extract_json_object(raw)


def test_broken_object_raises_malformed_json():
    with pytest.raises(MalformedJson):
        extract_json_object('{"rating": "Buy", "target_price": }')


def test_unbalanced_braces_raise_malformed_json():
    with pytest.raises(MalformedJson):
        extract_json_object('prefix {"rating": "Buy"')


def test_valid_rating_passes_unchanged():
    data = {"rating": "Buy", "target_price": "$1,234.50", "reason": "Cheap.", "criteria_count": 7}
    assert validate_recommendation(data, RATING) is data
    assert data["target_price"] == "$1,234.50"


def test_rating_outside_enum_names_rating():
    data = {"rating": "Strong Buy", "target_price": 10, "reason": "x", "criteria_count": 1}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, RATING)
    assert exc.value.field == "rating"
    assert "Invalid rating received from AI" in exc.value.message


def test_rating_is_checked_before_price():
    data = {"rating": "Maybe", "target_price": "soon", "reason": 3}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, RATING)
    assert exc.value.field == "rating"


@pytest.mark.parametrize("price", [None, "about ten", True, float("nan")])
def test_non_numeric_price_rejected(price):
    data = {"rating": "Hold", "target_price": price, "reason": "x", "criteria_count": 1}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, RATING)
    assert exc.value.field == "target_price"


def test_reason_must_be_string():
    data = {"rating": "Hold", "target_price": 12, "reason": None, "criteria_count": 1}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, RATING)
    assert exc.value.field == "reason"


@pytest.mark.parametrize("confidence", [0, 101, "90", None])
def test_confidence_outside_range_rejected(confidence):
    data = {"rating": "Buy", "target_price": 12, "reason": "x", "confidence": confidence}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, GEMINI)
    assert exc.value.field == "confidence"


@pytest.mark.parametrize("confidence", [1, 55.5, 100])
def test_confidence_bounds_are_inclusive(confidence):
    data = {"rating": "Buy", "target_price": 12, "reason": "x", "confidence": confidence}
    assert validate_recommendation(data, GEMINI) == data


def test_negative_criteria_count_rejected():
    data = {"rating": "Buy", "target_price": 12, "reason": "x", "criteria_count": -1}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, RATING)
    assert exc.value.field == "criteria_count"


def test_horizons_validated_independently():
    good = {"recommendation": "Strong Buy", "target_price": 200, "explanation": "x", "confidence_score": 80}
    data = {"1W": good, "1M": dict(good, recommendation="Hold")}
    assert validate_recommendation(data, PREDICTION) == data


def test_missing_horizon_is_named():
    good = {"recommendation": "Buy", "target_price": 200, "explanation": "x", "confidence_score": 80}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation({"1W": good}, PREDICTION)
    assert exc.value.field == "1M"


def test_horizon_field_violation_is_prefixed():
    good = {"recommendation": "Buy", "target_price": 200, "explanation": "x", "confidence_score": 80}
    data = {"1W": good, "1M": dict(good, confidence_score=250)}
    with pytest.raises(SchemaViolation) as exc:
        validate_recommendation(data, PREDICTION)
    assert exc.value.field == "1M.confidence_score"


def test_extract_combines_both_steps():
    raw = '```json\n{"rating": "Buy", "target_price": 195, "reason": "Growth.", "confidence": 80}\n```'
    assert extract(raw, GEMINI)["rating"] == "Buy"


def test_extract_accepts_custom_extractor():
    calls = []

    def fixed(text):
        calls.append(text)
        return {"rating": "Sell", "target_price": 1, "reason": "x", "confidence": 50}

    assert extract("anything", GEMINI, fixed)["rating"] == "Sell"
    assert calls == ["anything"]
