from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from anomaly_detection.rules import (
    AmountRangeRule,
    CategoryRule,
    DismissalRulePayload,
    ExactNameRule,
    FreeTextRule,
    MerchantNameRule,
    RuleParseError,
    load_rule_set,
    parse_rule,
)

from tests.helpers.factories import make_tx


def _value(pattern: str, pattern_type: str) -> str:
    return json.dumps({"pattern": pattern, "patternType": pattern_type, "reason": None})


def test_parse_rule_builds_the_variant_for_each_type() -> None:
    assert parse_rule(_value("Netflix", "exact_name")) == ExactNameRule("Netflix")
    assert parse_rule(_value("flix", "merchant_name")) == MerchantNameRule("flix")
    assert parse_rule(_value("Travel", "category")) == CategoryRule("Travel")
    assert parse_rule(_value("40-60", "amount_range")) == AmountRangeRule(40.0, 60.0)
    assert parse_rule(_value("gym", "free_text")) == FreeTextRule("gym")


def test_unknown_pattern_type_falls_back_to_free_text() -> None:
    assert parse_rule(_value("gym", "something_else")) == FreeTextRule("gym")


def test_exact_name_is_case_insensitive_equality() -> None:
    rule = ExactNameRule("netflix")

    assert rule.matches(make_tx(name="NETFLIX"))
    assert not rule.matches(make_tx(name="Netflix.com"))


def test_merchant_name_requires_a_merchant() -> None:
    rule = MerchantNameRule("flix")

    assert rule.matches(make_tx(name="x", merchant_name="StreamFlix"))
    assert not rule.matches(make_tx(name="StreamFlix"))


def test_category_matches_effective_category_substring() -> None:
    rule = CategoryRule("travel")

    assert rule.matches(make_tx(category="Food", category_ai="Air Travel"))
    assert not rule.matches(make_tx(category="Air Travel", category_ai="Food"))


def test_amount_range_is_inclusive_on_magnitude() -> None:
    rule = AmountRangeRule(40.0, 60.0)

    assert rule.matches(make_tx(amount=-40.0))
    assert rule.matches(make_tx(amount=60.0))
    assert rule.matches(make_tx(amount=-49.99))
    assert not rule.matches(make_tx(amount=-60.01))


def test_free_text_searches_name_and_merchant() -> None:
    rule = FreeTextRule("gym")

    assert rule.matches(make_tx(name="POS 123", merchant_name="City GYM"))
    assert not rule.matches(make_tx(name="POS 123", merchant_name="Library"))


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "{not json",
        json.dumps({"patternType": "exact_name"}),
        json.dumps({"pattern": "   ", "patternType": "exact_name"}),
        _value("cheap", "amount_range"),
        _value("60-40", "amount_range"),
        _value("-5-10", "amount_range"),
    ],
)
def test_malformed_rules_raise_rule_parse_error(raw) -> None:
    with pytest.raises(RuleParseError):
        parse_rule(raw)


def test_rule_parse_error_is_a_value_error() -> None:
    assert issubclass(RuleParseError, ValueError)


def test_load_rule_set_skips_bad_rows_and_keeps_good_ones() -> None:
    rows = [
        SimpleNamespace(id=1, rule_value="{broken"),
        SimpleNamespace(id=2, rule_value=_value("40-60", "amount_range")),
        SimpleNamespace(id=3, rule_value=_value("abc", "amount_range")),
    ]

    rules = load_rule_set(rows)

    assert len(rules) == 1
    assert rules.skipped_ids == (1, 3)
    assert rules.is_dismissed(make_tx(amount=-50.0))
    assert not rules.is_dismissed(make_tx(amount=-70.0))


def test_suppression_is_or_across_rules() -> None:
    rules = load_rule_set(
        [
            SimpleNamespace(id=1, rule_value=_value("Netflix", "exact_name")),
            SimpleNamespace(id=2, rule_value=_value("Groceries", "category")),
        ]
    )

    assert rules.is_dismissed(make_tx(name="netflix"))
    assert rules.is_dismissed(make_tx(name="Market", category="Groceries"))
    assert not rules.is_dismissed(make_tx(name="Market", category="Dining"))


def test_payload_round_trips_with_camel_case_key() -> None:
    payload = DismissalRulePayload(pattern=" 40-60 ", pattern_type="amount_range")

    assert payload.pattern == "40-60"
    assert json.loads(payload.to_json()) == {
        "pattern": "40-60",
        "patternType": "amount_range",
        "reason": None,
    }
