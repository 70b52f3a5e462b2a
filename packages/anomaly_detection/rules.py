"""Dismissal rules: parsing and matching.

A dismissal rule is stored as JSON text (``AnomalyDismissalRule.rule_value``)
of the shape ``{"pattern": str, "patternType": str, "reason": str | null}``.
The JSON is validated once with :class:`DismissalRulePayload` and turned into
one of five typed variants, each carrying its own payload:

============== ==================== ==========================================
patternType    variant              matches when
============== ==================== ==========================================
exact_name     ``ExactNameRule``    name equals pattern (case-insensitive)
merchant_name  ``MerchantNameRule`` merchant name contains pattern
category       ``CategoryRule``     effective category contains pattern
amount_range   ``AmountRangeRule``  ``min <= abs(amount) <= max``
anything else  ``FreeTextRule``     ``"<name> <merchant>"`` contains pattern
============== ==================== ==========================================

Parsing failures raise :class:`RuleParseError`. :func:`load_rule_set` turns a
batch of stored rows into a :class:`RuleSet`, logging and skipping the rows
that fail; a broken rule never matches and never interrupts evaluation.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .logging_setup import get_logger
from .models import TransactionView

logger = get_logger("anomaly_detection.rules")

KNOWN_PATTERN_TYPES: frozenset[str] = frozenset(
    {"exact_name", "merchant_name", "category", "amount_range", "free_text"}
)

# "40-60", "40.5 - 60", "0-99.99". Negative bounds are meaningless on magnitudes.
_RANGE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*$")


class RuleParseError(ValueError):
    """A stored dismissal rule could not be parsed for its declared type."""


class DismissalRulePayload(BaseModel):
    """Validated JSON payload of a stored dismissal rule."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    pattern: str = Field(min_length=1)
    pattern_type: str = Field(alias="patternType", min_length=1)
    reason: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {"pattern": self.pattern, "patternType": self.pattern_type, "reason": self.reason},
            separators=(",", ":"),
        )


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExactNameRule:
    name: str

    def matches(self, tx: TransactionView) -> bool:
        return tx.name.lower() == self.name.lower()


@dataclass(frozen=True, slots=True)
class MerchantNameRule:
    merchant: str

    def matches(self, tx: TransactionView) -> bool:
        return bool(tx.merchant_name) and self.merchant.lower() in tx.merchant_name.lower()


@dataclass(frozen=True, slots=True)
class CategoryRule:
    category: str

    def matches(self, tx: TransactionView) -> bool:
        return self.category.lower() in tx.effective_category.lower()


@dataclass(frozen=True, slots=True)
class AmountRangeRule:
    min_amount: float
    max_amount: float

    def matches(self, tx: TransactionView) -> bool:
        return self.min_amount <= tx.magnitude <= self.max_amount


@dataclass(frozen=True, slots=True)
class FreeTextRule:
    text: str

    def matches(self, tx: TransactionView) -> bool:
        return self.text.lower() in tx.search_text


type DismissalRule = (
    ExactNameRule | MerchantNameRule | CategoryRule | AmountRangeRule | FreeTextRule
)


def _parse_amount_range(pattern: str) -> AmountRangeRule:
    m = _RANGE_RE.match(pattern)
    if m is None:
        raise RuleParseError(f"amount_range pattern must look like 'min-max', got {pattern!r}")
    lo, hi = float(m.group(1)), float(m.group(2))
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo > hi:
        raise RuleParseError(f"amount_range bounds out of order: {pattern!r}")
    return AmountRangeRule(min_amount=lo, max_amount=hi)


def rule_from_payload(payload: DismissalRulePayload) -> DismissalRule:
    """Build the typed variant for an already-validated payload."""

    match payload.pattern_type:
        case "exact_name":
            return ExactNameRule(payload.pattern)
        case "merchant_name":
            return MerchantNameRule(payload.pattern)
        case "category":
            return CategoryRule(payload.pattern)
        case "amount_range":
            return _parse_amount_range(payload.pattern)
        case _:
            return FreeTextRule(payload.pattern)


def parse_payload(rule_value: str | bytes | None) -> DismissalRulePayload:
    """Validate stored JSON text into a payload or raise :class:`RuleParseError`."""

    if rule_value is None:
        raise RuleParseError("rule payload is empty")
    try:
        return DismissalRulePayload.model_validate_json(rule_value)
    except ValidationError as e:
        raise RuleParseError(f"invalid rule payload: {e.error_count()} error(s)") from e


def parse_rule(rule_value: str | bytes | None) -> DismissalRule:
    """Parse stored JSON text straight into a typed rule."""
    return rule_from_payload(parse_payload(rule_value))


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Parsed rules for one user plus the ids of the rows that were skipped."""

    rules: tuple[DismissalRule, ...] = ()
    skipped_ids: tuple[Any, ...] = ()

    def __len__(self) -> int:
        return len(self.rules)

    def matching_rule(self, tx: TransactionView) -> DismissalRule | None:
        for rule in self.rules:
            if rule.matches(tx):
                return rule
        return None

    def is_dismissed(self, tx: TransactionView) -> bool:
        """OR across all rules: any single match suppresses ``tx``."""
        return self.matching_rule(tx) is not None


def load_rule_set(rows: Iterable[Any]) -> RuleSet:
    """Parse stored rule rows (objects with ``id`` and ``rule_value``).

    Rows that fail to parse are logged at WARNING and left out.
    """

    rules: list[DismissalRule] = []
    skipped: list[Any] = []
    for row in rows:
        try:
            rules.append(parse_rule(row.rule_value))
        except RuleParseError as e:
            logger.warning("Skipping dismissal rule %s: %s", getattr(row, "id", "?"), e)
            skipped.append(getattr(row, "id", None))
    return RuleSet(rules=tuple(rules), skipped_ids=tuple(skipped))


def is_dismissed(tx: TransactionView, rules: RuleSet) -> bool:
    return rules.is_dismissed(tx)


@dataclass(frozen=True, slots=True)
class StoredRule:
    """A persisted dismissal rule as listed back to its owner.

    ``payload`` is ``None`` when the stored JSON no longer parses.
    """

    id: int
    rule_type: str
    payload: DismissalRulePayload | None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> StoredRule:
        try:
            payload = parse_payload(row.rule_value)
        except RuleParseError:
            payload = None
        return cls(id=row.id, rule_type=row.rule_type, payload=payload, created_at=row.created_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ruleType": self.rule_type,
            "pattern": self.payload.pattern if self.payload else None,
            "reason": self.payload.reason if self.payload else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


__all__ = [
    "KNOWN_PATTERN_TYPES",
    "RuleParseError",
    "DismissalRulePayload",
    "ExactNameRule",
    "MerchantNameRule",
    "CategoryRule",
    "AmountRangeRule",
    "FreeTextRule",
    "DismissalRule",
    "RuleSet",
    "StoredRule",
    "rule_from_payload",
    "parse_payload",
    "parse_rule",
    "load_rule_set",
    "is_dismissed",
]
