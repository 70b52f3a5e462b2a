"""Static text-matching libraries used by the detectors.

Three immutable libraries live here:

- ``SUSPICIOUS_PATTERNS``: ordered, labelled regexes. Matching is *match-all*:
  one transaction can hit several concerns at once (e.g. a gift card bought
  through a money-transfer service) and each hit is reported.
- ``LEGITIMATE_PATTERNS``: the allow-list. Anything matching it (card
  payments, ATM activity, deposits, transfers, refunds, loan/utility/tax
  payments, investment income) is never an anomaly. Checked first by every
  detector; first match wins.
- ``KNOWN_CHAIN_STORES``: nationwide brands for which a location change is
  expected and not suspicious.

All patterns are matched against the lower-cased ``"<name> <merchant>"``
search text of a transaction. Bump ``PATTERN_LIBRARY_VERSION`` whenever any
library changes so persisted anomalies can be traced to the rules that raised
them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

PATTERN_LIBRARY_VERSION = 2


@dataclass(frozen=True, slots=True)
class LabelledPattern:
    pattern: re.Pattern[str]
    label: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _p(regex: str, label: str) -> LabelledPattern:
    return LabelledPattern(re.compile(regex, re.IGNORECASE), label)


# Order is part of the contract: candidates are emitted in this order.
SUSPICIOUS_PATTERNS: tuple[LabelledPattern, ...] = (
    # Scam language
    _p(r"support.*urgent", "Potential support scam"),
    _p(r"verify.*account", "Potential verification scam"),
    _p(r"suspended.*account", "Potential account suspension scam"),
    _p(r"refund.*pending", "Potential refund scam"),
    _p(r"gift.*card", "Gift card purchase (common scam method)"),
    # "eth" only as a standalone token; bare substring hits Bethesda, Method...
    _p(r"bitcoin|crypto|ethereum|\beth\b", "Cryptocurrency purchase"),
    _p(r"western.*union|money.*gram", "Money transfer service"),
    _p(r"paypal.*me|venmo.*request", "Peer-to-peer payment"),
    # Subscription traps
    _p(r"free.*trial.*cancel", "Free trial subscription"),
    _p(r"subscription.*renewal", "Subscription renewal"),
    # High-risk merchants
    _p(r"amazon.*gift.*card", "Amazon gift card purchase"),
    _p(r"steam.*wallet", "Steam wallet purchase"),
    _p(r"google.*play.*card", "Google Play card purchase"),
)

LEGITIMATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rx, re.IGNORECASE)
    for rx in (
        # Credit card payments
        r"payment.*thank.*you",
        r"credit.*card.*payment",
        r"autopay",
        r"payment.*to.*card",
        r"chase.*credit.*crd.*autopay",
        r"card.*ending.*in",
        # ATM
        r"atm.*cash.*deposit",
        r"atm.*withdrawal",
        r"atm.*deposit",
        r"atm.*credit",
        # Transfers
        r"zelle.*payment",
        r"zelle.*from",
        r"zelle.*to",
        r"online.*transfer",
        r"external.*transfer",
        r"internal.*transfer",
        r"wire.*transfer",
        # Deposits and credits
        r"deposit",
        r"direct.*deposit",
        r"mobile.*deposit",
        r"check.*deposit",
        r"constant.*con.*osv",
        r"ach.*credit",
        r"ach.*deposit",
        r"electronic.*deposit",
        # Loans
        r"loan.*payment",
        r"mortgage.*payment",
        r"car.*payment",
        # Utilities
        r"utility.*payment",
        r"bill.*payment",
        r"automatic.*payment",
        # Refunds and credits
        r"refund",
        r"credit",
        r"reversal",
        r"adjustment",
        # Investments
        r"investment",
        r"dividend",
        r"interest.*payment",
        # Government
        r"irs.*payment",
        r"tax.*payment",
        r"government.*payment",
    )
)

KNOWN_CHAIN_STORES: tuple[str, ...] = (
    "starbucks", "mcdonalds", "subway", "burger king", "wendys", "taco bell",
    "dunkin", "dominos", "pizza hut", "kfc", "chipotle", "panera",
    "walmart", "target", "costco", "sams club", "home depot", "lowes",
    "amazon", "uber", "lyft", "doordash", "grubhub", "uber eats",
    "shell", "exxon", "chevron", "bp", "mobil", "sunoco",
    "cvs", "walgreens", "rite aid", "dollar general", "dollar tree",
    "7-eleven", "circle k", "speedway", "quik trip",
)  # fmt: skip


def is_legitimate(text: str) -> bool:
    """Return True when ``text`` matches any allow-list pattern."""
    return any(p.search(text) for p in LEGITIMATE_PATTERNS)


def match_suspicious(text: str) -> list[LabelledPattern]:
    """Return every suspicious pattern matching ``text``, in library order."""
    return [p for p in SUSPICIOUS_PATTERNS if p.matches(text)]


def is_known_chain_store(merchant: str) -> bool:
    """Substring match of ``merchant`` against the chain-store list."""
    lowered = merchant.lower()
    return any(chain in lowered for chain in KNOWN_CHAIN_STORES)


__all__ = [
    "PATTERN_LIBRARY_VERSION",
    "LabelledPattern",
    "SUSPICIOUS_PATTERNS",
    "LEGITIMATE_PATTERNS",
    "KNOWN_CHAIN_STORES",
    "is_legitimate",
    "match_suspicious",
    "is_known_chain_store",
]
