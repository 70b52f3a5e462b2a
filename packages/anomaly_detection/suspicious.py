"""Suspicious-pattern detector."""

from __future__ import annotations

from collections.abc import Iterable

from .models import AnomalyCandidate, TransactionView
from .patterns import PATTERN_LIBRARY_VERSION, is_legitimate, match_suspicious


def detect_suspicious_patterns(transactions: Iterable[TransactionView]) -> list[AnomalyCandidate]:
    """Flag transactions whose text matches the suspicious-pattern library.

    Allow-listed transactions are skipped before any suspicious pattern is
    tried, so "Zelle Payment From Friend" never surfaces even though other
    rules could match its text. Every matching pattern yields its own
    candidate; the dedup key later keeps the first per transaction.
    """

    out: list[AnomalyCandidate] = []
    for tx in transactions:
        text = tx.search_text
        if is_legitimate(text):
            continue
        for hit in match_suspicious(text):
            out.append(
                AnomalyCandidate(
                    transaction=tx,
                    type="suspicious_pattern",
                    severity="high",
                    reason=hit.label,
                    metadata={
                        "pattern": hit.pattern.pattern,
                        "patternLibraryVersion": PATTERN_LIBRARY_VERSION,
                    },
                )
            )
    return out


__all__ = ["detect_suspicious_patterns"]
