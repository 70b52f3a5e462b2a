"""New high-value merchant detector.

A chronological, single-pass fold over the transaction window with an explicit
``merchant_key -> MerchantState`` accumulator. Only the first transaction seen
for a merchant can fire; everything after it just accumulates.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import AnomalyCandidate, TransactionView
from .patterns import is_legitimate

NEW_MERCHANT_WINDOW = timedelta(days=7)
HIGH_SEVERITY_SPEND = 500.0


@dataclass(slots=True)
class MerchantState:
    first_seen: datetime
    total_spent: float = 0.0
    transaction_count: int = 0

    def add(self, tx: TransactionView) -> None:
        self.total_spent += tx.magnitude
        self.transaction_count += 1


def detect_new_high_value_merchants(
    transactions: Iterable[TransactionView], new_merchant_threshold: float
) -> list[AnomalyCandidate]:
    """Flag a merchant's first transaction when it alone exceeds the threshold."""

    history: dict[str, MerchantState] = {}
    out: list[AnomalyCandidate] = []

    for tx in sorted(transactions, key=lambda t: t.date):
        if is_legitimate(tx.search_text):
            continue
        state = history.get(tx.merchant_key)
        if state is None:
            state = history[tx.merchant_key] = MerchantState(first_seen=tx.date)
        state.add(tx)

        if (
            state.transaction_count == 1
            and tx.date - state.first_seen <= NEW_MERCHANT_WINDOW
            and state.total_spent > new_merchant_threshold
        ):
            out.append(
                AnomalyCandidate(
                    transaction=tx,
                    type="new_high_value_merchant",
                    severity="high" if state.total_spent > HIGH_SEVERITY_SPEND else "medium",
                    reason=(
                        "New merchant with high-value transaction: "
                        f"${state.total_spent:.2f}"
                    ),
                    metadata={"merchantTotal": round(state.total_spent, 2)},
                )
            )
    return out


__all__ = [
    "NEW_MERCHANT_WINDOW",
    "HIGH_SEVERITY_SPEND",
    "MerchantState",
    "detect_new_high_value_merchants",
]
