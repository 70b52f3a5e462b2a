"""Duplicate-charge detector.

Public surface:
- ``ChargeKey``: grouping key of a charge (merchant identity + amount to the
  cent).
- ``is_billing_cycle_pair``: the recurring-billing false-positive heuristic.
- ``find_duplicate_charges``: emit one ``duplicate_charge`` candidate per
  transaction that belongs to a cluster of same-merchant, same-amount charges
  posted within ``hours_window`` hours of each other.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import timedelta
from typing import Any, NamedTuple

from .models import AnomalyCandidate, TransactionView
from .patterns import is_legitimate

# Statement-day coincidence: charges on day 1..5 of consecutive months are the
# ordinary billing cycle, not a double post.
_BILLING_CYCLE_LAST_DAY = 5


class ChargeKey(NamedTuple):
    merchant: str
    amount: str  # magnitude formatted to 2dp so 19.999 and 20.00 collide

    @classmethod
    def of(cls, tx: TransactionView) -> ChargeKey:
        return cls(tx.merchant_key, f"{tx.magnitude:.2f}")


def is_billing_cycle_pair(cluster: Sequence[TransactionView]) -> bool:
    """Exactly two charges, both dated in the first days of their month."""

    return len(cluster) == 2 and all(
        1 <= tx.date.day <= _BILLING_CYCLE_LAST_DAY for tx in cluster
    )


def _cluster_metadata(cluster: Sequence[TransactionView]) -> dict[str, Any]:
    first, last = cluster[0], cluster[-1]
    return {
        "duplicateCount": len(cluster),
        "duplicateTransactions": [tx.summary() for tx in cluster],
        "timeSpan": {
            "first": first.date.isoformat(),
            "last": last.date.isoformat(),
            "hoursDiff": (last.date - first.date).total_seconds() / 3600,
        },
    }


def find_duplicate_charges(
    transactions: Iterable[TransactionView], hours_window: int
) -> list[AnomalyCandidate]:
    """Return duplicate-charge candidates, at most one per transaction.

    Within each :class:`ChargeKey` group the members are visited in date
    order; for each one the cluster is every group member dated within
    ``hours_window`` hours (inclusive) of it. A transaction reached by several
    overlapping clusters is reported once, with the first cluster that
    contained it.
    """

    window = timedelta(hours=hours_window)
    groups: dict[ChargeKey, list[TransactionView]] = defaultdict(list)
    for tx in transactions:
        if is_legitimate(tx.search_text):
            continue
        groups[ChargeKey.of(tx)].append(tx)

    out: list[AnomalyCandidate] = []
    emitted: set[str] = set()
    for key, members in groups.items():
        if len(members) < 2:
            continue
        members.sort(key=lambda t: t.date)
        for anchor in members:
            cluster = [m for m in members if abs(m.date - anchor.date) <= window]
            if len(cluster) < 2 or is_billing_cycle_pair(cluster):
                continue

            metadata = _cluster_metadata(cluster)
            for tx in cluster:
                if tx.id in emitted:
                    continue
                emitted.add(tx.id)
                merchant = tx.merchant_name or tx.name
                out.append(
                    AnomalyCandidate(
                        transaction=tx,
                        type="duplicate_charge",
                        severity="high",
                        reason=f"Duplicate charge detected: ${key.amount} at {merchant}",
                        metadata=metadata,
                    )
                )
    return out


__all__ = [
    "ChargeKey",
    "is_billing_cycle_pair",
    "find_duplicate_charges",
]
