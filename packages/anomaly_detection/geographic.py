"""Geographic-anomaly detector.

Flags a merchant whose location changes implausibly fast: the same merchant
seen in two different places within ``hours_window`` hours on a significant
charge. Chain stores are excluded since different branches are normal.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .models import UNKNOWN_LOCATION, AnomalyCandidate, TransactionView
from .patterns import is_known_chain_store, is_legitimate


@dataclass(slots=True)
class LocationState:
    last_location: str
    last_seen: datetime
    locations: set[str] = field(default_factory=set)

    def move_to(self, location: str, when: datetime) -> None:
        self.locations.add(location)
        self.last_location = location
        self.last_seen = when


def detect_geographic_anomalies(
    transactions: Iterable[TransactionView],
    geographic_threshold: float,
    hours_window: int,
) -> list[AnomalyCandidate]:
    """Return ``geographic_anomaly`` candidates from a chronological fold.

    Transactions without a location are neither compared nor recorded, so an
    unknown location can never be one side of a reported change.
    """

    window = timedelta(hours=hours_window)
    history: dict[str, LocationState] = {}
    out: list[AnomalyCandidate] = []

    for tx in sorted(transactions, key=lambda t: t.date):
        if is_legitimate(tx.search_text):
            continue
        merchant = tx.merchant_key
        if is_known_chain_store(merchant):
            continue
        location = tx.effective_location
        if location == UNKNOWN_LOCATION:
            continue

        state = history.get(merchant)
        if state is None:
            history[merchant] = LocationState(location, tx.date, {location})
            continue

        elapsed = tx.date - state.last_seen
        if (
            location != state.last_location
            and elapsed <= window
            and tx.magnitude > geographic_threshold
        ):
            hours = round(elapsed.total_seconds() / 3600)
            out.append(
                AnomalyCandidate(
                    transaction=tx,
                    type="geographic_anomaly",
                    severity="medium",
                    reason=(
                        f"Unusual location change: {state.last_location} → {location} "
                        f"within {hours} hours"
                    ),
                    metadata={
                        "previousLocation": state.last_location,
                        "currentLocation": location,
                        "timeDiff": hours,
                    },
                )
            )
        state.move_to(location, tx.date)
    return out


__all__ = ["LocationState", "detect_geographic_anomalies"]
