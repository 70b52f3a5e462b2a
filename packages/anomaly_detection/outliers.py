"""Per-category statistical outlier detector (z-score on magnitudes)."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from statistics import fmean, pstdev

from .models import AnomalyCandidate, TransactionView
from .patterns import is_legitimate

MIN_CATEGORY_SAMPLE = 3
HIGH_SEVERITY_Z = 3.5


@dataclass(frozen=True, slots=True)
class CategoryStats:
    count: int
    mean: float
    stddev: float

    def z_score(self, magnitude: float) -> float | None:
        """Return the z-score, or ``None`` when the spread is zero."""
        if self.stddev == 0:
            return None
        return (magnitude - self.mean) / self.stddev


def category_stats(amounts: list[float]) -> CategoryStats:
    """Population mean and standard deviation of ``amounts``."""
    return CategoryStats(count=len(amounts), mean=fmean(amounts), stddev=pstdev(amounts))


def detect_unusual_amounts(
    transactions: Iterable[TransactionView], z_score_threshold: float
) -> list[AnomalyCandidate]:
    """Flag transactions far above their category's average magnitude.

    Categories with fewer than ``MIN_CATEGORY_SAMPLE`` members are skipped.
    A category whose amounts are all identical has zero spread and cannot
    contain an outlier.
    """

    by_category: dict[str, list[TransactionView]] = defaultdict(list)
    for tx in transactions:
        if is_legitimate(tx.search_text):
            continue
        by_category[tx.effective_category].append(tx)

    out: list[AnomalyCandidate] = []
    for category, members in by_category.items():
        if len(members) < MIN_CATEGORY_SAMPLE:
            continue
        stats = category_stats([tx.magnitude for tx in members])
        for tx in members:
            z = stats.z_score(tx.magnitude)
            if z is None or z <= z_score_threshold:
                continue
            multiple = tx.magnitude / stats.mean if stats.mean else 0.0
            out.append(
                AnomalyCandidate(
                    transaction=tx,
                    type="unusual_amount",
                    severity="high" if z > HIGH_SEVERITY_Z else "medium",
                    reason=f"Unusually high {category} transaction ({multiple:.1f}x average)",
                    metadata={
                        "zScore": round(z, 1),
                        "categoryMean": round(stats.mean, 2),
                        "categoryStdDev": round(stats.stddev, 2),
                    },
                )
            )
    return out


__all__ = [
    "MIN_CATEGORY_SAMPLE",
    "HIGH_SEVERITY_Z",
    "CategoryStats",
    "category_stats",
    "detect_unusual_amounts",
]
