"""Data models and type aliases for ``anomaly_detection``.

Detectors never touch ORM rows directly. The orchestrator converts each
``db.models.finance.Transaction`` into an immutable :class:`TransactionView`
once per run; every detector, the rule filter and the result formatting work
on that view. Amount sign convention is preserved on the view (negative =
expense) and magnitudes are always taken through :attr:`TransactionView.magnitude`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

type AnomalyType = Literal[
    "suspicious_pattern",
    "duplicate_charge",
    "unusual_amount",
    "new_high_value_merchant",
    "geographic_anomaly",
]

type Severity = Literal["high", "medium", "low"]

ANOMALY_TYPES: frozenset[str] = frozenset(
    {
        "suspicious_pattern",
        "duplicate_charge",
        "unusual_amount",
        "new_high_value_merchant",
        "geographic_anomaly",
    }
)

# Higher rank sorts first in reports.
SEVERITY_RANK: dict[str, int] = {"high": 3, "medium": 2, "low": 1}

UNCATEGORIZED = "Uncategorized"
UNKNOWN_LOCATION = "Unknown"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionView:
    """Read-only view of one transaction as seen by the detectors."""

    id: str
    name: str
    amount: float
    date: datetime
    account_id: str | None = None
    merchant_name: str | None = None
    category: str | None = None
    category_ai: str | None = None
    merchant_entity_id: str | None = None
    location: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> TransactionView:
        return cls(
            id=str(row.id),
            name=row.name or "",
            amount=float(row.amount),
            date=row.date,
            account_id=getattr(row, "account_id", None),
            merchant_name=row.merchant_name,
            category=row.category,
            category_ai=row.category_ai,
            merchant_entity_id=row.merchant_entity_id,
            location=row.location,
        )

    @property
    def magnitude(self) -> float:
        return abs(self.amount)

    @property
    def effective_category(self) -> str:
        """AI-assigned category, else provider category, else ``Uncategorized``."""
        return self.category_ai or self.category or UNCATEGORIZED

    @property
    def merchant_key(self) -> str:
        """Merchant identity: entity id, else merchant name, else display name."""
        return self.merchant_entity_id or self.merchant_name or self.name

    @property
    def search_text(self) -> str:
        return f"{self.name} {self.merchant_name or ''}".lower()

    @property
    def effective_location(self) -> str:
        loc = (self.location or "").strip()
        return loc or UNKNOWN_LOCATION

    def summary(self) -> dict[str, Any]:
        """Compact JSON-safe snapshot stored in anomaly metadata."""
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "merchantName": self.merchant_name,
            "accountId": self.account_id,
        }


# ---------------------------------------------------------------------------
# Detector output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AnomalyCandidate:
    """In-memory detector output, before dedup and persistence."""

    transaction: TransactionView
    type: AnomalyType
    severity: Severity
    reason: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str, str]:
        # settings_id completes the key at persistence time
        return (self.transaction.id, self.type)


@dataclass(frozen=True, slots=True)
class AnomalyRecord:
    """A persisted anomaly joined with its transaction, as returned to callers."""

    id: int
    type: str
    severity: str
    reason: str
    transaction: TransactionView
    is_hidden: bool
    is_resolved: bool
    metadata: Mapping[str, Any] | None = None
    created_at: datetime | None = None

    @property
    def date(self) -> datetime:
        return self.transaction.date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "reason": self.reason,
            "date": self.date.isoformat(),
            "isHidden": self.is_hidden,
            "isResolved": self.is_resolved,
            "metadata": dict(self.metadata) if self.metadata else None,
            "transaction": self.transaction.summary(),
        }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectionSettings:
    """Effective settings for one detection run (stored row plus overrides)."""

    min_amount: float = 50.0
    max_amount: float = 10000.0
    time_window_days: int = 30
    z_score_threshold: float = 2.5
    new_merchant_threshold: float = 100.0
    geographic_threshold: float = 50.0
    hours_window: int = 24
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SettingsOverrides(BaseModel):
    """Optional per-run overrides for every detection setting.

    Accepts both snake_case field names and the camelCase names used by the
    dashboard's query parameters (``minAmount``, ``timeWindow`` ...).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    min_amount: float | None = Field(default=None, alias="minAmount", ge=0)
    max_amount: float | None = Field(default=None, alias="maxAmount", gt=0)
    time_window_days: int | None = Field(default=None, alias="timeWindow", gt=0)
    z_score_threshold: float | None = Field(default=None, alias="zScoreThreshold", gt=0)
    new_merchant_threshold: float | None = Field(
        default=None, alias="newMerchantThreshold", ge=0
    )
    geographic_threshold: float | None = Field(default=None, alias="geographicThreshold", ge=0)
    hours_window: int | None = Field(default=None, alias="hoursWindow", gt=0)

    @field_validator("min_amount", "max_amount", "z_score_threshold")
    @classmethod
    def _finite(cls, v: float | None) -> float | None:
        if v is not None and v != v:  # NaN
            raise ValueError("must be a number")
        return v

    @model_validator(mode="after")
    def _bounds_ordered(self) -> SettingsOverrides:
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("minAmount must not exceed maxAmount")
        return self

    def provided(self) -> dict[str, Any]:
        """Return only the fields the caller actually set (snake_case keys)."""
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True, slots=True)
class DetectionReport:
    """Result of one :func:`anomaly_detection.api.detect_anomalies` call."""

    anomalies: list[AnomalyRecord]
    settings: DetectionSettings
    settings_created: bool = False
    created_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "anomalies": [a.to_dict() for a in self.anomalies],
            "settings": self.settings.to_dict(),
        }


__all__ = [
    "AnomalyType",
    "Severity",
    "ANOMALY_TYPES",
    "SEVERITY_RANK",
    "UNCATEGORIZED",
    "UNKNOWN_LOCATION",
    "TransactionView",
    "AnomalyCandidate",
    "AnomalyRecord",
    "DetectionSettings",
    "SettingsOverrides",
    "DetectionReport",
]
