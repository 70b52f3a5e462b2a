from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# ---------------------------
# External: accounts / transactions
# ---------------------------
#
# Both tables are owned by the bank-sync pipeline. The anomaly engine only
# reads them; the models exist here so queries and FKs have a target.


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    transactions: Mapped[list[Transaction]] = relationship(back_populates="account")


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    merchant_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Signed: negative amounts are expenses. Consumers take abs() for magnitudes.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    # Provider-assigned and AI-assigned categories; AI wins when both are set.
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_ai: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)

    account: Mapped[Account] = relationship(back_populates="transactions")


# ---------------------------
# Core: anomaly detection
# ---------------------------


class AnomalyDetectionSettings(Base):
    __tablename__ = "anomaly_detection_settings"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    min_amount: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("50"))
    max_amount: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("10000"))
    time_window_days: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("30")
    )
    z_score_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, server_default=text("2.5")
    )
    new_merchant_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, server_default=text("100")
    )
    geographic_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, server_default=text("50")
    )
    hours_window: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("24"))
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    # Notification preferences are stored alongside but never read by detection.
    email_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    email_frequency: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'daily'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AnomalyDismissalRule(Base):
    __tablename__ = "anomaly_dismissal_rules"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # Mirrors the payload's patternType; kept as a column for listing/filtering.
    rule_type: Mapped[str] = mapped_column(String, nullable=False)
    # JSON text: {"pattern": ..., "patternType": ..., "reason": ...}. Stored as
    # text rather than JSON so that malformed legacy payloads survive a load.
    rule_value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AnomalyDetectionResult(Base):
    __tablename__ = "anomaly_detection_results"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    settings_id: Mapped[int] = mapped_column(
        ForeignKey("anomaly_detection_settings.id", ondelete="CASCADE"), nullable=False
    )
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    # ``metadata`` is reserved on declarative classes; keep the column name.
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    is_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    transaction: Mapped[Transaction] = relationship()

    __table_args__ = (
        # Dedup key: one row per (settings, transaction, anomaly type).
        UniqueConstraint(
            "settings_id", "transaction_id", "type", name="uq_anomaly_results_dedup_key"
        ),
        CheckConstraint(
            "severity in ('high','medium','low')",
            name="ck_anomaly_results_severity",
        ),
        CheckConstraint(
            (
                "type in ('suspicious_pattern','duplicate_charge','unusual_amount',"
                "'new_high_value_merchant','geographic_anomaly')"
            ),
            name="ck_anomaly_results_type",
        ),
        Index("ix_anomaly_results_settings_hidden", "settings_id", "is_hidden"),
        Index("ix_anomaly_results_transaction", "transaction_id"),
    )


__all__ = [
    "Base",
    "Account",
    "Transaction",
    "AnomalyDetectionSettings",
    "AnomalyDismissalRule",
    "AnomalyDetectionResult",
]
