"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the finance domain models read and written by
``anomaly_detection``.
"""

from .finance import (
    Account,
    AnomalyDetectionResult,
    AnomalyDetectionSettings,
    AnomalyDismissalRule,
    Base,
    Transaction,
)

__all__ = [
    "Base",
    "Account",
    "Transaction",
    "AnomalyDetectionSettings",
    "AnomalyDismissalRule",
    "AnomalyDetectionResult",
]
