"""Public interface for the ``anomaly_detection`` package.

Symbol re-exports only; the orchestration lives in ``anomaly_detection.api``
and each detector in its own module.
"""

from .api import (
    AnomalyDetectionError,
    detect_anomalies,
    dismiss_pattern,
    list_dismissal_rules,
    resolve_anomaly,
    set_anomaly_hidden,
)
from .models import (
    AnomalyCandidate,
    AnomalyRecord,
    AnomalyType,
    DetectionReport,
    DetectionSettings,
    SettingsOverrides,
    Severity,
    TransactionView,
)
from .rules import RuleParseError, StoredRule

__all__ = [
    # API
    "detect_anomalies",
    "dismiss_pattern",
    "list_dismissal_rules",
    "set_anomaly_hidden",
    "resolve_anomaly",
    # Errors
    "AnomalyDetectionError",
    "RuleParseError",
    # Models / types
    "AnomalyType",
    "Severity",
    "TransactionView",
    "AnomalyCandidate",
    "AnomalyRecord",
    "DetectionSettings",
    "SettingsOverrides",
    "DetectionReport",
    "StoredRule",
]
