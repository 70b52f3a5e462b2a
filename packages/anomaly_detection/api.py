"""Public entry points for the ``anomaly_detection`` package.

:func:`detect_anomalies` is the orchestrator: it resolves settings, fetches
the user's transaction window, drops transactions covered by a dismissal
rule, runs every detector, stores new findings idempotently and returns the
persisted anomaly set. The remaining functions back the dashboard actions on
individual anomalies and on dismissal rules.

All functions open their own session through :func:`db.client.session_scope`;
``database_url`` falls back to the ``DATABASE_URL`` environment variable.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from db.client import session_scope
from db.models.finance import AnomalyDetectionResult
from sqlalchemy.exc import SQLAlchemyError

from . import persistence as store
from .duplicates import find_duplicate_charges
from .geographic import detect_geographic_anomalies
from .logging_setup import detection_run, get_logger
from .merchants import detect_new_high_value_merchants
from .models import (
    SEVERITY_RANK,
    AnomalyCandidate,
    AnomalyRecord,
    DetectionReport,
    DetectionSettings,
    SettingsOverrides,
    TransactionView,
)
from .outliers import detect_unusual_amounts
from .rules import DismissalRulePayload, RuleSet, StoredRule, load_rule_set, rule_from_payload
from .settings import get_or_create_settings, resolve_effective_settings
from .suspicious import detect_suspicious_patterns

logger = get_logger("anomaly_detection.api")


class AnomalyDetectionError(RuntimeError):
    """Settings, transactions or rules could not be read; no result produced."""


type Detector = Callable[[Sequence[TransactionView], DetectionSettings], list[AnomalyCandidate]]

# Run order is also candidate order; it only matters for log readability.
DETECTORS: tuple[tuple[str, Detector], ...] = (
    ("suspicious_pattern", lambda txs, s: detect_suspicious_patterns(txs)),
    ("duplicate_charge", lambda txs, s: find_duplicate_charges(txs, s.hours_window)),
    ("unusual_amount", lambda txs, s: detect_unusual_amounts(txs, s.z_score_threshold)),
    (
        "new_high_value_merchant",
        lambda txs, s: detect_new_high_value_merchants(txs, s.new_merchant_threshold),
    ),
    (
        "geographic_anomaly",
        lambda txs, s: detect_geographic_anomalies(txs, s.geographic_threshold, s.hours_window),
    ),
)


def run_detectors(
    transactions: Sequence[TransactionView], settings: DetectionSettings
) -> list[AnomalyCandidate]:
    """Run every detector over the same transactions and concatenate the results."""

    candidates: list[AnomalyCandidate] = []
    for name, detector in DETECTORS:
        found = detector(transactions, settings)
        logger.debug("Detector %s produced %d candidate(s)", name, len(found))
        candidates.extend(found)
    return candidates


def _utc_naive(now: datetime | None) -> datetime:
    # Transaction dates are stored as naive UTC
    if now is None:
        return datetime.now(UTC).replace(tzinfo=None)
    if now.tzinfo is not None:
        return now.astimezone(UTC).replace(tzinfo=None)
    return now


def _to_record(row: AnomalyDetectionResult) -> AnomalyRecord:
    return AnomalyRecord(
        id=row.id,
        type=row.type,
        severity=row.severity,
        reason=row.reason,
        transaction=TransactionView.from_row(row.transaction),
        is_hidden=row.is_hidden,
        is_resolved=row.is_resolved,
        metadata=row.details,
        created_at=row.created_at,
    )


def sort_anomalies(records: Iterable[AnomalyRecord]) -> list[AnomalyRecord]:
    """Severity first (high, medium, low), then newest transaction first."""

    by_date = sorted(records, key=lambda r: r.date, reverse=True)
    return sorted(by_date, key=lambda r: SEVERITY_RANK.get(r.severity, 0), reverse=True)


def _visible_records(rows: Iterable[AnomalyDetectionResult], rules: RuleSet) -> list[AnomalyRecord]:
    records = [_to_record(row) for row in rows if row.transaction is not None]
    return sort_anomalies(r for r in records if not rules.is_dismissed(r.transaction))


def detect_anomalies(
    user_id: str,
    *,
    overrides: SettingsOverrides | Mapping[str, Any] | None = None,
    include_hidden: bool = False,
    include_resolved: bool = False,
    database_url: str | None = None,
    now: datetime | None = None,
) -> DetectionReport:
    """Run anomaly detection for ``user_id`` and return the persisted anomalies.

    Parameters
    ----------
    user_id:
        Owner of the accounts whose transactions are analysed.
    overrides:
        Per-run setting overrides (``SettingsOverrides`` or a mapping with
        snake_case or camelCase keys). Validated before any database access;
        invalid values raise ``pydantic.ValidationError``.
    include_hidden, include_resolved:
        Also return anomalies the user hid or resolved.
    database_url:
        Optional database URL; defaults to ``DATABASE_URL``.
    now:
        Reference time for the lookback window (defaults to the current time).

    Notes
    -----
    Running twice over the same data creates nothing the second time. Write
    failures on individual anomalies are logged and skipped; read failures
    raise :class:`AnomalyDetectionError`.
    """

    if overrides is not None and not isinstance(overrides, SettingsOverrides):
        overrides = SettingsOverrides.model_validate(dict(overrides))
    end = _utc_naive(now)

    with detection_run(user_id), session_scope(database_url=database_url) as session:
        try:
            row, settings_created = get_or_create_settings(session, user_id)
            session.commit()
        except SQLAlchemyError as e:
            raise AnomalyDetectionError(f"Failed to load settings for user {user_id}") from e
        settings_id = row.id
        effective = resolve_effective_settings(row, overrides)

        try:
            rules = load_rule_set(store.load_dismissal_rules(session, user_id=user_id))
        except SQLAlchemyError as e:
            raise AnomalyDetectionError(f"Failed to load dismissal rules for user {user_id}") from e

        created_count = 0
        if not effective.enabled:
            logger.info("Anomaly detection disabled for user %s; returning stored results", user_id)
        else:
            start = end - timedelta(days=effective.time_window_days)
            try:
                rows = store.fetch_window_transactions(
                    session,
                    user_id=user_id,
                    start=start,
                    end=end,
                    min_amount=effective.min_amount,
                    max_amount=effective.max_amount,
                )
            except SQLAlchemyError as e:
                raise AnomalyDetectionError(
                    f"Failed to fetch transactions for user {user_id}"
                ) from e

            views = [TransactionView.from_row(r) for r in rows]
            kept = [tx for tx in views if not rules.is_dismissed(tx)]
            logger.info(
                "Analysing %d transaction(s) (%d dismissed) from %s to %s",
                len(kept),
                len(views) - len(kept),
                start.date().isoformat(),
                end.date().isoformat(),
            )
            if kept:
                candidates = run_detectors(kept, effective)
                created_count = store.persist_candidates(
                    session, settings_id=settings_id, candidates=candidates
                )
                logger.info(
                    "Stored %d new anomaly(ies) out of %d candidate(s)",
                    created_count,
                    len(candidates),
                )

        try:
            result_rows = store.load_anomalies(
                session,
                settings_id=settings_id,
                include_hidden=include_hidden,
                include_resolved=include_resolved,
            )
        except SQLAlchemyError as e:
            raise AnomalyDetectionError(f"Failed to load anomalies for user {user_id}") from e
        anomalies = _visible_records(result_rows, rules)

    return DetectionReport(
        anomalies=anomalies,
        settings=effective,
        settings_created=settings_created,
        created_count=created_count,
    )


def dismiss_pattern(
    user_id: str,
    pattern: str,
    pattern_type: str,
    reason: str | None = None,
    anomaly_id: int | None = None,
    *,
    database_url: str | None = None,
) -> StoredRule:
    """Store a dismissal rule for the user and optionally hide one anomaly.

    Raises ``pydantic.ValidationError`` for an empty pattern or type and
    :class:`~anomaly_detection.rules.RuleParseError` for an ``amount_range``
    pattern that is not ``"min-max"``.
    """

    payload = DismissalRulePayload(pattern=pattern, pattern_type=pattern_type, reason=reason)
    rule_from_payload(payload)

    with session_scope(database_url=database_url) as session:
        rule_row = store.create_dismissal_rule(session, user_id=user_id, payload=payload)
        if anomaly_id is not None:
            hidden = store.set_anomaly_hidden(session, anomaly_id=anomaly_id, is_hidden=True)
            if hidden is None:
                logger.warning("Anomaly %s not found; rule stored without hiding it", anomaly_id)
        logger.info(
            "Stored %s dismissal rule %s for user %s", payload.pattern_type, rule_row.id, user_id
        )
        return StoredRule.from_row(rule_row)


def list_dismissal_rules(user_id: str, *, database_url: str | None = None) -> list[StoredRule]:
    with session_scope(database_url=database_url) as session:
        rows = store.load_dismissal_rules(session, user_id=user_id)
        return [StoredRule.from_row(r) for r in rows]


def set_anomaly_hidden(
    anomaly_id: int, is_hidden: bool, *, database_url: str | None = None
) -> bool:
    """Hide or unhide one anomaly. Returns ``False`` when it does not exist."""

    with session_scope(database_url=database_url) as session:
        row = store.set_anomaly_hidden(session, anomaly_id=anomaly_id, is_hidden=is_hidden)
        return row is not None


def resolve_anomaly(
    anomaly_id: int, resolved_by: str | None = None, *, database_url: str | None = None
) -> bool:
    """Mark one anomaly resolved. Returns ``False`` when it does not exist."""

    with session_scope(database_url=database_url) as session:
        row = store.resolve_anomaly(session, anomaly_id=anomaly_id, resolved_by=resolved_by)
        return row is not None


__all__ = [
    "AnomalyDetectionError",
    "DETECTORS",
    "run_detectors",
    "sort_anomalies",
    "detect_anomalies",
    "dismiss_pattern",
    "list_dismissal_rules",
    "set_anomaly_hidden",
    "resolve_anomaly",
]
