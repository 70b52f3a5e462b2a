# ruff: noqa: I001
"""Persistence integration for anomaly_detection.

Functions here read transactions/rules and write anomaly results in the
shared database owned by ``libs/db``. They take an open SQLAlchemy session;
transaction scope belongs to the caller except in :func:`persist_candidates`,
which commits each candidate on its own so that one failed write cannot roll
back its siblings.

Idempotency rules:
- Anomaly results are unique on ``(settings_id, transaction_id, type)``.
  Inserts use ``ON CONFLICT DO NOTHING`` on PostgreSQL and SQLite; other
  dialects check first and treat an ``IntegrityError`` from a concurrent
  writer as "already exists". Either way an existing row is never modified.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from db.models.finance import (
    Account,
    AnomalyDetectionResult,
    AnomalyDismissalRule,
    Transaction,
)
from .logging_setup import get_logger
from .models import AnomalyCandidate
from .rules import DismissalRulePayload

logger = get_logger("anomaly_detection.persistence")

_RESULTS = AnomalyDetectionResult.__table__


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def fetch_window_transactions(
    session: Session,
    *,
    user_id: str,
    start: datetime,
    end: datetime,
    min_amount: float,
    max_amount: float,
) -> list[Transaction]:
    """Return the user's transactions dated in ``[start, end]`` whose absolute
    amount lies in ``[min_amount, max_amount]``, newest first."""

    stmt = (
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id)
        .where(Transaction.date >= start, Transaction.date <= end)
        .where(func.abs(Transaction.amount) >= min_amount)
        .where(func.abs(Transaction.amount) <= max_amount)
        .order_by(Transaction.date.desc(), Transaction.id)
    )
    return list(session.execute(stmt).scalars().all())


def load_dismissal_rules(session: Session, *, user_id: str) -> list[AnomalyDismissalRule]:
    """All dismissal rules for a user, newest first."""

    stmt = (
        select(AnomalyDismissalRule)
        .where(AnomalyDismissalRule.user_id == user_id)
        .order_by(AnomalyDismissalRule.created_at.desc(), AnomalyDismissalRule.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def transaction_exists(session: Session, transaction_id: str) -> bool:
    found = session.execute(
        select(Transaction.id).where(Transaction.id == transaction_id)
    ).first()
    return found is not None


def load_anomalies(
    session: Session,
    *,
    settings_id: int,
    include_hidden: bool = False,
    include_resolved: bool = False,
) -> list[AnomalyDetectionResult]:
    """Persisted anomalies for a settings row with their transactions loaded."""

    stmt = (
        select(AnomalyDetectionResult)
        .options(selectinload(AnomalyDetectionResult.transaction))
        .where(AnomalyDetectionResult.settings_id == settings_id)
        .order_by(AnomalyDetectionResult.created_at.desc(), AnomalyDetectionResult.id.desc())
    )
    if not include_hidden:
        stmt = stmt.where(AnomalyDetectionResult.is_hidden.is_(False))
    if not include_resolved:
        stmt = stmt.where(AnomalyDetectionResult.is_resolved.is_(False))
    return list(session.execute(stmt).scalars().all())


# ---------------------------------------------------------------------------
# Writes: anomaly results
# ---------------------------------------------------------------------------


def _result_values(settings_id: int, candidate: AnomalyCandidate) -> dict[str, Any]:
    return {
        "settings_id": settings_id,
        "transaction_id": candidate.transaction.id,
        "type": candidate.type,
        "severity": candidate.severity,
        "reason": candidate.reason,
        "metadata": dict(candidate.metadata) if candidate.metadata else None,
    }


def insert_anomaly_if_absent(
    session: Session, *, settings_id: int, candidate: AnomalyCandidate
) -> bool:
    """Insert the candidate unless its dedup key exists. Returns True on insert.

    Does not commit.
    """

    values = _result_values(settings_id, candidate)
    dialect = session.get_bind().dialect.name
    key_cols = [_RESULTS.c.settings_id, _RESULTS.c.transaction_id, _RESULTS.c.type]

    if dialect == "postgresql":
        stmt = pg_insert(_RESULTS).values(values).on_conflict_do_nothing(index_elements=key_cols)
        return session.execute(stmt).rowcount == 1
    if dialect == "sqlite":
        stmt = (
            sqlite_insert(_RESULTS).values(values).on_conflict_do_nothing(index_elements=key_cols)
        )
        return session.execute(stmt).rowcount == 1

    existing = session.execute(
        select(AnomalyDetectionResult.id).where(
            AnomalyDetectionResult.settings_id == settings_id,
            AnomalyDetectionResult.transaction_id == candidate.transaction.id,
            AnomalyDetectionResult.type == candidate.type,
        )
    ).first()
    if existing is not None:
        return False
    try:
        with session.begin_nested():
            session.execute(insert(_RESULTS).values(values))
    except IntegrityError:
        # Lost a race with a concurrent run; the row exists, which is all we want
        return False
    return True


def persist_candidates(
    session: Session, *, settings_id: int, candidates: Iterable[AnomalyCandidate]
) -> int:
    """Persist new candidates one at a time; return how many rows were created.

    Candidates whose transaction has vanished since the fetch are skipped.
    A write failure is rolled back, logged with its key and skipped; the
    remaining candidates are still attempted.
    """

    created = 0
    attempted: set[tuple[str, str]] = set()
    for candidate in candidates:
        key = candidate.dedup_key
        if key in attempted:
            continue
        attempted.add(key)

        tx_id, anomaly_type = key
        try:
            if not transaction_exists(session, tx_id):
                logger.warning(
                    "Skipping %s anomaly for missing transaction %s", anomaly_type, tx_id
                )
                continue
            if insert_anomaly_if_absent(session, settings_id=settings_id, candidate=candidate):
                created += 1
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                "Failed to store %s anomaly for transaction %s (settings %s): %s",
                anomaly_type,
                tx_id,
                settings_id,
                e,
            )
    return created


def set_anomaly_hidden(
    session: Session, *, anomaly_id: int, is_hidden: bool
) -> AnomalyDetectionResult | None:
    """Toggle the hidden flag; returns the row or ``None`` when it is missing."""

    row = session.get(AnomalyDetectionResult, anomaly_id)
    if row is None:
        return None
    row.is_hidden = is_hidden
    session.flush()
    return row


def resolve_anomaly(
    session: Session, *, anomaly_id: int, resolved_by: str | None = None
) -> AnomalyDetectionResult | None:
    row = session.get(AnomalyDetectionResult, anomaly_id)
    if row is None:
        return None
    row.is_resolved = True
    row.resolved_at = datetime.now(UTC)
    row.resolved_by = resolved_by
    session.flush()
    return row


# ---------------------------------------------------------------------------
# Writes: dismissal rules
# ---------------------------------------------------------------------------


def create_dismissal_rule(
    session: Session, *, user_id: str, payload: DismissalRulePayload
) -> AnomalyDismissalRule:
    row = AnomalyDismissalRule(
        user_id=user_id,
        rule_type=payload.pattern_type,
        rule_value=payload.to_json(),
    )
    session.add(row)
    session.flush()
    return row


__all__ = [
    "fetch_window_transactions",
    "load_dismissal_rules",
    "transaction_exists",
    "load_anomalies",
    "insert_anomaly_if_absent",
    "persist_candidates",
    "set_anomaly_hidden",
    "resolve_anomaly",
    "create_dismissal_rule",
]
