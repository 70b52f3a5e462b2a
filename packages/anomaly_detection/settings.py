"""Per-user detection settings: fetch-or-create and override resolution.

Exports
-------
- ``DEFAULT_SETTINGS``: the documented defaults applied to new rows.
- ``get_or_create_settings(...)``: return ``(row, created)`` for a user,
  creating the row with defaults on first access. Safe under concurrent first
  access: a lost insert race returns the winner's row with ``created=False``.
- ``resolve_effective_settings(...)``: merge a stored row with per-run
  overrides into an immutable :class:`~anomaly_detection.models.DetectionSettings`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from db.models.finance import AnomalyDetectionSettings
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import DetectionSettings, SettingsOverrides

logger = get_logger("anomaly_detection.settings")

DEFAULT_SETTINGS: Mapping[str, Any] = {
    "min_amount": 50.0,
    "max_amount": 10000.0,
    "time_window_days": 30,
    "z_score_threshold": 2.5,
    "new_merchant_threshold": 100.0,
    "geographic_threshold": 50.0,
    "hours_window": 24,
    "enabled": True,
    "email_notifications": True,
    "email_frequency": "daily",
}


def _find(session: Session, user_id: str) -> AnomalyDetectionSettings | None:
    return (
        session.execute(
            select(AnomalyDetectionSettings).where(AnomalyDetectionSettings.user_id == user_id)
        )
        .scalars()
        .first()
    )


def get_or_create_settings(
    session: Session, user_id: str
) -> tuple[AnomalyDetectionSettings, bool]:
    """Return the user's settings row and whether it was created by this call.

    The caller owns the transaction scope; a newly created row is flushed but
    not committed.
    """

    if not user_id or not user_id.strip():
        raise ValueError("user_id must be a non-empty string")

    existing = _find(session, user_id)
    if existing is not None:
        return existing, False

    row = AnomalyDetectionSettings(user_id=user_id, **DEFAULT_SETTINGS)
    try:
        session.add(row)
        session.flush()
    except IntegrityError:
        # Another run created the row between our read and insert
        session.rollback()
        winner = _find(session, user_id)
        if winner is None:
            raise
        return winner, False

    logger.info("Created default anomaly detection settings for user %s", user_id)
    return row, True


def resolve_effective_settings(
    row: AnomalyDetectionSettings | None,
    overrides: SettingsOverrides | Mapping[str, Any] | None = None,
) -> DetectionSettings:
    """Merge stored settings with per-run overrides.

    ``overrides`` may be a :class:`SettingsOverrides` or a plain mapping (keys
    in snake_case or the dashboard's camelCase); mappings are validated.
    Raises ``ValueError`` when the merged amount bounds are inverted.
    """

    base: dict[str, Any] = dict(DEFAULT_SETTINGS)
    if row is not None:
        for name in DetectionSettings.__dataclass_fields__:
            base[name] = getattr(row, name)

    if overrides is not None:
        if not isinstance(overrides, SettingsOverrides):
            overrides = SettingsOverrides.model_validate(dict(overrides))
        base.update(overrides.provided())

    effective = DetectionSettings(
        min_amount=float(base["min_amount"]),
        max_amount=float(base["max_amount"]),
        time_window_days=int(base["time_window_days"]),
        z_score_threshold=float(base["z_score_threshold"]),
        new_merchant_threshold=float(base["new_merchant_threshold"]),
        geographic_threshold=float(base["geographic_threshold"]),
        hours_window=int(base["hours_window"]),
        enabled=bool(base["enabled"]),
    )
    if effective.min_amount > effective.max_amount:
        raise ValueError(
            f"min_amount ({effective.min_amount}) exceeds max_amount ({effective.max_amount})"
        )
    return effective


__all__ = [
    "DEFAULT_SETTINGS",
    "get_or_create_settings",
    "resolve_effective_settings",
]
