"""Builders for in-memory transaction views used by detector tests."""

from __future__ import annotations

from datetime import datetime
from itertools import count
from typing import Any

from anomaly_detection.models import TransactionView

USER_ID = "user-1"
ACCOUNT_ID = "acct-1"

_ids = count(1)


def make_tx(
    name: str = "Widget Co",
    amount: float = -100.0,
    date: datetime | str = "2024-03-10 12:00",
    **fields: Any,
) -> TransactionView:
    """A ``TransactionView`` with sensible defaults; ``date`` may be ``YYYY-MM-DD HH:MM``."""

    if isinstance(date, str):
        date = datetime.strptime(date, "%Y-%m-%d %H:%M")
    fields.setdefault("id", f"tx-{next(_ids)}")
    fields.setdefault("account_id", ACCOUNT_ID)
    return TransactionView(name=name, amount=amount, date=date, **fields)


def tx_row(
    tx_id: str,
    name: str,
    amount: float,
    date: str,
    **fields: Any,
) -> dict[str, Any]:
    """Column values for seeding a ``db.models.finance.Transaction``."""

    return {
        "id": tx_id,
        "account_id": fields.pop("account_id", ACCOUNT_ID),
        "name": name,
        "amount": amount,
        "date": datetime.strptime(date, "%Y-%m-%d %H:%M"),
        **fields,
    }
