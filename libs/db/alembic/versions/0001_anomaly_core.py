# ruff: noqa: I001
"""Anomaly detection core tables.

Accounts and transactions are owned by the bank-sync pipeline; they are
created here only when absent so the anomaly tables have FK targets in fresh
databases.

Revision ID: 0001_anomaly_core
Revises: None
Create Date: 2025-06-21
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_anomaly_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLite only autoincrements INTEGER PRIMARY KEY
_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    if "accounts" not in existing:
        op.create_table(
            "accounts",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
        )
        op.create_index("ix_accounts_user_id", "accounts", ["user_id"])

    if "transactions" not in existing:
        op.create_table(
            "transactions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("account_id", sa.String(), nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("merchant_name", sa.Text(), nullable=True),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("date", sa.DateTime(), nullable=False),
            sa.Column("category", sa.Text(), nullable=True),
            sa.Column("category_ai", sa.Text(), nullable=True),
            sa.Column("merchant_entity_id", sa.String(), nullable=True),
            sa.Column("location", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_transactions_account_id", "transactions", ["account_id"])
        op.create_index("ix_transactions_date", "transactions", ["date"])

    op.create_table(
        "anomaly_detection_settings",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False, unique=True),
        sa.Column("min_amount", sa.Float(), nullable=False, server_default=sa.text("50")),
        sa.Column("max_amount", sa.Float(), nullable=False, server_default=sa.text("10000")),
        sa.Column("time_window_days", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("z_score_threshold", sa.Float(), nullable=False, server_default=sa.text("2.5")),
        sa.Column(
            "new_merchant_threshold", sa.Float(), nullable=False, server_default=sa.text("100")
        ),
        sa.Column(
            "geographic_threshold", sa.Float(), nullable=False, server_default=sa.text("50")
        ),
        sa.Column("hours_window", sa.Integer(), nullable=False, server_default=sa.text("24")),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "email_notifications", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "email_frequency", sa.String(), nullable=False, server_default=sa.text("'daily'")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "anomaly_dismissal_rules",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("rule_value", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_anomaly_dismissal_rules_user_id", "anomaly_dismissal_rules", ["user_id"])

    op.create_table(
        "anomaly_detection_results",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("settings_id", sa.BigInteger(), nullable=False),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["settings_id"], ["anomaly_detection_settings.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "severity in ('high','medium','low')", name="ck_anomaly_results_severity"
        ),
        sa.CheckConstraint(
            (
                "type in ('suspicious_pattern','duplicate_charge','unusual_amount',"
                "'new_high_value_merchant','geographic_anomaly')"
            ),
            name="ck_anomaly_results_type",
        ),
        sa.UniqueConstraint(
            "settings_id", "transaction_id", "type", name="uq_anomaly_results_dedup_key"
        ),
    )
    op.create_index(
        "ix_anomaly_results_settings_hidden",
        "anomaly_detection_results",
        ["settings_id", "is_hidden"],
    )
    op.create_index(
        "ix_anomaly_results_transaction", "anomaly_detection_results", ["transaction_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_anomaly_results_transaction", table_name="anomaly_detection_results")
    op.drop_index("ix_anomaly_results_settings_hidden", table_name="anomaly_detection_results")
    op.drop_table("anomaly_detection_results")
    op.drop_index("ix_anomaly_dismissal_rules_user_id", table_name="anomaly_dismissal_rules")
    op.drop_table("anomaly_dismissal_rules")
    op.drop_table("anomaly_detection_settings")
    # accounts/transactions belong to the sync pipeline and are left in place
