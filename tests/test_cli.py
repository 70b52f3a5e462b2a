from __future__ import annotations

import json
from datetime import datetime, timedelta

from typer.testing import CliRunner

from anomaly_detection.cli import app

from tests.helpers.db import all_results, seed_transactions
from tests.helpers.factories import USER_ID, tx_row

runner = CliRunner()


def _seed_recent_pair(db_url: str) -> None:
    # Detection runs against the real clock here, so keep the pair recent and
    # away from the first days of a month (billing-cycle exclusion)
    base = (datetime.now() - timedelta(days=2)).replace(hour=12, minute=0, second=0)
    while base.day <= 5:
        base -= timedelta(days=1)
    later = base + timedelta(hours=1)
    merchant = {"merchant_name": "StreamFlix"}
    seed_transactions(
        db_url,
        [
            tx_row("sf-1", "STREAMFLIX.COM", -89.99, f"{base:%Y-%m-%d %H:%M}", **merchant),
            tx_row("sf-2", "STREAMFLIX.COM", -89.99, f"{later:%Y-%m-%d %H:%M}", **merchant),
        ],
    )


def test_detect_prints_json(db_url: str) -> None:
    _seed_recent_pair(db_url)

    result = runner.invoke(app, ["detect", USER_ID, "--database-url", db_url, "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [a["type"] for a in payload["anomalies"]] == ["duplicate_charge", "duplicate_charge"]
    assert payload["settings"]["min_amount"] == 50.0


def test_detect_prints_a_table(db_url: str) -> None:
    _seed_recent_pair(db_url)

    result = runner.invoke(app, ["detect", USER_ID, "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert "2 anomaly(ies)" in result.output


def test_detect_with_nothing_to_report(db_url: str) -> None:
    result = runner.invoke(app, ["detect", USER_ID, "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert "No anomalies found." in result.output


def test_detect_without_database_url_fails_cleanly() -> None:
    result = runner.invoke(app, ["detect", USER_ID])

    assert result.exit_code == 1
    assert "DATABASE_URL" in result.output


def test_detect_rejects_invalid_overrides(db_url: str) -> None:
    result = runner.invoke(
        app,
        ["detect", USER_ID, "--database-url", db_url, "--min-amount", "500", "--max-amount", "10"],
    )

    assert result.exit_code == 1


def test_dismiss_then_list_rules(db_url: str) -> None:
    stored = runner.invoke(
        app,
        [
            "dismiss-pattern",
            USER_ID,
            "40-60",
            "--type",
            "amount_range",
            "--reason",
            "gym",
            "--database-url",
            db_url,
        ],
    )
    assert stored.exit_code == 0, stored.output

    listed = runner.invoke(app, ["list-rules", USER_ID, "--json", "--database-url", db_url])

    assert listed.exit_code == 0, listed.output
    rules = json.loads(listed.stdout)
    assert [(r["ruleType"], r["pattern"], r["reason"]) for r in rules] == [
        ("amount_range", "40-60", "gym")
    ]


def test_dismiss_rejects_malformed_amount_range(db_url: str) -> None:
    result = runner.invoke(
        app,
        ["dismiss-pattern", USER_ID, "cheap", "--type", "amount_range", "--database-url", db_url],
    )

    assert result.exit_code == 1


def test_hide_unhide_and_resolve(db_url: str) -> None:
    _seed_recent_pair(db_url)
    assert runner.invoke(app, ["detect", USER_ID, "--database-url", db_url]).exit_code == 0
    anomaly_id = str(all_results(db_url)[0].id)

    assert runner.invoke(app, ["hide", anomaly_id, "--database-url", db_url]).exit_code == 0
    assert all_results(db_url)[0].is_hidden is True
    assert runner.invoke(app, ["unhide", anomaly_id, "--database-url", db_url]).exit_code == 0
    assert all_results(db_url)[0].is_hidden is False

    resolved = runner.invoke(app, ["resolve", anomaly_id, "--by", "me", "--database-url", db_url])
    assert resolved.exit_code == 0, resolved.output
    assert all_results(db_url)[0].resolved_by == "me"


def test_hide_missing_anomaly_fails(db_url: str) -> None:
    result = runner.invoke(app, ["hide", "12345", "--database-url", db_url])

    assert result.exit_code == 1
    assert "not found" in result.output
