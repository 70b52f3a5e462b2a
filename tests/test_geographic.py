from __future__ import annotations

from anomaly_detection.geographic import detect_geographic_anomalies

from tests.helpers.factories import make_tx


def _visit(date: str, location: str | None, amount: float = -75.0, name: str = "Joe's Diner"):
    return make_tx(name=name, amount=amount, date=date, location=location)


def test_location_jump_within_window_is_flagged() -> None:
    ny = _visit("2024-03-10 10:00", "New York, NY")
    la = _visit("2024-03-10 15:00", "Los Angeles, CA")

    out = detect_geographic_anomalies([la, ny], geographic_threshold=50, hours_window=24)

    assert len(out) == 1
    (c,) = out
    assert c.transaction is la
    assert c.type == "geographic_anomaly"
    assert c.severity == "medium"
    assert c.reason == "Unusual location change: New York, NY → Los Angeles, CA within 5 hours"
    assert c.metadata == {
        "previousLocation": "New York, NY",
        "currentLocation": "Los Angeles, CA",
        "timeDiff": 5,
    }


def test_small_amount_is_not_significant() -> None:
    ny = _visit("2024-03-10 10:00", "New York, NY")
    la = _visit("2024-03-10 15:00", "Los Angeles, CA", amount=-40.0)

    assert detect_geographic_anomalies([ny, la], geographic_threshold=50, hours_window=24) == []


def test_change_outside_window_is_not_flagged() -> None:
    ny = _visit("2024-03-10 10:00", "New York, NY")
    la = _visit("2024-03-11 16:00", "Los Angeles, CA")

    assert detect_geographic_anomalies([ny, la], geographic_threshold=50, hours_window=24) == []


def test_chain_stores_are_excluded() -> None:
    ny = _visit("2024-03-10 10:00", "New York, NY", name="Starbucks")
    la = _visit("2024-03-10 15:00", "Los Angeles, CA", name="Starbucks")

    assert detect_geographic_anomalies([ny, la], geographic_threshold=50, hours_window=24) == []


def test_unknown_location_is_neither_compared_nor_recorded() -> None:
    ny = _visit("2024-03-10 10:00", "New York, NY")
    blank = _visit("2024-03-10 11:00", None)
    la = _visit("2024-03-10 12:00", "Los Angeles, CA")

    out = detect_geographic_anomalies([ny, blank, la], geographic_threshold=50, hours_window=24)

    assert [c.transaction.id for c in out] == [la.id]
    assert out[0].metadata["previousLocation"] == "New York, NY"


def test_same_location_repeat_is_not_flagged() -> None:
    a = _visit("2024-03-10 10:00", "New York, NY")
    b = _visit("2024-03-10 12:00", "New York, NY")

    assert detect_geographic_anomalies([a, b], geographic_threshold=50, hours_window=24) == []
