from __future__ import annotations

from anomaly_detection.duplicates import ChargeKey, find_duplicate_charges, is_billing_cycle_pair

from tests.helpers.factories import make_tx


def _charge(date: str, amount: float = -49.99, **fields):
    fields.setdefault("merchant_name", "StreamFlix")
    return make_tx(name="STREAMFLIX.COM", amount=amount, date=date, **fields)


def test_pair_exactly_at_window_edge_is_a_duplicate() -> None:
    a = _charge("2024-03-10 10:00")
    b = _charge("2024-03-11 10:00")

    out = find_duplicate_charges([b, a], hours_window=24)

    assert [c.transaction.id for c in out] == [a.id, b.id]
    assert all(c.type == "duplicate_charge" and c.severity == "high" for c in out)
    assert out[0].reason == "Duplicate charge detected: $49.99 at StreamFlix"
    meta = out[0].metadata
    assert meta["duplicateCount"] == 2
    assert [d["id"] for d in meta["duplicateTransactions"]] == [a.id, b.id]
    assert meta["timeSpan"]["hoursDiff"] == 24.0


def test_pair_just_outside_window_is_not_a_duplicate() -> None:
    a = _charge("2024-03-10 10:00")
    b = _charge("2024-03-11 11:00")

    assert find_duplicate_charges([a, b], hours_window=24) == []


def test_billing_cycle_pair_is_ignored() -> None:
    a = _charge("2024-03-01 10:00")
    b = _charge("2024-03-02 09:00")

    assert is_billing_cycle_pair([a, b])
    assert find_duplicate_charges([a, b], hours_window=24) == []


def test_billing_cycle_pair_across_months_with_wide_window() -> None:
    feb = _charge("2024-02-02 08:00")
    mar = _charge("2024-03-01 08:00")

    assert find_duplicate_charges([feb, mar], hours_window=24 * 40) == []


def test_three_charges_early_in_month_are_still_duplicates() -> None:
    txs = [_charge(f"2024-03-01 {h:02d}:00") for h in (9, 10, 11)]

    out = find_duplicate_charges(txs, hours_window=24)

    assert sorted(c.transaction.id for c in out) == sorted(t.id for t in txs)
    assert out[0].metadata["duplicateCount"] == 3


def test_each_transaction_reported_once_across_overlapping_clusters() -> None:
    # a-b within 24h, b-c within 24h, a-c not
    a = _charge("2024-03-10 00:00")
    b = _charge("2024-03-10 20:00")
    c = _charge("2024-03-11 16:00")

    out = find_duplicate_charges([a, b, c], hours_window=24)

    assert sorted(x.transaction.id for x in out) == sorted([a.id, b.id, c.id])


def test_different_amounts_or_merchants_do_not_group() -> None:
    a = _charge("2024-03-10 10:00", amount=-49.99)
    b = _charge("2024-03-10 11:00", amount=-59.99)
    c = _charge("2024-03-10 12:00", merchant_name="OtherFlix")

    assert find_duplicate_charges([a, b, c], hours_window=24) == []


def test_amount_key_uses_cents_of_the_magnitude() -> None:
    a = make_tx(name="Shop", amount=-19.999, date="2024-03-10 10:00")
    b = make_tx(name="Shop", amount=20.0, date="2024-03-10 11:00")

    assert ChargeKey.of(a) == ChargeKey.of(b) == ChargeKey("Shop", "20.00")
    assert len(find_duplicate_charges([a, b], hours_window=24)) == 2


def test_allow_listed_charges_are_excluded() -> None:
    a = make_tx(name="Online Transfer to Savings", amount=-500.0, date="2024-03-10 10:00")
    b = make_tx(name="Online Transfer to Savings", amount=-500.0, date="2024-03-10 11:00")

    assert find_duplicate_charges([a, b], hours_window=24) == []
