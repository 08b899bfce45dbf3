"""
Tests for pure history transforms: filter predicates and CSV export / parse.
"""

from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from backend_enerxchange.analytics.history import TransactionRecord, TransactionType
from backend_enerxchange.analytics.history_filters import (
    CSV_HEADER,
    HistoryFilter,
    export_history_csv,
    filter_history,
    parse_history_csv,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _rec(kind, listing_id, amount, price, when, source="solar"):
    return TransactionRecord(
        type=kind,
        listing_id=listing_id,
        amount=Decimal(amount),
        price=Decimal(price),
        timestamp=when,
        energy_source=source,
    )


def test_csv_of_two_records_has_three_lines_and_round_trips():
    records = [
        _rec(TransactionType.PURCHASE, 4, "40", "12.5", T0),
        _rec(TransactionType.SALE, 7, "0.000000000000000001", "3", T0 + timedelta(hours=5), "wind"),
    ]

    text = export_history_csv(records)
    lines = text.split("\n")

    assert len(lines) == 3
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1] == "purchase,4,40,12.5,2024-03-01 12:00:00,solar"
    assert not text.endswith("\n")
    assert parse_history_csv(text) == records


def test_export_of_empty_history_is_header_only():
    assert export_history_csv([]) == "Type,ID,Amount,Price,Date,Source"
    assert parse_history_csv(export_history_csv([])) == []


def test_parse_rejects_bad_header_and_short_rows():
    with pytest.raises(ValueError, match="header"):
        parse_history_csv("a,b,c")
    with pytest.raises(ValueError, match="line 2"):
        parse_history_csv("Type,ID,Amount,Price,Date,Source\npurchase,1,2")


def test_filter_by_type_source_and_inclusive_dates():
    records = [
        _rec(TransactionType.PURCHASE, 1, 1, 1, T0, "solar"),
        _rec(TransactionType.SALE, 2, 1, 1, T0 + timedelta(days=1), "wind"),
        _rec(TransactionType.PURCHASE, 3, 1, 1, T0 + timedelta(days=2, hours=11), "wind"),
    ]

    assert [r.listing_id for r in filter_history(records, HistoryFilter(type="purchase"))] == [1, 3]
    assert [r.listing_id for r in filter_history(records, HistoryFilter(source="wind"))] == [2, 3]
    window = HistoryFilter(start_date=date(2024, 3, 2), end_date=date(2024, 3, 3))
    # end date includes the whole day
    assert [r.listing_id for r in filter_history(records, window)] == [2, 3]
    assert filter_history(records, HistoryFilter()) == records


def test_filter_validation():
    with pytest.raises(ValueError):
        HistoryFilter(type="refund")
    with pytest.raises(ValueError):
        HistoryFilter(start_date=date(2024, 3, 5), end_date=date(2024, 3, 1))


def _random_history(rng: random.Random, n: int) -> list[TransactionRecord]:
    out = []
    for i in range(n):
        out.append(
            _rec(
                rng.choice(list(TransactionType)),
                rng.randint(0, 50),
                Decimal(rng.randint(1, 10**21)).scaleb(-18),
                Decimal(rng.randint(1, 10**20)).scaleb(-18),
                T0 + timedelta(seconds=rng.randint(0, 10 * 86_400)),
                rng.choice(["solar", "wind", "hydro"]),
            )
        )
    return out


@pytest.mark.parametrize("seed", range(8))
def test_filters_compose_as_conjunction(seed):
    """Filtering by all criteria at once equals applying each criterion in turn."""
    rng = random.Random(seed)
    records = _random_history(rng, rng.randint(0, 40))
    start = date(2024, 3, 1) + timedelta(days=rng.randint(0, 4))
    end = start + timedelta(days=rng.randint(0, 5))
    kind = rng.choice(["all", "purchase", "sale"])
    source = rng.choice(["all", "solar", "wind"])

    combined = filter_history(records, HistoryFilter(type=kind, source=source, start_date=start, end_date=end))
    stepwise = filter_history(records, HistoryFilter(type=kind))
    stepwise = filter_history(stepwise, HistoryFilter(source=source))
    stepwise = filter_history(stepwise, HistoryFilter(start_date=start, end_date=end))

    assert combined == stepwise
    assert all(r in records for r in combined)


@pytest.mark.parametrize("seed", range(8))
def test_csv_round_trip_preserves_values(seed):
    rng = random.Random(100 + seed)
    records = _random_history(rng, rng.randint(0, 25))

    parsed = parse_history_csv(export_history_csv(records))

    assert parsed == records
