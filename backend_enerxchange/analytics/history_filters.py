"""
Pure helpers over transaction histories: filtering and CSV export/import.

The CSV form matches what the marketplace has always exported: header
Type,ID,Amount,Price,Date,Source, rows joined with commas and no quoting,
lines joined with "\\n" and no trailing newline. A field that itself contains a
comma therefore breaks the row; energy sources and dates never do.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable

from backend_enerxchange.analytics.history import TransactionRecord, TransactionType
from backend_enerxchange.contract.units import plain, to_decimal

CSV_HEADER = ("Type", "ID", "Amount", "Price", "Date", "Source")
CSV_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ALL = "all"


@dataclass(frozen=True)
class HistoryFilter:
    """
    Criteria for filter_history. "all" disables type / source matching;
    start_date and end_date are inclusive UTC calendar days.
    """

    type: str = ALL
    source: str = ALL
    start_date: date | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        allowed = {ALL, *(t.value for t in TransactionType)}
        if self.type not in allowed:
            raise ValueError(f"type must be one of {sorted(allowed)}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")

    def matches(self, record: TransactionRecord) -> bool:
        if self.type != ALL and record.type.value != self.type:
            return False
        if self.source != ALL and record.energy_source != self.source:
            return False
        day = record.timestamp.astimezone(timezone.utc).date()
        if self.start_date is not None and day < self.start_date:
            return False
        if self.end_date is not None and day > self.end_date:
            return False
        return True


def filter_history(records: Iterable[TransactionRecord], flt: HistoryFilter) -> list[TransactionRecord]:
    """Records matching every criterion, order preserved."""
    return [r for r in records if flt.matches(r)]


def _row(record: TransactionRecord) -> list[str]:
    return [
        record.type.value,
        str(record.listing_id),
        plain(record.amount),
        plain(record.price),
        record.timestamp.astimezone(timezone.utc).strftime(CSV_DATE_FORMAT),
        record.energy_source,
    ]


def export_history_csv(records: Iterable[TransactionRecord]) -> str:
    lines = [",".join(CSV_HEADER)]
    lines.extend(",".join(_row(r)) for r in records)
    return "\n".join(lines)


def parse_history_csv(text: str) -> list[TransactionRecord]:
    """Inverse of export_history_csv (tx_hash is not exported and comes back empty)."""
    reader = csv.reader(io.StringIO(text), quoting=csv.QUOTE_NONE)
    rows = [row for row in reader if row]
    if not rows or tuple(rows[0]) != CSV_HEADER:
        raise ValueError("missing or unexpected CSV header")
    out: list[TransactionRecord] = []
    for line_no, row in enumerate(rows[1:], start=2):
        if len(row) != len(CSV_HEADER):
            raise ValueError(f"line {line_no}: expected {len(CSV_HEADER)} fields, got {len(row)}")
        kind, listing_id, amount, price, when, source = row
        out.append(
            TransactionRecord(
                type=TransactionType(kind),
                listing_id=int(listing_id),
                amount=to_decimal(amount),
                price=to_decimal(price),
                timestamp=datetime.strptime(when, CSV_DATE_FORMAT).replace(tzinfo=timezone.utc),
                energy_source=source,
            )
        )
    return out
