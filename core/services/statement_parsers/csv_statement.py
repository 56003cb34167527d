"""
Delimited (CSV) statement reader.

Bank CSV exports differ per bank and per language, so columns are found by
header synonyms (Dutch and English) rather than by position. Three amount
layouts are understood: a signed amount column, an unsigned amount with an
Af/Bij (debit/credit) indicator column, and separate debit and credit columns.
"""

import csv
import io
import re
from typing import Dict, List, Optional

from core.exceptions import ParseError

from .base import ParseResult, RawTransaction, parse_amount, parse_date

FORMAT = "CSV"

HEADER_SCAN_ROWS = 10
DELIMITERS = (";", ",", "\t")

# field -> (exact synonyms, prefix synonyms)
COLUMN_SYNONYMS = {
    "indicator": (("af bij", "af/bij", "debet/credit", "credit/debit", "d/c", "cdtdbtind", "bij/af"), ()),
    "date": ((), ("datum", "date", "boekdatum", "transactiedatum", "booking date", "transaction date")),
    "amount": ((), ("bedrag", "amount", "transactiebedrag")),
    "debit": (("debit", "debet", "af", "uitgaven", "withdrawal", "money out", "paid out"), ()),
    "credit": (("credit", "bij", "ontvangsten", "deposit", "money in", "paid in"), ()),
    "reference": ((), ("kenmerk", "betalingskenmerk", "reference", "referentie")),
    "contra_account": ((), ("tegenrekening", "contra", "counter account", "counterparty account")),
    "contra_name": ((), ("naam", "name", "tegenpartij", "counterparty", "payee")),
    "description": ((), ("omschrijving", "description", "mededelingen", "memo", "details", "narrative")),
    "balance": ((), ("saldo", "balance")),
}
FIELD_ORDER = (
    "indicator",
    "date",
    "amount",
    "debit",
    "credit",
    "reference",
    "contra_account",
    "contra_name",
    "description",
    "balance",
)
MULTI_COLUMN_FIELDS = {"description"}

DEBIT_INDICATORS = {"af", "d", "debit", "debet", "dbit", "-"}

_BALANCE_ROW_RE = re.compile(
    r"^(begin|eind|start|opening|closing|vorig|nieuw)\s*(saldo|balance)|^(saldo|balance)\b",
    re.IGNORECASE,
)


def detect_delimiter(sample: str) -> str:
    first_line = next((line for line in sample.splitlines() if line.strip()), "")
    counts = {delimiter: first_line.count(delimiter) for delimiter in DELIMITERS}
    best = max(DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ","


def _normalize_header(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").strip().strip('"').lower())


def map_columns(headers: List[str]) -> Dict[str, List[int]]:
    normalized = [_normalize_header(h) for h in headers]
    taken = set()
    mapping: Dict[str, List[int]] = {}
    for field in FIELD_ORDER:
        exact, prefixes = COLUMN_SYNONYMS[field]
        matches = []
        for index, header in enumerate(normalized):
            if index in taken or not header:
                continue
            if header in exact or any(header.startswith(p) for p in prefixes):
                matches.append(index)
                if field not in MULTI_COLUMN_FIELDS:
                    break
        if matches:
            mapping[field] = matches
            taken.update(matches)
    return mapping


def _has_amount_columns(mapping) -> bool:
    return "amount" in mapping or "debit" in mapping or "credit" in mapping


def _cell(row: List[str], mapping, field) -> str:
    indexes = mapping.get(field) or []
    values = [row[i].strip() for i in indexes if i < len(row) and row[i].strip()]
    return " ".join(values)


def _row_amount(row, mapping):
    if "amount" in mapping:
        amount = parse_amount(_cell(row, mapping, "amount"))
        indicator = _cell(row, mapping, "indicator").lower()
        if indicator:
            amount = abs(amount)
            if indicator in DEBIT_INDICATORS:
                amount = -amount
        return amount

    debit_raw = _cell(row, mapping, "debit")
    credit_raw = _cell(row, mapping, "credit")
    if not debit_raw and not credit_raw:
        raise ValueError("no debit or credit value")
    debit = abs(parse_amount(debit_raw)) if debit_raw else 0
    credit = abs(parse_amount(credit_raw)) if credit_raw else 0
    return credit - debit


def parse_csv(text: str, delimiter: Optional[str] = None) -> ParseResult:
    delimiter = delimiter or detect_delimiter(text)
    rows = list(csv.reader(io.StringIO(text), delimiter=delimiter))

    header_index = None
    mapping: Dict[str, List[int]] = {}
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        candidate = map_columns(row)
        if "date" in candidate and _has_amount_columns(candidate):
            header_index, mapping = index, candidate
            break
    if header_index is None:
        raise ParseError("CSV statement has no recognisable date and amount columns.")

    result = ParseResult(format=FORMAT)
    for line_no, row in enumerate(rows[header_index + 1:], start=header_index + 2):
        if not any(cell.strip() for cell in row):
            continue

        description = _cell(row, mapping, "description")
        name = _cell(row, mapping, "contra_name")
        if _BALANCE_ROW_RE.match(description or name):
            result.skip(f"Row {line_no}: balance line")
            continue

        date_raw = _cell(row, mapping, "date")
        if not date_raw:
            result.skip(f"Row {line_no}: missing date")
            continue
        try:
            txn_date = parse_date(date_raw)
        except ValueError as exc:
            result.skip(f"Row {line_no}: {exc}")
            continue

        try:
            amount = _row_amount(row, mapping)
        except ValueError as exc:
            result.skip(f"Row {line_no}: {exc}")
            continue
        if amount == 0:
            result.skip(f"Row {line_no}: zero amount")
            continue

        result.add(
            RawTransaction(
                transaction_date=txn_date,
                amount=amount,
                description=description or name,
                contra_account=_cell(row, mapping, "contra_account"),
                contra_name=name,
                reference=_cell(row, mapping, "reference"),
            )
        )
    return result
