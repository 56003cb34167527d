"""
Shared types and value parsing for bank statement readers.

Every reader returns a ParseResult: the canonical transactions it could read,
plus a count (and a short note) for each row it had to skip. Money out is
negative, money in is positive, whatever the source format says.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from core.utils import normalize_whitespace, quantize_money, truncate

MAX_DESCRIPTION_LENGTH = 500
MAX_NAME_LENGTH = 200
MAX_IBAN_LENGTH = 34
MAX_REFERENCE_LENGTH = 100

DEFAULT_DESCRIPTION = "Bank transaction"

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%Y%m%d",
    "%Y/%m/%d",
    "%d-%m-%y",
)

_THOUSANDS_DOT_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")
_THOUSANDS_COMMA_RE = re.compile(r"^\d{1,3}(,\d{3})+$")
_CURRENCY_RE = re.compile(r"(EUR|USD|GBP|€|\$|£)", re.IGNORECASE)


@dataclass
class RawTransaction:
    transaction_date: Optional[date]
    amount: Optional[Decimal]
    description: str
    contra_account: str = ""
    contra_name: str = ""
    reference: str = ""

    def __post_init__(self):
        # None stays None so the importer can report the row as incomplete
        if self.amount is not None:
            self.amount = quantize_money(self.amount)
        self.description = truncate(
            normalize_whitespace(self.description) or DEFAULT_DESCRIPTION,
            MAX_DESCRIPTION_LENGTH,
        )
        self.contra_account = truncate(
            (self.contra_account or "").replace(" ", "").upper(), MAX_IBAN_LENGTH
        )
        self.contra_name = truncate(normalize_whitespace(self.contra_name), MAX_NAME_LENGTH)
        self.reference = truncate(normalize_whitespace(self.reference), MAX_REFERENCE_LENGTH)


@dataclass
class ParseResult:
    format: str
    transactions: List[RawTransaction] = field(default_factory=list)
    skipped: int = 0
    problems: List[str] = field(default_factory=list)

    def add(self, transaction: RawTransaction) -> None:
        self.transactions.append(transaction)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.problems.append(reason)


def decode_text(data: bytes) -> str:
    """UTF-8 first (BOM tolerated); Latin-1 for legacy Dutch bank exports."""
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_amount(raw) -> Decimal:
    """
    Parse a money string in either EU (1.234,56) or US (1,234.56) notation.

    Handles currency symbols, a leading sign, a trailing minus and
    accounting-style parentheses. Raises ValueError when nothing usable is left.
    """
    if isinstance(raw, Decimal):
        return raw
    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty amount")

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    text = _CURRENCY_RE.sub("", text)
    text = text.replace("\u00a0", "").replace(" ", "").replace("'", "")
    if text.endswith("-"):
        negative = not negative
        text = text[:-1]
    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if _THOUSANDS_COMMA_RE.match(text):
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
    elif _THOUSANDS_DOT_RE.match(text):
        text = text.replace(".", "")

    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount {raw!r}")
    return -value if negative else value


def parse_date(raw, formats=DATE_FORMATS) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty date")
    # ISO timestamps: keep the calendar date only
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in ("T", " "):
        text = text[:10]
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognised date {raw!r}")


def first_non_empty(*values) -> Optional[str]:
    for value in values:
        if value and str(value).strip():
            return str(value).strip()
    return None
