"""
Best-effort reader for PDF bank statements.

The text layer is extracted with PyPDF2 and each line that starts with a
date and ends with an amount is treated as a transaction; a dated line
without a readable amount counts as skipped. Scanned PDFs without a text
layer produce no transactions.
"""

import io
import logging
import re

import PyPDF2
from PyPDF2.errors import PdfReadError

from core.exceptions import ParseError

from .base import ParseResult, RawTransaction, parse_amount, parse_date

logger = logging.getLogger(__name__)

FORMAT = "PDF"

_DATE_PATTERN = r"\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}|\d{4}-\d{2}-\d{2}"

_LINE_RE = re.compile(
    rf"^(?P<date>{_DATE_PATTERN})\s+"
    r"(?P<description>.+?)\s+"
    r"(?P<amount>[-+]?\(?(?:€\s?)?(?:\d{1,3}(?:[.,\s]\d{3})+|\d+)[.,]\d{2}\)?-?)"
    r"(?:\s+(?P<mark>Af|Bij|D|C|Cr|Dr|-|\+))?$",
    re.IGNORECASE,
)
_DATED_RE = re.compile(rf"^(?:{_DATE_PATTERN})\s")

_BALANCE_RE = re.compile(r"(saldo|balance)\b", re.IGNORECASE)

DEBIT_MARKS = {"af", "d", "dr", "-"}


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PyPDF2.PdfReader(io.BytesIO(data))
        pages = [(page.extract_text() or "") for page in reader.pages]
    except (PdfReadError, ValueError) as exc:
        raise ParseError(f"Could not read PDF statement: {exc}") from exc
    text = "\n".join(pages)
    if not text.strip():
        logger.warning("PDF statement has no text layer (%d bytes)", len(data))
    return text


def parse_pdf_text(text: str) -> ParseResult:
    result = ParseResult(format=FORMAT)
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        match = _LINE_RE.match(line)
        if not match:
            if _DATED_RE.match(line):
                result.skip(f"Line {line_no}: no amount")
            continue
        description = match.group("description")
        if _BALANCE_RE.search(description):
            result.skip(f"Line {line_no}: balance line")
            continue
        try:
            txn_date = parse_date(match.group("date"))
            amount = parse_amount(match.group("amount").replace(" ", ""))
        except ValueError as exc:
            result.skip(f"Line {line_no}: {exc}")
            continue
        mark = (match.group("mark") or "").lower()
        if mark:
            amount = -abs(amount) if mark in DEBIT_MARKS else abs(amount)
        if amount == 0:
            result.skip(f"Line {line_no}: zero amount")
            continue
        result.add(RawTransaction(transaction_date=txn_date, amount=amount, description=description))
    return result


def parse_pdf(data: bytes) -> ParseResult:
    return parse_pdf_text(extract_pdf_text(data))
