"""
Bank statement parsing: raw file bytes in, canonical transactions out.

    result = parse_statement(data, filename="export.sta")
    result.transactions  # list[RawTransaction]
    result.skipped       # rows present in the file that were not transactions
"""

import logging
import os
from typing import Optional

from django.conf import settings

from core.exceptions import EmptyResultError, ParseError, UnsupportedFormatError

from .base import ParseResult, RawTransaction, decode_text, parse_amount, parse_date
from .camt053 import parse_camt053
from .csv_statement import parse_csv
from .mt940 import parse_mt940
from .pdf_text import parse_pdf, parse_pdf_text

logger = logging.getLogger(__name__)

MT940 = "MT940"
CAMT053 = "CAMT053"
CSV = "CSV"
PDF = "PDF"

SUPPORTED_FORMATS = (MT940, CAMT053, CSV, PDF)

MT940_EXTENSIONS = {".sta", ".940", ".swi", ".mt940"}
CSV_EXTENSIONS = {".csv", ".txt"}
MT940_TAGS = (":20:", ":25:", ":28C:", ":60F:", ":61:", ":62F:")

__all__ = [
    "ParseResult",
    "RawTransaction",
    "SUPPORTED_FORMATS",
    "decode_text",
    "detect_format",
    "parse_statement",
    "parse_amount",
    "parse_date",
    "parse_pdf_text",
]


def _extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lower()


def detect_format(data: bytes, filename: Optional[str] = None) -> str:
    """Pick a reader from content markers first, then the file extension."""
    head = data[:2048].lstrip()
    if head.startswith(b"%PDF"):
        return PDF

    head_text = decode_text(head)
    if head_text.startswith("<?xml") or head_text.startswith("<Document"):
        return CAMT053

    tag_hits = sum(1 for tag in MT940_TAGS if tag in head_text)
    if (":61:" in head_text and ":86:" in head_text) or tag_hits >= 2:
        return MT940

    ext = _extension(filename)
    if ext in MT940_EXTENSIONS:
        return MT940
    if ext == ".xml":
        return CAMT053
    if ext in CSV_EXTENSIONS:
        return CSV
    if ext == ".pdf":
        return PDF
    raise UnsupportedFormatError(
        f"Unsupported statement format for '{filename or 'upload'}'. "
        "Expected MT940, CAMT.053, CSV or PDF."
    )


def parse_statement(
    data: bytes,
    filename: Optional[str] = None,
    declared_format: Optional[str] = None,
) -> ParseResult:
    """
    Parse a bank statement file.

    Raises UnsupportedFormatError for unknown formats, ParseError for files
    that cannot be read at all, and EmptyResultError when the file was read
    but held no valid transaction.
    """
    max_bytes = getattr(settings, "BANK_IMPORT_MAX_FILE_BYTES", None)
    if max_bytes and len(data) > max_bytes:
        raise ParseError(f"Statement file is larger than {max_bytes} bytes.")
    if not data or not data.strip():
        raise EmptyResultError("Statement file is empty.")

    fmt = (declared_format or "").upper() or detect_format(data, filename)
    if fmt not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"Unsupported statement format '{declared_format}'.")

    if fmt == PDF:
        result = parse_pdf(data)
    elif fmt == CAMT053:
        result = parse_camt053(data)
    elif fmt == MT940:
        result = parse_mt940(decode_text(data))
    else:
        result = parse_csv(decode_text(data))

    logger.info(
        "Parsed %s statement %s: %d transactions, %d skipped",
        fmt,
        filename or "",
        len(result.transactions),
        result.skipped,
    )
    if not result.transactions:
        raise EmptyResultError(
            f"No valid transactions found in {fmt} statement ({result.skipped} rows skipped).",
            skipped=result.skipped,
        )
    return result
