"""
MT940 (SWIFT customer statement) reader.

Only the statement-line tag (:61:) and the information tag that follows it
(:86:) carry transactions. Opening and closing balance tags are counted as
skipped rows.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .base import DEFAULT_DESCRIPTION, ParseResult, RawTransaction

FORMAT = "MT940"

_TAG_RE = re.compile(r"^:(\d{2}[A-Z]?):(.*)$")
_ENVELOPE_RE = re.compile(r"^(-\}?|\{\d:.*|\}.*)$")
_STATEMENT_LINE_RE = re.compile(
    r"^(?P<value_date>\d{6})"
    r"(?P<entry_date>\d{4})?"
    r"(?P<mark>RC|RD|C|D)"
    r"(?P<funds>[A-Z](?=\d))?"
    r"(?P<amount>\d+(?:,\d{0,2})?)"
    r"(?P<rest>.*)$",
    re.DOTALL,
)

# Structured :86: used by most Dutch banks: /TRTP/SEPA OVERBOEKING/IBAN/NL.../NAME/.../REMI/...
_STRUCTURED_KEYS = ("TRTP", "IBAN", "BIC", "NAME", "REMI", "EREF", "CSID", "MARF", "ORDP", "BENM", "ID", "ADDR")
_STRUCTURED_RE = re.compile(r"/(%s)/" % "|".join(_STRUCTURED_KEYS))
_NAME_RE = re.compile(r"NAME:\s*(.+?)(?=\s+[A-Z]{3,}:|$)")
_IBAN_RE = re.compile(r"IBAN:\s*([A-Z]{2}\d{2}[A-Z0-9]{4,30})")


BALANCE_TAGS = ("60F", "60M", "62F", "62M")


def _tagged_fields(text: str) -> List[Tuple[str, str]]:
    fields: List[Tuple[str, str]] = []
    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line or _ENVELOPE_RE.match(line.strip()):
            continue
        match = _TAG_RE.match(line)
        if match:
            fields.append((match.group(1), match.group(2)))
        elif fields:
            tag, value = fields[-1]
            fields[-1] = (tag, f"{value}\n{line}")
    return fields


def _parse_value_date(raw: str) -> date:
    year, month, day = int(raw[0:2]), int(raw[2:4]), int(raw[4:6])
    return date(2000 + year, month, day)


def _parse_statement_line(value: str):
    match = _STATEMENT_LINE_RE.match(value.strip())
    if not match:
        raise ValueError("unrecognised :61: layout")
    txn_date = _parse_value_date(match.group("value_date"))
    # SWIFT amounts always use a decimal comma and no thousands separator
    amount = Decimal(match.group("amount").replace(",", "."))
    if match.group("mark") in ("D", "RC"):
        amount = -amount

    reference = ""
    rest = match.group("rest").split("\n")[0]
    if len(rest) >= 4 and rest[0] in "NFS":
        reference = rest[4:].split("//")[0].strip()
        if reference.upper() == "NONREF":
            reference = ""
    return txn_date, amount, reference


def _structured_fields(text: str) -> Dict[str, str]:
    parts = _STRUCTURED_RE.split(text)
    values: Dict[str, str] = {}
    # split() yields [prefix, key, value, key, value, ...]
    for index in range(1, len(parts) - 1, 2):
        values.setdefault(parts[index], parts[index + 1].strip().strip("/"))
    return values


def parse_information(text: str) -> Dict[str, str]:
    """Split a :86: block into description, contra name, IBAN and reference."""
    flat = " ".join(part.strip() for part in text.splitlines())
    result = {"description": flat, "contra_name": "", "contra_account": "", "reference": ""}

    if _STRUCTURED_RE.search(flat):
        values = _structured_fields(flat)
        remittance = values.get("REMI", "")
        for prefix in ("USTD//", "USTD/", "STRD/CUR/"):
            if remittance.startswith(prefix):
                remittance = remittance[len(prefix):]
        result["contra_name"] = values.get("NAME", "")
        result["contra_account"] = values.get("IBAN", "")
        eref = values.get("EREF", "")
        if eref and eref.upper() != "NOTPROVIDED":
            result["reference"] = eref
        result["description"] = remittance.strip("/ ") or values.get("NAME", "") or flat
        return result

    name_match = _NAME_RE.search(flat)
    if name_match:
        result["contra_name"] = name_match.group(1).strip()
    iban_match = _IBAN_RE.search(flat)
    if iban_match:
        result["contra_account"] = iban_match.group(1)
    return result


def parse_mt940(text: str) -> ParseResult:
    result = ParseResult(format=FORMAT)
    pending: Optional[dict] = None

    def flush():
        if pending is None:
            return
        info = parse_information(pending["info"]) if pending["info"] else {}
        result.add(
            RawTransaction(
                transaction_date=pending["date"],
                amount=pending["amount"],
                description=info.get("description") or DEFAULT_DESCRIPTION,
                contra_account=info.get("contra_account", ""),
                contra_name=info.get("contra_name", ""),
                reference=info.get("reference") or pending["reference"],
            )
        )

    line_no = 0
    for tag, value in _tagged_fields(text):
        if tag == "61":
            flush()
            pending = None
            line_no += 1
            try:
                txn_date, amount, reference = _parse_statement_line(value)
            except ValueError as exc:
                result.skip(f"Statement line {line_no}: {exc}")
                continue
            if amount == 0:
                result.skip(f"Statement line {line_no}: zero amount")
                continue
            pending = {"date": txn_date, "amount": amount, "reference": reference, "info": ""}
        elif tag == "86" and pending is not None:
            pending["info"] = value if not pending["info"] else f"{pending['info']}\n{value}"
        elif tag in BALANCE_TAGS:
            flush()
            pending = None
            result.skip(f"Balance line :{tag}:")
        elif tag == "20":
            flush()
            pending = None
    flush()
    return result
