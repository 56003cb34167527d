"""
CAMT.053 (ISO 20022 bank-to-customer statement) reader.

The namespace differs per schema version (001.02 up to 001.08), so the
document namespace is taken from the root tag instead of being hard-coded.
"""

from decimal import Decimal, InvalidOperation
from xml.etree import ElementTree as ET

from core.exceptions import ParseError

from .base import DEFAULT_DESCRIPTION, ParseResult, RawTransaction, first_non_empty, parse_date

FORMAT = "CAMT053"

REFERENCE_PATHS = (".//Refs/EndToEndId", "AcctSvcrRef", "NtryRef")


class _Finder:
    def __init__(self, root):
        if root.tag.startswith("{"):
            self.ns = {"camt": root.tag.split("}")[0][1:]}
            self.prefix = "camt:"
        else:
            self.ns = {}
            self.prefix = ""

    def _path(self, path: str) -> str:
        return "/".join(
            part if part in (".", "") or part.startswith(".") else f"{self.prefix}{part}"
            for part in path.split("/")
        )

    def find(self, elem, path):
        return elem.find(self._path(path), self.ns)

    def findall(self, elem, path):
        return elem.findall(self._path(path), self.ns)

    def text(self, elem, path) -> str:
        if elem is None:
            return ""
        return (elem.findtext(self._path(path), "", self.ns) or "").strip()


def _entry_date(finder: _Finder, entry):
    for path in ("BookgDt/Dt", "BookgDt/DtTm", "ValDt/Dt", "ValDt/DtTm"):
        raw = finder.text(entry, path)
        if raw:
            return parse_date(raw)
    return None


def _remittance(finder: _Finder, entry) -> str:
    lines = [
        (elem.text or "").strip()
        for elem in finder.findall(entry, ".//RmtInf/Ustrd")
        if (elem.text or "").strip()
    ]
    if lines:
        return " ".join(lines)
    structured = finder.text(entry, ".//RmtInf/Strd/CdtrRefInf/Ref")
    if structured:
        return structured
    return finder.text(entry, "AddtlNtryInf") or finder.text(entry, ".//AddtlTxInf")


def _counterparty(finder: _Finder, entry, incoming: bool):
    # Money in comes from the debtor; money out goes to the creditor.
    order = ("Dbtr", "Cdtr") if incoming else ("Cdtr", "Dbtr")
    name = ""
    iban = ""
    for party in order:
        name = name or finder.text(entry, f".//RltdPties/{party}/Nm") or finder.text(
            entry, f".//RltdPties/{party}/Pty/Nm"
        )
        iban = iban or finder.text(entry, f".//RltdPties/{party}Acct/Id/IBAN")
    return name, iban


def parse_camt053(text: str) -> ParseResult:
    try:
        root = ET.fromstring(text.encode("utf-8") if isinstance(text, str) else text)
    except ET.ParseError as exc:
        raise ParseError(f"Malformed CAMT.053 XML: {exc}") from exc

    finder = _Finder(root)
    result = ParseResult(format=FORMAT)

    for position, _ in enumerate(finder.findall(root, ".//Stmt/Bal"), start=1):
        result.skip(f"Balance {position}")

    for position, entry in enumerate(finder.findall(root, ".//Stmt/Ntry"), start=1):
        try:
            txn_date = _entry_date(finder, entry)
        except ValueError as exc:
            result.skip(f"Entry {position}: {exc}")
            continue
        if txn_date is None:
            result.skip(f"Entry {position}: missing booking date")
            continue

        amount_raw = finder.text(entry, "Amt")
        if not amount_raw:
            result.skip(f"Entry {position}: missing amount")
            continue
        try:
            amount = Decimal(amount_raw)
        except InvalidOperation:
            result.skip(f"Entry {position}: invalid amount {amount_raw!r}")
            continue
        if amount == 0:
            result.skip(f"Entry {position}: zero amount")
            continue

        amount = abs(amount)
        if finder.text(entry, "CdtDbtInd").upper() == "DBIT":
            amount = -amount
        if finder.text(entry, "RvslInd").lower() == "true":
            amount = -amount

        name, iban = _counterparty(finder, entry, incoming=amount > 0)
        references = (finder.text(entry, path) for path in REFERENCE_PATHS)
        reference = first_non_empty(*(ref for ref in references if ref.upper() != "NOTPROVIDED")) or ""

        result.add(
            RawTransaction(
                transaction_date=txn_date,
                amount=amount,
                description=_remittance(finder, entry) or DEFAULT_DESCRIPTION,
                contra_account=iban,
                contra_name=name,
                reference=reference,
            )
        )
    return result
