"""
Invoice payment matching

Finds the bank transaction that most likely paid an open invoice:
- Candidates are unmatched transactions of the invoice's company, paid in
  the invoice's direction, dated from 30 days before to 90 days after the
  invoice date, within two cents of the invoice total
- The invoice number in the description or reference is decisive
- Otherwise the amount scores 70, a payment on or after the invoice date
  15 more, and the share of the contact's name words found in the
  counterparty name adds up to 15 when more than half of them match

Matching never books anything; ``settle_invoice_payment`` does.
"""

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from core.accounting_posting import OPEN_INVOICE_STATUSES
from core.models import BankTransaction, Invoice
from core.utils import quantize_money

logger = logging.getLogger(__name__)

WINDOW_BEFORE = timedelta(days=30)
WINDOW_AFTER = timedelta(days=90)
AMOUNT_TOLERANCE = Decimal("0.02")

AMOUNT_CONFIDENCE = 70
DATE_CONFIDENCE = 15
NAME_CONFIDENCE = 15
REFERENCE_CONFIDENCE = 100


@dataclass
class PaymentMatch:
    bank_transaction: BankTransaction
    confidence: int
    reason: str
    by_reference: bool = False

    def rank(self):
        return (self.by_reference, self.confidence)


def _name_words(name: str) -> List[str]:
    return [word for word in re.split(r"\W+", (name or "").lower()) if len(word) > 2]


def _name_ratio(contact_name: str, bank_transaction: BankTransaction) -> float:
    words = _name_words(contact_name)
    if not words:
        return 0.0
    haystack = f"{bank_transaction.contra_name} {bank_transaction.description}".lower()
    found = sum(1 for word in words if word in haystack)
    return found / len(words)


def _mentions_invoice(invoice: Invoice, bank_transaction: BankTransaction) -> bool:
    number = (invoice.invoice_number or "").strip().lower()
    if not number:
        return False
    return (
        number in (bank_transaction.description or "").lower()
        or number in (bank_transaction.reference or "").lower()
    )


def score_payment(invoice: Invoice, bank_transaction: BankTransaction) -> PaymentMatch:
    if _mentions_invoice(invoice, bank_transaction):
        return PaymentMatch(
            bank_transaction,
            REFERENCE_CONFIDENCE,
            f"Invoice {invoice.invoice_number} referenced in description",
            by_reference=True,
        )

    confidence = AMOUNT_CONFIDENCE
    reasons = ["amount"]
    if bank_transaction.transaction_date >= invoice.invoice_date:
        confidence += DATE_CONFIDENCE
        reasons.append("date")
    ratio = _name_ratio(invoice.contact.name if invoice.contact else "", bank_transaction)
    if ratio > 0.5:
        confidence += int(round(NAME_CONFIDENCE * ratio))
        reasons.append("name")
    return PaymentMatch(bank_transaction, confidence, f"Matched on {', '.join(reasons)}")


def payment_candidates(invoice: Invoice):
    total = quantize_money(invoice.total_amount)
    qs = BankTransaction.objects.filter(
        bank_account__company_id=invoice.company_id,
        status=BankTransaction.TransactionStatus.UNMATCHED,
        journal_entry__isnull=True,
        transaction_date__gte=invoice.invoice_date - WINDOW_BEFORE,
        transaction_date__lte=invoice.invoice_date + WINDOW_AFTER,
    )
    if invoice.direction == Invoice.Direction.SALES:
        qs = qs.filter(amount__gt=total - AMOUNT_TOLERANCE, amount__lt=total + AMOUNT_TOLERANCE)
    else:
        qs = qs.filter(amount__gt=-total - AMOUNT_TOLERANCE, amount__lt=-total + AMOUNT_TOLERANCE)
    return qs.select_related("bank_account").order_by("transaction_date", "id")


def find_payment_match(invoice: Invoice) -> Optional[PaymentMatch]:
    """
    Best candidate payment for an open invoice. A transaction quoting the
    invoice number beats any score; ties go to the earliest.
    """
    if invoice.status not in OPEN_INVOICE_STATUSES or invoice.payment_entry_id is not None:
        return None

    best = None
    for bank_transaction in payment_candidates(invoice):
        match = score_payment(invoice, bank_transaction)
        if best is None or match.rank() > best.rank():
            best = match
    if best is not None:
        logger.info(
            "Invoice %s matches bank transaction %s (%s%%)",
            invoice.invoice_number,
            best.bank_transaction.pk,
            best.confidence,
        )
    return best
