from decimal import Decimal
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction

from core.exceptions import AlreadyPostedError
from core.invoice_checks import require_invoice_fields, validate_invoice_amounts
from core.ledger_services import PostingLine, post_balanced_entry
from core.models import Account, BankTransaction, Invoice, JournalEntry, SystemAccountRole
from core.system_accounts import resolve
from core.utils import quantize_money
from .accounting_posting_expenses import (
    PaymentDisposition,
    book_purchase_from_extraction,
    book_purchase_invoice,
)
from .accounting_posting_assets import book_mileage, run_depreciation

__all__ = [
    "PaymentDisposition",
    "book_mileage",
    "book_purchase_from_extraction",
    "book_purchase_invoice",
    "finalize_sales_invoice",
    "post_bank_contact_match",
    "post_bank_rule_match",
    "post_bank_transaction",
    "run_depreciation",
    "settle_invoice_payment",
]

OPEN_INVOICE_STATUSES = (Invoice.Status.SENT, Invoice.Status.PENDING)


@transaction.atomic
def finalize_sales_invoice(invoice: Invoice, *, entry_date=None) -> JournalEntry:
    """
    Post a sales invoice: Dr receivables (total), Cr revenue per line (net),
    Cr VAT payable (VAT, when there is any). The invoice moves to Sent.
    """
    invoice = (
        Invoice.objects.select_for_update()
        .select_related("company", "contact")
        .get(pk=invoice.pk)
    )
    if invoice.direction != Invoice.Direction.SALES:
        raise ValidationError("Only sales invoices can be finalized.")
    if invoice.journal_entry_id or invoice.status != Invoice.Status.DRAFT:
        raise AlreadyPostedError(f"Invoice {invoice.invoice_number} has already been finalized.")

    lines = list(invoice.lines.select_related("account"))
    require_invoice_fields(invoice, lines)
    for line in lines:
        if line.account is None:
            raise ValidationError(f"Invoice line '{line.description}' has no revenue account.")
        if line.account.type != Account.AccountType.REVENUE:
            raise ValidationError(f"Account {line.account} is not a revenue account.")
    validate_invoice_amounts(invoice, lines)

    company = invoice.company
    receivable = resolve(company, SystemAccountRole.ACCOUNTS_RECEIVABLE)

    posting_lines: List[PostingLine] = [
        PostingLine.debit(receivable, invoice.total_amount, f"Debtor {invoice.contact}"),
    ]
    for line in lines:
        if line.amount > 0:
            posting_lines.append(PostingLine.credit(line.account, line.amount, line.description))
        elif line.amount < 0:
            posting_lines.append(PostingLine.debit(line.account, -line.amount, line.description))
    if invoice.vat_amount > 0:
        vat_payable = resolve(company, SystemAccountRole.VAT_PAYABLE)
        posting_lines.append(PostingLine.credit(vat_payable, invoice.vat_amount, "VAT payable"))

    entry = post_balanced_entry(
        company=company,
        entry_date=entry_date or invoice.invoice_date,
        description=f"Sales invoice {invoice.invoice_number} – {invoice.contact}",
        entry_type=JournalEntry.EntryType.SALES,
        lines=posting_lines,
        status=JournalEntry.Status.FINAL,
        reference=invoice.invoice_number,
        contact=invoice.contact,
        posting_key=f"sales-invoice:{invoice.pk}",
    )

    invoice.journal_entry = entry
    invoice.status = Invoice.Status.SENT
    invoice.save(update_fields=["journal_entry", "status"])
    return entry


@transaction.atomic
def post_bank_transaction(
    bank_transaction: BankTransaction,
    target_account: Account,
    *,
    description: Optional[str] = None,
    contact=None,
    status: str = JournalEntry.Status.FINAL,
    matched_rule=None,
) -> JournalEntry:
    """
    Book a bank transaction against ``target_account``.

    Money in: Dr bank ledger, Cr target. Money out: Dr target, Cr bank ledger.
    """
    tx = (
        BankTransaction.objects.select_for_update()
        .select_related("bank_account__ledger_account", "bank_account__company")
        .get(pk=bank_transaction.pk)
    )
    if tx.journal_entry_id is not None or tx.status == BankTransaction.TransactionStatus.MATCHED:
        raise AlreadyPostedError(f"Bank transaction {tx.pk} has already been booked.")

    bank_ledger = tx.bank_account.ledger_account
    if bank_ledger is None:
        raise ValidationError(f"Bank account {tx.bank_account} has no ledger account.")

    amount = abs(quantize_money(tx.amount))
    if amount == Decimal("0.00"):
        raise ValidationError("Zero-amount bank transactions cannot be booked.")
    if tx.amount > 0:
        lines = [
            PostingLine.debit(bank_ledger, amount, "Bank receipt"),
            PostingLine.credit(target_account, amount, tx.contra_name or tx.description),
        ]
    else:
        lines = [
            PostingLine.debit(target_account, amount, tx.contra_name or tx.description),
            PostingLine.credit(bank_ledger, amount, "Bank payment"),
        ]

    entry = post_balanced_entry(
        company=tx.bank_account.company,
        entry_date=tx.transaction_date,
        description=description or tx.description,
        entry_type=JournalEntry.EntryType.BANK_MATCH,
        lines=lines,
        status=status,
        reference=tx.reference,
        contact=contact,
        posting_key=f"bank-transaction:{tx.pk}",
    )

    tx.journal_entry = entry
    tx.matched_rule = matched_rule
    tx.status = BankTransaction.TransactionStatus.MATCHED
    tx.save(update_fields=["journal_entry", "matched_rule", "status"])
    bank_transaction.journal_entry = entry
    bank_transaction.matched_rule = matched_rule
    bank_transaction.status = tx.status
    return entry


def post_bank_rule_match(bank_transaction: BankTransaction, rule) -> JournalEntry:
    """Draft entry for a rule hit, tagged with the rule keyword for audit."""
    base = rule.description_template or bank_transaction.description
    return post_bank_transaction(
        bank_transaction,
        rule.target_ledger_account,
        description=f"{base} (Auto-matched: {rule.keyword})",
        contact=rule.contact,
        status=JournalEntry.Status.DRAFT,
        matched_rule=rule,
    )


def post_bank_contact_match(bank_transaction: BankTransaction, contact) -> JournalEntry:
    """Draft entry on the default account of a recognised counterparty."""
    return post_bank_transaction(
        bank_transaction,
        contact.default_ledger_account,
        description=f"{bank_transaction.description} (Auto-matched: contact {contact.name})",
        contact=contact,
        status=JournalEntry.Status.DRAFT,
    )


@transaction.atomic
def settle_invoice_payment(invoice: Invoice, bank_transaction: BankTransaction) -> JournalEntry:
    """
    Book the bank payment of an open invoice in full.

    Sales: Dr bank ledger, Cr receivables. Purchase: Dr payables, Cr bank
    ledger. The bank transaction becomes Matched and the invoice Paid.
    """
    invoice = (
        Invoice.objects.select_for_update()
        .select_related("company", "contact")
        .get(pk=invoice.pk)
    )
    if invoice.payment_entry_id is not None or invoice.status == Invoice.Status.PAID:
        raise AlreadyPostedError(f"Invoice {invoice.invoice_number} has already been paid.")
    if invoice.journal_entry_id is None or invoice.status not in OPEN_INVOICE_STATUSES:
        raise ValidationError(f"Invoice {invoice.invoice_number} has not been posted yet.")
    if bank_transaction.bank_account.company_id != invoice.company_id:
        raise ValidationError("Bank transaction belongs to a different company.")

    is_sales = invoice.direction == Invoice.Direction.SALES
    amount = quantize_money(bank_transaction.amount)
    if (amount > 0) != is_sales:
        expected = "incoming" if is_sales else "outgoing"
        raise ValidationError(
            f"Invoice {invoice.invoice_number} can only be settled by an {expected} payment."
        )
    if abs(amount) != quantize_money(invoice.total_amount):
        raise ValidationError(
            f"Payment of {abs(amount)} does not settle invoice {invoice.invoice_number} "
            f"({invoice.total_amount}); partial payments are booked manually."
        )

    role = SystemAccountRole.ACCOUNTS_RECEIVABLE if is_sales else SystemAccountRole.ACCOUNTS_PAYABLE
    counter_account = resolve(invoice.company, role)
    entry = post_bank_transaction(
        bank_transaction,
        counter_account,
        description=f"Payment {invoice.get_direction_display().lower()} invoice {invoice.invoice_number}",
        contact=invoice.contact,
        status=JournalEntry.Status.FINAL,
    )

    invoice.payment_entry = entry
    invoice.status = Invoice.Status.PAID
    invoice.save(update_fields=["payment_entry", "status"])
    return entry
