import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from .exceptions import AlreadyPostedError
from .extraction import EnhancedInvoiceData
from .invoice_checks import require_invoice_fields, validate_invoice_amounts
from .ledger_services import PostingLine, post_balanced_entry
from .models import Account, Contact, Invoice, InvoiceLine, JournalEntry, SystemAccountRole
from .system_accounts import resolve
from .utils import quantize_money

logger = logging.getLogger(__name__)

EXPENSE_ACCOUNT_TYPES = (Account.AccountType.EXPENSE, Account.AccountType.ASSET)
PAYMENT_ROLES = (SystemAccountRole.CASH, SystemAccountRole.PRIVATE)


@dataclass(frozen=True)
class PaymentDisposition:
    """
    How a purchase invoice was settled at booking time.

    Unpaid invoices are credited to Accounts Payable. Invoices already paid
    from the cash box or privately are credited to that account instead; the
    total is the same either way.
    """

    role: Optional[str] = None

    def __post_init__(self):
        if self.role is None:
            return
        role = SystemAccountRole(self.role)
        if role not in PAYMENT_ROLES:
            raise ValueError(f"{role} is not a payment account role.")
        object.__setattr__(self, "role", role)

    @classmethod
    def unpaid(cls) -> "PaymentDisposition":
        return cls(role=None)

    @classmethod
    def paid_via(cls, role) -> "PaymentDisposition":
        return cls(role=SystemAccountRole(role))

    @classmethod
    def from_method(cls, method: Optional[str]) -> "PaymentDisposition":
        """Map form input ("none", "cash", "private") to a disposition."""
        key = (method or "none").strip().lower()
        if key == "none":
            return cls.unpaid()
        if key == "cash":
            return cls.paid_via(SystemAccountRole.CASH)
        if key == "private":
            return cls.paid_via(SystemAccountRole.PRIVATE)
        raise ValidationError(f"Unknown payment method '{method}'.")

    @property
    def is_paid(self) -> bool:
        return self.role is not None

    @property
    def counter_role(self) -> str:
        return self.role or SystemAccountRole.ACCOUNTS_PAYABLE


@transaction.atomic
def book_purchase_invoice(
    invoice: Invoice,
    *,
    payment: PaymentDisposition = PaymentDisposition(),
    entry_date=None,
) -> JournalEntry:
    """
    Dr expense/asset per line (net), Dr VAT receivable (VAT), Cr payables
    or the payment account (total).
    """
    invoice = (
        Invoice.objects.select_for_update()
        .select_related("company", "contact")
        .get(pk=invoice.pk)
    )
    if invoice.direction != Invoice.Direction.PURCHASE:
        raise ValidationError("Only purchase invoices can be booked as purchases.")
    if invoice.journal_entry_id:
        raise AlreadyPostedError(f"Purchase invoice {invoice.invoice_number} has already been booked.")

    lines = list(invoice.lines.select_related("account"))
    require_invoice_fields(invoice, lines)
    for line in lines:
        if line.account is None:
            raise ValidationError(f"Invoice line '{line.description}' has no expense account.")
        if line.account.type not in EXPENSE_ACCOUNT_TYPES:
            raise ValidationError(
                f"Account {line.account} must be an expense or asset account for purchases."
            )
    validate_invoice_amounts(invoice, lines)

    company = invoice.company
    counter_account = resolve(company, payment.counter_role)

    posting_lines: List[PostingLine] = []
    for line in lines:
        if line.amount > 0:
            posting_lines.append(PostingLine.debit(line.account, line.amount, line.description))
        elif line.amount < 0:
            posting_lines.append(PostingLine.credit(line.account, -line.amount, line.description))
    if invoice.vat_amount > 0:
        vat_receivable = resolve(company, SystemAccountRole.VAT_RECEIVABLE)
        posting_lines.append(PostingLine.debit(vat_receivable, invoice.vat_amount, "VAT receivable"))
    counter_label = "Creditor" if not payment.is_paid else f"Paid via {payment.role.label.lower()}"
    posting_lines.append(
        PostingLine.credit(counter_account, invoice.total_amount, f"{counter_label} {invoice.contact}")
    )

    entry = post_balanced_entry(
        company=company,
        entry_date=entry_date or invoice.invoice_date,
        description=f"Purchase invoice {invoice.invoice_number} – {invoice.contact}",
        entry_type=JournalEntry.EntryType.PURCHASE,
        lines=posting_lines,
        status=JournalEntry.Status.FINAL,
        reference=invoice.invoice_number,
        contact=invoice.contact,
        posting_key=f"purchase-invoice:{invoice.pk}",
    )

    invoice.journal_entry = entry
    invoice.status = Invoice.Status.PAID if payment.is_paid else Invoice.Status.PENDING
    invoice.save(update_fields=["journal_entry", "status"])
    return entry


def _supplier_for(company, name: str, expense_account: Account) -> Contact:
    contact = Contact.objects.filter(company=company, name__iexact=name).first()
    if contact is not None:
        return contact
    logger.info("Creating supplier '%s' from extracted invoice (company %s)", name, company.pk)
    return Contact.objects.create(
        company=company,
        name=name[:200],
        relation_type=Contact.RelationType.SUPPLIER,
        default_ledger_account=expense_account,
    )



def _purchase_invoice_exists(company, invoice_number: str) -> bool:
    return Invoice.objects.filter(
        company=company,
        direction=Invoice.Direction.PURCHASE,
        invoice_number=invoice_number,
    ).exists()


@transaction.atomic
def book_purchase_from_extraction(
    company,
    data: EnhancedInvoiceData,
    *,
    expense_account: Account,
    contact: Optional[Contact] = None,
    payment: PaymentDisposition = PaymentDisposition(),
) -> JournalEntry:
    """
    Create and book a purchase invoice from extracted document data.

    The suggested account is only a suggestion: the caller picks
    ``expense_account`` and every amount is validated again here.
    """
    if not data.is_consistent():
        raise ValidationError(
            f"Extracted amounts do not add up: net {data.net_amount} + VAT {data.vat_amount} "
            f"!= total {data.total_amount}."
        )
    if expense_account.company_id != company.pk:
        raise ValidationError("Expense account belongs to a different company.")
    if expense_account.type not in EXPENSE_ACCOUNT_TYPES:
        raise ValidationError(f"Account {expense_account} must be an expense or asset account.")
    if not data.invoice_number or not data.invoice_date:
        raise ValidationError("Extracted invoice is missing its number or date.")
    if contact is None:
        if not data.supplier_name:
            raise ValidationError("Extracted invoice has no supplier.")
        contact = _supplier_for(company, data.supplier_name, expense_account)
    if _purchase_invoice_exists(company, data.invoice_number):
        raise AlreadyPostedError(f"Purchase invoice {data.invoice_number} already exists.")

    net = quantize_money(data.net_amount)
    vat = quantize_money(data.vat_amount)
    try:
        with transaction.atomic():
            invoice = Invoice.objects.create(
                company=company,
                contact=contact,
                direction=Invoice.Direction.PURCHASE,
                invoice_number=data.invoice_number,
                invoice_date=data.invoice_date,
                due_date=data.due_date,
                description=(data.description or "")[:255],
                subtotal=net,
                vat_amount=vat,
                total_amount=net + vat,
                status=Invoice.Status.DRAFT,
            )
    except IntegrityError as exc:
        # booked concurrently between the check above and this insert
        raise AlreadyPostedError(f"Purchase invoice {data.invoice_number} already exists.") from exc

    line = InvoiceLine(
        invoice=invoice,
        description=(data.description or f"Invoice {data.invoice_number}")[:255],
        quantity=Decimal("1"),
        unit_price=net,
        vat_rate=data.effective_vat_rate(),
        account=expense_account,
        amount=net,
        vat_amount=vat,
    )
    line.save(recompute=False)
    return book_purchase_invoice(invoice, payment=payment)
