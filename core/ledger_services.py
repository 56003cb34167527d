import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum

from .exceptions import AlreadyPostedError, ImmutableEntryError, UnbalancedEntryError
from .models import (
    Account,
    BankTransaction,
    FixedAsset,
    Invoice,
    JournalEntry,
    JournalLine,
    MileageLog,
)
from .utils import quantize_money

logger = logging.getLogger(__name__)

DEBIT = "debit"
CREDIT = "credit"


@dataclass(frozen=True)
class PostingLine:
    """One leg of a journal entry before it is written."""

    account: Account
    side: str
    amount: Decimal
    description: str = ""

    @classmethod
    def debit(cls, account, amount, description=""):
        return cls(account=account, side=DEBIT, amount=amount, description=description)

    @classmethod
    def credit(cls, account, amount, description=""):
        return cls(account=account, side=CREDIT, amount=amount, description=description)


def _prepare_lines(company, lines: Iterable[PostingLine], require_active_accounts: bool):
    prepared = []
    for line in lines:
        if line.side not in (DEBIT, CREDIT):
            raise ValueError(f"Unknown posting side {line.side!r}")
        amount = quantize_money(line.amount)
        if amount <= Decimal("0.00"):
            raise ValidationError(
                f"Posting amounts must be positive (got {amount} on account {line.account})."
            )
        if line.account.company_id != company.pk:
            raise ValidationError(f"Account {line.account} belongs to a different company.")
        if require_active_accounts and not line.account.is_active:
            raise ValidationError(f"Account {line.account} is inactive.")
        prepared.append((line, amount))
    if len(prepared) < 2:
        raise ValidationError("A journal entry needs at least two lines.")
    return prepared


def _available_posting_key(company, posting_key: str) -> str:
    """
    A key is taken while any entry booked under it still stands. Once every
    such entry has been reversed the event may be booked again; the new entry
    gets a numbered key (``<key>#2``, ``<key>#3``) so the unique constraint
    keeps guarding concurrent rebookings.
    """
    used = JournalEntry.objects.filter(company=company).filter(
        Q(posting_key=posting_key) | Q(posting_key__startswith=f"{posting_key}#")
    )
    if used.filter(reversed_by__isnull=True).exists():
        raise AlreadyPostedError(f"'{posting_key}' has already been posted.")
    booked = used.count()
    return posting_key if not booked else f"{posting_key}#{booked + 1}"


def post_balanced_entry(
    *,
    company,
    entry_date: date,
    description: str,
    entry_type: str,
    lines: Iterable[PostingLine],
    status: str = JournalEntry.Status.FINAL,
    reference: str = "",
    contact=None,
    posting_key: Optional[str] = None,
    reversal_of: Optional[JournalEntry] = None,
    require_active_accounts: bool = True,
) -> JournalEntry:
    """
    Write one balanced journal entry, header and lines, all or nothing.

    Totals are compared before anything touches the database and the stored
    lines are re-checked afterwards. A ``posting_key`` that is still in use
    for this company raises AlreadyPostedError; the unique constraint is what
    enforces it, so two concurrent callers cannot both succeed.
    """
    prepared = _prepare_lines(company, lines, require_active_accounts)

    total_debit = sum((amount for line, amount in prepared if line.side == DEBIT), Decimal("0.00"))
    total_credit = sum((amount for line, amount in prepared if line.side == CREDIT), Decimal("0.00"))
    if total_debit != total_credit:
        raise UnbalancedEntryError(total_debit, total_credit)

    if posting_key:
        posting_key = _available_posting_key(company, posting_key)

    try:
        with transaction.atomic():
            entry = JournalEntry.objects.create(
                company=company,
                entry_date=entry_date,
                description=description[:255],
                reference=(reference or "")[:100],
                type=entry_type,
                status=status,
                contact=contact,
                posting_key=posting_key,
                reversal_of=reversal_of,
            )
            for line, amount in prepared:
                JournalLine.objects.create(
                    journal_entry=entry,
                    account=line.account,
                    debit=amount if line.side == DEBIT else Decimal("0.00"),
                    credit=amount if line.side == CREDIT else Decimal("0.00"),
                    description=(line.description or "")[:255],
                )
            entry.check_balance()
    except IntegrityError as exc:
        if posting_key and JournalEntry.objects.filter(company=company, posting_key=posting_key).exists():
            raise AlreadyPostedError(f"'{posting_key}' has already been posted.") from exc
        if reversal_of is not None and JournalEntry.objects.filter(reversal_of=reversal_of).exists():
            raise AlreadyPostedError(f"Journal entry {reversal_of.pk} has already been reversed.") from exc
        raise

    logger.info(
        "Posted journal entry %s (%s, %s) for company %s: %s",
        entry.pk,
        entry_type,
        status,
        company.pk,
        total_debit,
    )
    return entry


@transaction.atomic
def finalize_entry(entry: JournalEntry) -> JournalEntry:
    """Promote a draft entry (e.g. a bank auto-match) to final."""
    entry = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if entry.is_final:
        raise AlreadyPostedError(f"Journal entry {entry.pk} is already final.")
    entry.check_balance()
    entry.status = JournalEntry.Status.FINAL
    entry.save(update_fields=["status"])
    return entry


@transaction.atomic
def discard_draft_entry(entry: JournalEntry) -> None:
    """
    Delete a draft entry. Bank transactions it booked go back to Unmatched.
    """
    entry = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if entry.is_final:
        raise ImmutableEntryError(
            f"Journal entry {entry.pk} is final; post a reversal instead of deleting it."
        )
    BankTransaction.objects.filter(journal_entry=entry).update(
        journal_entry=None,
        matched_rule=None,
        status=BankTransaction.TransactionStatus.UNMATCHED,
    )
    entry.delete()


@transaction.atomic
def reverse_journal_entry(entry: JournalEntry, *, reversal_date: Optional[date] = None, reason: str = "") -> JournalEntry:
    """
    Correct a final entry by posting its mirror image.

    Final entries are never edited. The reversal swaps every debit and credit,
    is itself final, and points back at the original through ``reversal_of``.
    Whatever the original booked (bank transactions, invoices, mileage logs,
    a depreciation month) goes back to its unbooked state, so the same event
    can be booked again.
    """
    entry = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if not entry.is_final:
        raise ValidationError("Only final journal entries can be reversed; discard the draft instead.")
    if entry.type == JournalEntry.EntryType.REVERSAL:
        raise ValidationError("A reversal entry cannot itself be reversed.")
    if JournalEntry.objects.filter(reversal_of=entry).exists():
        raise AlreadyPostedError(f"Journal entry {entry.pk} has already been reversed.")
    settled = Invoice.objects.filter(journal_entry=entry, payment_entry__isnull=False).first()
    if settled is not None:
        raise ValidationError(
            f"Invoice {settled.invoice_number} has been paid; reverse the payment entry first."
        )

    lines: List[PostingLine] = []
    for line in entry.lines.select_related("account"):
        if line.debit > 0:
            lines.append(PostingLine.credit(line.account, line.debit, line.description))
        else:
            lines.append(PostingLine.debit(line.account, line.credit, line.description))

    description = f"Reversal of: {entry.description}"
    if reason:
        description = f"{description} ({reason.strip()})"

    reversal = post_balanced_entry(
        company=entry.company,
        entry_date=reversal_date or entry.entry_date,
        description=description,
        entry_type=JournalEntry.EntryType.REVERSAL,
        lines=lines,
        status=JournalEntry.Status.FINAL,
        reference=entry.reference,
        contact=entry.contact,
        reversal_of=entry,
        require_active_accounts=False,
    )
    _release_booked_records(entry)
    return reversal


def _release_booked_records(entry: JournalEntry) -> None:
    BankTransaction.objects.filter(journal_entry=entry).update(
        journal_entry=None,
        matched_rule=None,
        status=BankTransaction.TransactionStatus.UNMATCHED,
    )
    MileageLog.objects.filter(journal_entry=entry).update(is_booked=False, journal_entry=None)

    for invoice in Invoice.objects.select_for_update().filter(payment_entry=entry):
        invoice.payment_entry = None
        invoice.status = (
            Invoice.Status.SENT
            if invoice.direction == Invoice.Direction.SALES
            else Invoice.Status.PENDING
        )
        invoice.save(update_fields=["payment_entry", "status"])
    Invoice.objects.filter(journal_entry=entry).update(
        journal_entry=None,
        status=Invoice.Status.DRAFT,
    )

    if entry.type == JournalEntry.EntryType.DEPRECIATION:
        _roll_back_depreciation(entry)


def _roll_back_depreciation(entry: JournalEntry) -> None:
    # keys look like depreciation:<asset pk>:<YYYY-MM>[#n]
    parts = (entry.posting_key or "").split(":")
    if len(parts) != 3 or parts[0] != "depreciation" or not parts[1].isdigit():
        return
    asset = (
        FixedAsset.objects.select_for_update()
        .filter(pk=int(parts[1]), company_id=entry.company_id)
        .first()
    )
    if asset is None:
        return

    amount, _ = entry.totals()
    asset.accumulated_depreciation = quantize_money(asset.accumulated_depreciation - amount)
    asset.last_depreciation_date = (
        JournalEntry.objects.filter(
            company_id=asset.company_id,
            type=JournalEntry.EntryType.DEPRECIATION,
            posting_key__startswith=f"depreciation:{asset.pk}:",
            reversed_by__isnull=True,
        )
        .order_by("-entry_date")
        .values_list("entry_date", flat=True)
        .first()
    )
    asset.status = FixedAsset.Status.ACTIVE
    asset.save(update_fields=["last_depreciation_date", "accumulated_depreciation", "status"])
    logger.info("Rolled back depreciation entry %s of asset %s", entry.pk, asset.pk)


def get_account_balance(account: Account) -> Decimal:
    """
    Compute the live balance for an account using all journal lines.
    Assets/Expenses return debit - credit; everything else uses credit - debit.
    """
    agg = JournalLine.objects.filter(account=account).aggregate(
        debit_sum=Sum("debit"),
        credit_sum=Sum("credit"),
    )
    debit = agg["debit_sum"] or Decimal("0")
    credit = agg["credit_sum"] or Decimal("0")

    if account.is_debit_normal:
        return quantize_money(debit - credit)
    return quantize_money(credit - debit)


def trial_balance(company, as_of: Optional[date] = None, include_drafts: bool = False):
    """
    Per-account debit/credit totals. The grand totals are equal whenever
    every stored entry is balanced.
    """
    qs = JournalLine.objects.filter(journal_entry__company=company)
    if as_of is not None:
        qs = qs.filter(journal_entry__entry_date__lte=as_of)
    if not include_drafts:
        qs = qs.filter(journal_entry__status=JournalEntry.Status.FINAL)

    rows = (
        qs.values("account_id")
        .annotate(debit=Sum("debit"), credit=Sum("credit"))
        .order_by("account__code")
    )
    accounts = Account.objects.in_bulk([row["account_id"] for row in rows])

    result = []
    total_debit = Decimal("0.00")
    total_credit = Decimal("0.00")
    for row in rows:
        debit = quantize_money(row["debit"] or Decimal("0"))
        credit = quantize_money(row["credit"] or Decimal("0"))
        total_debit += debit
        total_credit += credit
        result.append(
            {
                "account": accounts[row["account_id"]],
                "debit": debit,
                "credit": credit,
            }
        )
    return {"rows": result, "total_debit": total_debit, "total_credit": total_credit}
