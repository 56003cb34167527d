from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from .exceptions import ImmutableEntryError, ProtectedRuleError, UnbalancedEntryError
from .utils import quantize_money

if TYPE_CHECKING:
    from django.db.models import Manager


def default_mileage_rate() -> Decimal:
    return Decimal(str(getattr(settings, "LEDGER_DEFAULT_MILEAGE_RATE", "0.23")))


class Company(models.Model):
    name = models.CharField(max_length=255)
    currency = models.CharField(max_length=3, default="EUR")
    owner_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="companies",
    )
    mileage_rate = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        default=default_mileage_rate,
        help_text="Reimbursement per kilometre for private-car business trips.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Companies"
        ordering = ["name"]

    def __str__(self):
        return self.name

    if TYPE_CHECKING:
        id: int
        accounts: Manager["Account"]


class Account(models.Model):
    class AccountType(models.TextChoices):
        ASSET = "ASSET", "Asset"
        LIABILITY = "LIABILITY", "Liability"
        EQUITY = "EQUITY", "Equity"
        REVENUE = "REVENUE", "Revenue"
        EXPENSE = "EXPENSE", "Expense"

    class VatCode(models.IntegerChoices):
        NONE = 0, "0%"
        LOW = 9, "9%"
        HIGH = 21, "21%"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="accounts",
    )
    code = models.CharField(
        max_length=20,
        help_text="Ledger code like 1000, 1300, 8000. Not necessarily numeric.",
    )
    name = models.CharField(max_length=255)
    type = models.CharField(
        max_length=10,
        choices=AccountType.choices,
    )
    vat_code = models.PositiveSmallIntegerField(
        choices=VatCode.choices,
        default=VatCode.NONE,
        help_text="Default VAT percentage for lines booked on this account.",
    )
    tax_category = models.CharField(
        max_length=50,
        blank=True,
        help_text="Optional classification for statutory reporting.",
    )
    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["code", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"],
                name="unique_account_code_per_company",
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    def delete(self, *args, **kwargs):
        raise ValidationError(
            f"Account {self.code} cannot be deleted; deactivate it instead."
        )

    @property
    def is_debit_normal(self) -> bool:
        return self.type in {self.AccountType.ASSET, self.AccountType.EXPENSE}


class SystemAccountRole(models.TextChoices):
    ACCOUNTS_RECEIVABLE = "ACCOUNTS_RECEIVABLE", "Accounts receivable"
    ACCOUNTS_PAYABLE = "ACCOUNTS_PAYABLE", "Accounts payable"
    VAT_PAYABLE = "VAT_PAYABLE", "VAT payable"
    VAT_RECEIVABLE = "VAT_RECEIVABLE", "VAT receivable"
    CASH = "CASH", "Cash"
    PRIVATE = "PRIVATE", "Private drawings"
    TRAVEL_COSTS = "TRAVEL_COSTS", "Travel costs"


class SystemAccountBinding(models.Model):
    """
    Explicit role -> account mapping administered per company.

    Takes precedence over the code/name conventions in core.system_accounts.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="system_account_bindings",
    )
    role = models.CharField(max_length=30, choices=SystemAccountRole.choices)
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="system_bindings",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["role"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "role"],
                name="unique_system_role_per_company",
            )
        ]

    def __str__(self):
        return f"{self.get_role_display()} → {self.account}"


class Contact(models.Model):
    class RelationType(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        SUPPLIER = "SUPPLIER", "Supplier"
        BOTH = "BOTH", "Customer and supplier"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="contacts",
    )
    name = models.CharField(max_length=200)
    iban = models.CharField(max_length=34, blank=True)
    relation_type = models.CharField(
        max_length=10,
        choices=RelationType.choices,
        default=RelationType.SUPPLIER,
    )
    default_ledger_account = models.ForeignKey(
        Account,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="default_for_contacts",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class JournalEntry(models.Model):
    class EntryType(models.TextChoices):
        SALES = "SALES", "Sales"
        PURCHASE = "PURCHASE", "Purchase"
        DEPRECIATION = "DEPRECIATION", "Depreciation"
        MILEAGE = "MILEAGE", "Mileage"
        BANK_MATCH = "BANK_MATCH", "Bank match"
        REVERSAL = "REVERSAL", "Reversal"
        MEMORIAL = "MEMORIAL", "Memorial"

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        FINAL = "FINAL", "Final"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )
    entry_date = models.DateField(db_index=True)
    description = models.CharField(max_length=255)
    reference = models.CharField(max_length=100, blank=True)
    type = models.CharField(
        max_length=20,
        choices=EntryType.choices,
        default=EntryType.MEMORIAL,
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="journal_entries",
    )
    posting_key = models.CharField(
        max_length=150,
        null=True,
        blank=True,
        help_text="Idempotency key of the business event that produced this entry.",
    )
    reversal_of = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversed_by",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Journal entries"
        ordering = ["-entry_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "posting_key"],
                condition=Q(posting_key__isnull=False),
                name="unique_posting_key_per_company",
            )
        ]

    def __str__(self):
        return f"{self.entry_date} – {self.description}"

    @property
    def is_final(self) -> bool:
        return self.status == self.Status.FINAL

    def totals(self):
        totals = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            quantize_money(totals["total_debit"] or Decimal("0.00")),
            quantize_money(totals["total_credit"] or Decimal("0.00")),
        )

    def check_balance(self):
        total_debit, total_credit = self.totals()
        if total_debit != total_credit:
            raise UnbalancedEntryError(total_debit, total_credit)
        if total_debit == Decimal("0.00"):
            raise UnbalancedEntryError(
                total_debit, total_credit, message="Journal entry has no value."
            )

    def delete(self, *args, **kwargs):
        if self.is_final:
            raise ImmutableEntryError(
                f"Journal entry {self.pk} is final; post a reversal instead of deleting it."
            )
        return super().delete(*args, **kwargs)

    if TYPE_CHECKING:
        id: int
        lines: Manager["JournalLine"]


class JournalLine(models.Model):
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="journal_lines",
    )
    debit = models.DecimalField(max_digits=19, decimal_places=4, default=Decimal("0.0000"))
    credit = models.DecimalField(max_digits=19, decimal_places=4, default=Decimal("0.0000"))
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(debit__gte=0) & Q(credit__gte=0),
                name="jl_non_negative",
            ),
            models.CheckConstraint(
                condition=(Q(debit__gt=0) & Q(credit=0)) | (Q(debit=0) & Q(credit__gt=0)),
                name="jl_single_side",
            ),
        ]

    def __str__(self):
        side = f"Dr {self.debit}" if self.debit else f"Cr {self.credit}"
        return f"{self.account} {side}"

    def save(self, *args, **kwargs):
        # New lines are written together with their header; only edits are blocked.
        if self.pk is not None and self.journal_entry.is_final:
            raise ImmutableEntryError("Lines of a final journal entry cannot be changed.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.journal_entry.is_final:
            raise ImmutableEntryError("Lines of a final journal entry cannot be deleted.")
        return super().delete(*args, **kwargs)


class Invoice(models.Model):
    class Direction(models.TextChoices):
        SALES = "SALES", "Sales"
        PURCHASE = "PURCHASE", "Purchase"

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="invoices",
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
    )
    direction = models.CharField(
        max_length=10,
        choices=Direction.choices,
        default=Direction.SALES,
    )
    invoice_number = models.CharField(max_length=50)
    invoice_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    description = models.CharField(max_length=255, blank=True)
    subtotal = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    vat_amount = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
    )
    payment_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="paid_invoices",
        help_text="Bank entry that settled the receivable or payable.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-invoice_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["company", "direction", "invoice_number"],
                name="unique_invoice_number_per_direction",
            )
        ]

    def __str__(self):
        return f"{self.get_direction_display()} invoice {self.invoice_number}"

    def save(self, *args, **kwargs):
        if self.due_date is None and self.invoice_date:
            days = getattr(settings, "INVOICE_DEFAULT_PAYMENT_DAYS", 30)
            self.due_date = self.invoice_date + timedelta(days=days)
        super().save(*args, **kwargs)

    @property
    def is_vat_consistent(self) -> bool:
        return quantize_money(self.subtotal) + quantize_money(self.vat_amount) == quantize_money(
            self.total_amount
        )

    def recalculate_totals(self, save=True):
        """Refresh subtotal/VAT/total from the invoice lines."""
        subtotal = Decimal("0.00")
        vat = Decimal("0.00")
        for line in self.lines.all():
            subtotal += line.amount
            vat += line.vat_amount
        self.subtotal = quantize_money(subtotal)
        self.vat_amount = quantize_money(vat)
        self.total_amount = self.subtotal + self.vat_amount
        if save:
            self.save(update_fields=["subtotal", "vat_amount", "total_amount"])

    if TYPE_CHECKING:
        id: int
        journal_entry_id: Optional[int]
        payment_entry_id: Optional[int]
        lines: Manager["InvoiceLine"]


class InvoiceLine(models.Model):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("1.000"))
    unit_price = models.DecimalField(max_digits=19, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("21.00"))
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoice_lines",
        help_text="Revenue account for sales lines, expense/asset account for purchase lines.",
    )
    amount = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    vat_amount = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.description} ({self.amount})"

    def compute_amounts(self):
        self.amount = quantize_money(Decimal(self.quantity) * Decimal(self.unit_price))
        self.vat_amount = quantize_money(self.amount * Decimal(self.vat_rate) / Decimal("100"))

    def save(self, *args, recompute=True, **kwargs):
        # recompute=False keeps amounts supplied from a source document as-is
        if recompute:
            self.compute_amounts()
        super().save(*args, **kwargs)


class BankAccount(models.Model):
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="bank_accounts",
    )
    name = models.CharField(max_length=255, help_text="e.g. 'ING Zakelijk'")
    iban = models.CharField(max_length=34, blank=True)
    ledger_account = models.OneToOneField(
        Account,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="bank_account",
        help_text="Ledger account the bank leg of matched transactions is booked on.",
    )
    is_active = models.BooleanField(default=True)
    last_imported_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("company", "name")]
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} {self.iban}".strip()

    @property
    def current_balance(self):
        from .ledger_services import get_account_balance  # local import to avoid circular

        if not self.ledger_account:
            return Decimal("0.00")
        return get_account_balance(self.ledger_account)

    if TYPE_CHECKING:
        id: int
        ledger_account_id: Optional[int]
        bank_transactions: Manager["BankTransaction"]
        imports: Manager["BankStatementImport"]


class BankStatementImport(models.Model):
    class ImportStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    class FileFormat(models.TextChoices):
        MT940 = "MT940", "MT940"
        CAMT053 = "CAMT053", "CAMT.053"
        CSV = "CSV", "CSV"
        PDF = "PDF", "PDF text"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="bank_imports",
    )
    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.CASCADE,
        related_name="imports",
    )
    uploaded_at = models.DateTimeField(auto_now_add=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_imports",
    )
    file_name = models.CharField(max_length=255, blank=True)
    file_format = models.CharField(max_length=10, choices=FileFormat.choices, blank=True)
    status = models.CharField(
        max_length=20,
        choices=ImportStatus.choices,
        default=ImportStatus.PENDING,
        db_index=True,
    )
    new_count = models.PositiveIntegerField(default=0)
    duplicate_count = models.PositiveIntegerField(default=0)
    skipped_count = models.PositiveIntegerField(default=0)
    error_count = models.PositiveIntegerField(default=0)
    matched_count = models.PositiveIntegerField(default=0)
    error_message = models.TextField(blank=True)

    class Meta:
        ordering = ["-uploaded_at"]

    def __str__(self):
        return f"{self.bank_account.name} import @ {self.uploaded_at:%Y-%m-%d %H:%M}"


class BankTransaction(models.Model):
    class TransactionStatus(models.TextChoices):
        UNMATCHED = "UNMATCHED", "Unmatched"
        MATCHED = "MATCHED", "Matched"

    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.CASCADE,
        related_name="bank_transactions",
    )
    statement_import = models.ForeignKey(
        BankStatementImport,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    transaction_date = models.DateField(db_index=True)
    description = models.CharField(max_length=500)
    amount = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        help_text="Positive = money in, negative = money out",
    )
    contra_account = models.CharField(max_length=34, blank=True)
    contra_name = models.CharField(max_length=200, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    fingerprint = models.CharField(
        max_length=64,
        help_text="Hash of account, date, amount and normalized description",
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.UNMATCHED,
        db_index=True,
    )
    matched_rule = models.ForeignKey(
        "core.BankRule",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="matched_transactions",
    )
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-transaction_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["bank_account", "fingerprint"],
                name="unique_fingerprint_per_bank_account",
            )
        ]

    def __str__(self):
        return f"{self.transaction_date} – {self.description} ({self.amount})"

    if TYPE_CHECKING:
        id: int
        journal_entry_id: Optional[int]


class BankRule(models.Model):
    """
    Keyword rule that auto-books recurring bank transactions.

    Rules are evaluated highest priority first; the oldest rule wins a tie.
    """

    class MatchType(models.TextChoices):
        CONTAINS = "CONTAINS", "Contains"
        EXACT = "EXACT", "Exact"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="bank_rules",
    )
    keyword = models.CharField(max_length=255)
    match_type = models.CharField(
        max_length=10,
        choices=MatchType.choices,
        default=MatchType.CONTAINS,
    )
    target_ledger_account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="bank_rules",
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_rules",
    )
    description_template = models.CharField(max_length=255, blank=True)
    priority = models.IntegerField(default=0, db_index=True)
    is_active = models.BooleanField(default=True)
    is_system_rule = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-priority", "created_at", "id"]

    def __str__(self):
        return f"{self.keyword} ({self.get_match_type_display()}, p{self.priority})"

    def matches(self, description: str, contra_name: str = "") -> bool:
        """
        Contains rules search the description and the counterparty name
        together; Exact rules must equal one of them.
        """
        needle = (self.keyword or "").strip().lower()
        if not needle:
            return False
        if self.match_type == self.MatchType.EXACT:
            return any(
                (text or "").strip().lower() == needle for text in (description, contra_name)
            )
        return needle in f"{description or ''} {contra_name or ''}".lower()

    def delete(self, *args, **kwargs):
        if self.is_system_rule:
            raise ProtectedRuleError(f"Bank rule '{self.keyword}' is a system rule.")
        return super().delete(*args, **kwargs)


class FixedAsset(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        FULLY_DEPRECIATED = "FULLY_DEPRECIATED", "Fully depreciated"

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="fixed_assets",
    )
    name = models.CharField(max_length=255)
    purchase_date = models.DateField()
    purchase_price = models.DecimalField(max_digits=19, decimal_places=2)
    residual_value = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    lifespan_months = models.PositiveIntegerField()
    depreciation_account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="depreciating_assets",
        help_text="Expense account debited each month.",
    )
    balance_sheet_account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="fixed_assets",
        help_text="Asset account credited each month.",
    )
    last_depreciation_date = models.DateField(null=True, blank=True)
    accumulated_depreciation = models.DecimalField(
        max_digits=19, decimal_places=2, default=Decimal("0.00")
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["purchase_date", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(lifespan_months__gt=0),
                name="fa_positive_lifespan",
            ),
            models.CheckConstraint(
                condition=Q(residual_value__gte=0) & Q(residual_value__lte=F("purchase_price")),
                name="fa_residual_within_price",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def depreciable_amount(self) -> Decimal:
        return quantize_money(self.purchase_price - self.residual_value)

    @property
    def monthly_depreciation(self) -> Decimal:
        return quantize_money(self.depreciable_amount / Decimal(self.lifespan_months))

    @property
    def remaining_depreciation(self) -> Decimal:
        return self.depreciable_amount - quantize_money(self.accumulated_depreciation)

    @property
    def book_value(self) -> Decimal:
        return quantize_money(self.purchase_price - self.accumulated_depreciation)


class MileageLog(models.Model):
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="mileage_logs",
    )
    trip_date = models.DateField()
    from_location = models.CharField(max_length=255, blank=True)
    to_location = models.CharField(max_length=255, blank=True)
    distance_km = models.DecimalField(max_digits=8, decimal_places=1)
    purpose = models.CharField(max_length=255, blank=True)
    is_booked = models.BooleanField(default=False, db_index=True)
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="mileage_logs",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["trip_date", "id"]

    def __str__(self):
        return f"{self.trip_date} {self.from_location} → {self.to_location} ({self.distance_km} km)"
