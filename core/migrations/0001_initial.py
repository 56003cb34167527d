from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion

import core.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                (
                    "mileage_rate",
                    models.DecimalField(
                        decimal_places=4,
                        default=core.models.default_mileage_rate,
                        help_text="Reimbursement per kilometre for private-car business trips.",
                        max_digits=6,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "owner_user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="companies",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Companies",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "code",
                    models.CharField(
                        help_text="Ledger code like 1000, 1300, 8000. Not necessarily numeric.",
                        max_length=20,
                    ),
                ),
                ("name", models.CharField(max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("ASSET", "Asset"),
                            ("LIABILITY", "Liability"),
                            ("EQUITY", "Equity"),
                            ("REVENUE", "Revenue"),
                            ("EXPENSE", "Expense"),
                        ],
                        max_length=10,
                    ),
                ),
                (
                    "vat_code",
                    models.PositiveSmallIntegerField(
                        choices=[(0, "0%"), (9, "9%"), (21, "21%")],
                        default=0,
                        help_text="Default VAT percentage for lines booked on this account.",
                    ),
                ),
                (
                    "tax_category",
                    models.CharField(
                        blank=True,
                        help_text="Optional classification for statutory reporting.",
                        max_length=50,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("description", models.TextField(blank=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="accounts",
                        to="core.company",
                    ),
                ),
            ],
            options={
                "ordering": ["code", "name"],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "code"), name="unique_account_code_per_company")
                ],
            },
        ),
        migrations.CreateModel(
            name="Contact",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("iban", models.CharField(blank=True, max_length=34)),
                (
                    "relation_type",
                    models.CharField(
                        choices=[
                            ("CUSTOMER", "Customer"),
                            ("SUPPLIER", "Supplier"),
                            ("BOTH", "Customer and supplier"),
                        ],
                        default="SUPPLIER",
                        max_length=10,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="contacts",
                        to="core.company",
                    ),
                ),
                (
                    "default_ledger_account",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="default_for_contacts",
                        to="core.account",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="SystemAccountBinding",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("ACCOUNTS_RECEIVABLE", "Accounts receivable"),
                            ("ACCOUNTS_PAYABLE", "Accounts payable"),
                            ("VAT_PAYABLE", "VAT payable"),
                            ("VAT_RECEIVABLE", "VAT receivable"),
                            ("CASH", "Cash"),
                            ("PRIVATE", "Private drawings"),
                            ("TRAVEL_COSTS", "Travel costs"),
                        ],
                        max_length=30,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="system_bindings",
                        to="core.account",
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="system_account_bindings",
                        to="core.company",
                    ),
                ),
            ],
            options={
                "ordering": ["role"],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "role"), name="unique_system_role_per_company")
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("entry_date", models.DateField(db_index=True)),
                ("description", models.CharField(max_length=255)),
                ("reference", models.CharField(blank=True, max_length=100)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("SALES", "Sales"),
                            ("PURCHASE", "Purchase"),
                            ("DEPRECIATION", "Depreciation"),
                            ("MILEAGE", "Mileage"),
                            ("BANK_MATCH", "Bank match"),
                            ("REVERSAL", "Reversal"),
                            ("MEMORIAL", "Memorial"),
                        ],
                        default="MEMORIAL",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("DRAFT", "Draft"), ("FINAL", "Final")],
                        db_index=True,
                        default="DRAFT",
                        max_length=10,
                    ),
                ),
                (
                    "posting_key",
                    models.CharField(
                        blank=True,
                        help_text="Idempotency key of the business event that produced this entry.",
                        max_length=150,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="journal_entries",
                        to="core.company",
                    ),
                ),
                (
                    "contact",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="journal_entries",
                        to="core.contact",
                    ),
                ),
                (
                    "reversal_of",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reversed_by",
                        to="core.journalentry",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Journal entries",
                "ordering": ["-entry_date", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("posting_key__isnull", False)),
                        fields=("company", "posting_key"),
                        name="unique_posting_key_per_company",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("debit", models.DecimalField(decimal_places=4, default=Decimal("0.0000"), max_digits=19)),
                ("credit", models.DecimalField(decimal_places=4, default=Decimal("0.0000"), max_digits=19)),
                ("description", models.CharField(blank=True, max_length=255)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="journal_lines",
                        to="core.account",
                    ),
                ),
                (
                    "journal_entry",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="core.journalentry",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("debit__gte", 0), ("credit__gte", 0)),
                        name="jl_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("debit__gt", 0), ("credit", 0)),
                            models.Q(("debit", 0), ("credit__gt", 0)),
                            _connector="OR",
                        ),
                        name="jl_single_side",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "direction",
                    models.CharField(
                        choices=[("SALES", "Sales"), ("PURCHASE", "Purchase")],
                        default="SALES",
                        max_length=10,
                    ),
                ),
                ("invoice_number", models.CharField(max_length=50)),
                ("invoice_date", models.DateField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                ("vat_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("SENT", "Sent"),
                            ("PENDING", "Pending"),
                            ("PAID", "Paid"),
                        ],
                        db_index=True,
                        default="DRAFT",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="invoices",
                        to="core.company",
                    ),
                ),
                (
                    "contact",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoices",
                        to="core.contact",
                    ),
                ),
                (
                    "journal_entry",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="invoices",
                        to="core.journalentry",
                    ),
                ),
            ],
            options={
                "ordering": ["-invoice_date", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("company", "direction", "invoice_number"),
                        name="unique_invoice_number_per_direction",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=3, default=Decimal("1.000"), max_digits=12)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=19)),
                ("vat_rate", models.DecimalField(decimal_places=2, default=Decimal("21.00"), max_digits=5)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                ("vat_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                (
                    "account",
                    models.ForeignKey(
                        blank=True,
                        help_text="Revenue account for sales lines, expense/asset account for purchase lines.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="invoice_lines",
                        to="core.account",
                    ),
                ),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="core.invoice",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(help_text="e.g. 'ING Zakelijk'", max_length=255)),
                ("iban", models.CharField(blank=True, max_length=34)),
                ("is_active", models.BooleanField(default=True)),
                ("last_imported_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_accounts",
                        to="core.company",
                    ),
                ),
                (
                    "ledger_account",
                    models.OneToOneField(
                        blank=True,
                        help_text="Ledger account the bank leg of matched transactions is booked on.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bank_account",
                        to="core.account",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "unique_together": {("company", "name")},
            },
        ),
        migrations.CreateModel(
            name="BankStatementImport",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uploaded_at", models.DateTimeField(auto_now_add=True)),
                ("file_name", models.CharField(blank=True, max_length=255)),
                (
                    "file_format",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("MT940", "MT940"),
                            ("CAMT053", "CAMT.053"),
                            ("CSV", "CSV"),
                            ("PDF", "PDF text"),
                        ],
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("new_count", models.PositiveIntegerField(default=0)),
                ("duplicate_count", models.PositiveIntegerField(default=0)),
                ("skipped_count", models.PositiveIntegerField(default=0)),
                ("error_count", models.PositiveIntegerField(default=0)),
                ("matched_count", models.PositiveIntegerField(default=0)),
                ("error_message", models.TextField(blank=True)),
                (
                    "bank_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="imports",
                        to="core.bankaccount",
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_imports",
                        to="core.company",
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bank_imports",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-uploaded_at"],
            },
        ),
        migrations.CreateModel(
            name="BankRule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("keyword", models.CharField(max_length=255)),
                (
                    "match_type",
                    models.CharField(
                        choices=[("CONTAINS", "Contains"), ("EXACT", "Exact")],
                        default="CONTAINS",
                        max_length=10,
                    ),
                ),
                ("description_template", models.CharField(blank=True, max_length=255)),
                ("priority", models.IntegerField(db_index=True, default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("is_system_rule", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_rules",
                        to="core.company",
                    ),
                ),
                (
                    "contact",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bank_rules",
                        to="core.contact",
                    ),
                ),
                (
                    "target_ledger_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bank_rules",
                        to="core.account",
                    ),
                ),
            ],
            options={
                "ordering": ["-priority", "created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="BankTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_date", models.DateField(db_index=True)),
                ("description", models.CharField(max_length=500)),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Positive = money in, negative = money out",
                        max_digits=19,
                    ),
                ),
                ("contra_account", models.CharField(blank=True, max_length=34)),
                ("contra_name", models.CharField(blank=True, max_length=200)),
                ("reference", models.CharField(blank=True, max_length=100)),
                (
                    "fingerprint",
                    models.CharField(
                        help_text="Hash of account, date, amount and normalized description",
                        max_length=64,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("UNMATCHED", "Unmatched"), ("MATCHED", "Matched")],
                        db_index=True,
                        default="UNMATCHED",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bank_account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_transactions",
                        to="core.bankaccount",
                    ),
                ),
                (
                    "journal_entry",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bank_transactions",
                        to="core.journalentry",
                    ),
                ),
                (
                    "matched_rule",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="matched_transactions",
                        to="core.bankrule",
                    ),
                ),
                (
                    "statement_import",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transactions",
                        to="core.bankstatementimport",
                    ),
                ),
            ],
            options={
                "ordering": ["-transaction_date", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("bank_account", "fingerprint"),
                        name="unique_fingerprint_per_bank_account",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FixedAsset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("purchase_date", models.DateField()),
                ("purchase_price", models.DecimalField(decimal_places=2, max_digits=19)),
                ("residual_value", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19)),
                ("lifespan_months", models.PositiveIntegerField()),
                ("last_depreciation_date", models.DateField(blank=True, null=True)),
                (
                    "accumulated_depreciation",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=19),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("ACTIVE", "Active"), ("FULLY_DEPRECIATED", "Fully depreciated")],
                        default="ACTIVE",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "balance_sheet_account",
                    models.ForeignKey(
                        help_text="Asset account credited each month.",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fixed_assets",
                        to="core.account",
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="fixed_assets",
                        to="core.company",
                    ),
                ),
                (
                    "depreciation_account",
                    models.ForeignKey(
                        help_text="Expense account debited each month.",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="depreciating_assets",
                        to="core.account",
                    ),
                ),
            ],
            options={
                "ordering": ["purchase_date", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("lifespan_months__gt", 0)),
                        name="fa_positive_lifespan",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("residual_value__gte", 0),
                            ("residual_value__lte", models.F("purchase_price")),
                        ),
                        name="fa_residual_within_price",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MileageLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("trip_date", models.DateField()),
                ("from_location", models.CharField(blank=True, max_length=255)),
                ("to_location", models.CharField(blank=True, max_length=255)),
                ("distance_km", models.DecimalField(decimal_places=1, max_digits=8)),
                ("purpose", models.CharField(blank=True, max_length=255)),
                ("is_booked", models.BooleanField(db_index=True, default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="mileage_logs",
                        to="core.company",
                    ),
                ),
                (
                    "journal_entry",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="mileage_logs",
                        to="core.journalentry",
                    ),
                ),
            ],
            options={
                "ordering": ["trip_date", "id"],
            },
        ),
    ]
