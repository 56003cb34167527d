from django.contrib import admin

from .models import (
    Account,
    BankAccount,
    BankRule,
    BankStatementImport,
    BankTransaction,
    Company,
    Contact,
    FixedAsset,
    Invoice,
    InvoiceLine,
    JournalEntry,
    JournalLine,
    MileageLog,
    SystemAccountBinding,
)


admin.site.site_header = "Kasboek – Ledger Admin"
admin.site.site_title = "Kasboek Admin"


def _superuser_only(request):
    return request.user.is_active and request.user.is_superuser


admin.site.has_permission = _superuser_only


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "currency", "owner_user", "mileage_rate", "created_at")
    search_fields = ("name",)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "company", "type", "vat_code", "is_active")
    list_filter = ("type", "is_active", "company")
    search_fields = ("code", "name")
    ordering = ("company", "code")

    def has_delete_permission(self, request, obj=None):
        # Accounts are deactivated, never deleted
        return False


@admin.register(SystemAccountBinding)
class SystemAccountBindingAdmin(admin.ModelAdmin):
    list_display = ("company", "role", "account", "created_at")
    list_filter = ("role",)


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("name", "company", "relation_type", "iban", "is_active")
    list_filter = ("relation_type", "is_active")
    search_fields = ("name", "iban")


class JournalLineInline(admin.TabularInline):
    model = JournalLine
    extra = 0
    fields = ("account", "debit", "credit", "description")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(JournalEntry)
class JournalEntryAdmin(admin.ModelAdmin):
    list_display = ("entry_date", "description", "company", "type", "status", "posting_key")
    list_filter = ("type", "status", "company")
    search_fields = ("description", "reference", "posting_key")
    date_hierarchy = "entry_date"
    inlines = [JournalLineInline]
    readonly_fields = ("posting_key", "reversal_of", "created_at")

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_final:
            return False
        return super().has_delete_permission(request, obj)


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_number",
        "direction",
        "contact",
        "invoice_date",
        "total_amount",
        "status",
        "journal_entry",
    )
    list_filter = ("direction", "status", "company")
    search_fields = ("invoice_number", "contact__name")
    inlines = [InvoiceLineInline]
    readonly_fields = ("journal_entry",)


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ("name", "company", "iban", "ledger_account", "is_active", "last_imported_at")


@admin.register(BankStatementImport)
class BankStatementImportAdmin(admin.ModelAdmin):
    list_display = (
        "file_name",
        "bank_account",
        "file_format",
        "status",
        "new_count",
        "duplicate_count",
        "skipped_count",
        "matched_count",
        "uploaded_at",
    )
    list_filter = ("status", "file_format")


@admin.register(BankTransaction)
class BankTransactionAdmin(admin.ModelAdmin):
    list_display = ("transaction_date", "description", "amount", "bank_account", "status", "matched_rule")
    list_filter = ("status", "bank_account")
    search_fields = ("description", "contra_name", "reference")
    readonly_fields = ("fingerprint", "journal_entry", "matched_rule", "statement_import")


@admin.register(BankRule)
class BankRuleAdmin(admin.ModelAdmin):
    list_display = ("keyword", "match_type", "target_ledger_account", "priority", "is_active", "is_system_rule")
    list_filter = ("match_type", "is_active", "is_system_rule")
    search_fields = ("keyword",)
    ordering = ("company", "-priority", "created_at")

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_system_rule:
            return False
        return super().has_delete_permission(request, obj)


@admin.register(FixedAsset)
class FixedAssetAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "company",
        "purchase_date",
        "purchase_price",
        "lifespan_months",
        "accumulated_depreciation",
        "status",
    )
    list_filter = ("status",)


@admin.register(MileageLog)
class MileageLogAdmin(admin.ModelAdmin):
    list_display = ("trip_date", "from_location", "to_location", "distance_km", "is_booked", "company")
    list_filter = ("is_booked",)
