from rest_framework import serializers

from .models import (
    Account,
    BankRule,
    BankStatementImport,
    BankTransaction,
    JournalEntry,
    JournalLine,
    SystemAccountRole,
)


class AccountSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Account
        fields = ["id", "code", "name", "type", "is_active"]
        read_only_fields = fields


class JournalLineSerializer(serializers.ModelSerializer):
    account = AccountSummarySerializer(read_only=True)

    class Meta:
        model = JournalLine
        fields = ["id", "account", "debit", "credit", "description"]
        read_only_fields = fields


class JournalEntrySerializer(serializers.ModelSerializer):
    lines = JournalLineSerializer(many=True, read_only=True)

    class Meta:
        model = JournalEntry
        fields = [
            "id",
            "entry_date",
            "description",
            "reference",
            "type",
            "status",
            "posting_key",
            "reversal_of",
            "lines",
            "created_at",
        ]
        read_only_fields = fields


class BankRuleSerializer(serializers.ModelSerializer):
    target_ledger_account = AccountSummarySerializer(read_only=True)

    class Meta:
        model = BankRule
        fields = [
            "id",
            "keyword",
            "match_type",
            "target_ledger_account",
            "contact",
            "description_template",
            "priority",
            "is_active",
            "is_system_rule",
            "created_at",
        ]
        read_only_fields = fields


class BankStatementImportSerializer(serializers.ModelSerializer):
    class Meta:
        model = BankStatementImport
        fields = [
            "id",
            "file_name",
            "file_format",
            "status",
            "new_count",
            "duplicate_count",
            "skipped_count",
            "error_count",
            "matched_count",
            "error_message",
            "uploaded_at",
        ]
        read_only_fields = fields


class BankTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = BankTransaction
        fields = [
            "id",
            "transaction_date",
            "description",
            "amount",
            "contra_account",
            "contra_name",
            "reference",
            "status",
            "journal_entry",
        ]
        read_only_fields = fields


# Request bodies


class StatementUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    format = serializers.ChoiceField(
        choices=BankStatementImport.FileFormat.values, required=False, allow_blank=True
    )
    auto_match = serializers.BooleanField(required=False, default=True)


class EntryDateSerializer(serializers.Serializer):
    entry_date = serializers.DateField(required=False, allow_null=True)


class PurchaseBookingSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=["none", "cash", "private"], default="none")
    entry_date = serializers.DateField(required=False, allow_null=True)


class ExtractionBookingSerializer(serializers.Serializer):
    extraction = serializers.DictField()
    expense_account_id = serializers.IntegerField()
    contact_id = serializers.IntegerField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=["none", "cash", "private"], default="none")


class DepreciationRunSerializer(serializers.Serializer):
    period_date = serializers.DateField(required=False, allow_null=True)


class ReversalSerializer(serializers.Serializer):
    reversal_date = serializers.DateField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class SystemAccountBindingSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=SystemAccountRole.choices)
    account_id = serializers.IntegerField()


class BankRuleCreateSerializer(serializers.Serializer):
    keyword = serializers.CharField(max_length=255)
    target_ledger_account_id = serializers.IntegerField()
    match_type = serializers.ChoiceField(
        choices=BankRule.MatchType.choices, default=BankRule.MatchType.CONTAINS
    )
    contact_id = serializers.IntegerField(required=False, allow_null=True)
    description_template = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.IntegerField(required=False, allow_null=True)


class ManualBookingSerializer(serializers.Serializer):
    account_id = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class InvoicePaymentSerializer(serializers.Serializer):
    bank_transaction_id = serializers.IntegerField(required=False, allow_null=True)
