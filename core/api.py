"""
Ledger HTTP API.

Thin DRF views over the posting, import and resolver services. Every URL
carries the company id; the requesting user must own that company. Services
raise, and ``_error_response`` turns their exceptions into HTTP statuses:
400 for validation and parse problems, 409 for conflicts with what is
already booked, 422 when a system account cannot be resolved.
"""
from __future__ import annotations

from django.core.exceptions import ValidationError
from django.http import Http404
from django.shortcuts import get_object_or_404
from pydantic import ValidationError as ExtractionValidationError
from rest_framework import permissions, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from .accounting_posting import (
    PaymentDisposition,
    book_mileage,
    book_purchase_from_extraction,
    book_purchase_invoice,
    finalize_sales_invoice,
    run_depreciation,
    settle_invoice_payment,
)
from .bank_import_services import import_statement
from .exceptions import (
    AlreadyPostedError,
    AmbiguousSystemAccountError,
    ImmutableEntryError,
    LedgerError,
    ParseError,
    ProtectedRuleError,
    SystemAccountNotFoundError,
)
from .extraction import EnhancedInvoiceData
from .ledger_services import reverse_journal_entry
from .models import (
    Account,
    BankAccount,
    BankRule,
    BankStatementImport,
    BankTransaction,
    Contact,
    FixedAsset,
    Invoice,
    JournalEntry,
)
from .serializers import (
    BankRuleCreateSerializer,
    BankRuleSerializer,
    BankStatementImportSerializer,
    BankTransactionSerializer,
    DepreciationRunSerializer,
    EntryDateSerializer,
    ExtractionBookingSerializer,
    InvoicePaymentSerializer,
    JournalEntrySerializer,
    ManualBookingSerializer,
    PurchaseBookingSerializer,
    ReversalSerializer,
    StatementUploadSerializer,
    SystemAccountBindingSerializer,
)
from .services.bank_rules import book_transaction_manually, create_bank_rule
from .services.invoice_payments import find_payment_match
from .system_accounts import bind_system_account, resolve_all
from .utils import get_owned_company

CONFLICT_ERRORS = (AlreadyPostedError, ImmutableEntryError, ProtectedRuleError)
SYSTEM_ACCOUNT_ERRORS = (SystemAccountNotFoundError, AmbiguousSystemAccountError)


def _error_response(exc: Exception) -> Response:
    if isinstance(exc, ValidationError):
        return Response({"detail": " ".join(exc.messages)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, CONFLICT_ERRORS):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, SYSTEM_ACCOUNT_ERRORS):
        return Response(
            {"detail": str(exc), "role": str(getattr(exc, "role", ""))},
            status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    if isinstance(exc, ParseError):
        return Response(
            {"detail": str(exc), "skipped": getattr(exc, "skipped", 0)},
            status=status.HTTP_400_BAD_REQUEST,
        )
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def _entry_response(entry: JournalEntry, http_status=status.HTTP_201_CREATED) -> Response:
    entry = JournalEntry.objects.prefetch_related("lines__account").get(pk=entry.pk)
    return Response(JournalEntrySerializer(entry).data, status=http_status)


class CompanyAPIView(APIView):
    """Base view: resolves ``company_id`` from the URL against the user's companies."""

    permission_classes = [permissions.IsAuthenticated]

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.company = get_owned_company(request.user, kwargs.get("company_id"))

    def handle_exception(self, exc):
        if isinstance(exc, (ValidationError, LedgerError)):
            return _error_response(exc)
        return super().handle_exception(exc)

    def get_company(self):
        if self.company is None:
            raise Http404("Company not found.")
        return self.company


class StatementImportView(CompanyAPIView):
    parser_classes = [MultiPartParser, FormParser]

    def get(self, request, company_id: int, bank_account_id: int):
        bank_account = get_object_or_404(BankAccount, pk=bank_account_id, company=self.get_company())
        imports = BankStatementImport.objects.filter(bank_account=bank_account).order_by("-uploaded_at", "-id")
        return Response(BankStatementImportSerializer(imports, many=True).data)

    def post(self, request, company_id: int, bank_account_id: int):
        company = self.get_company()
        bank_account = get_object_or_404(BankAccount, pk=bank_account_id, company=company)
        serializer = StatementUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        upload = serializer.validated_data["file"]
        result = import_statement(
            bank_account,
            upload.read(),
            upload.name,
            declared_format=serializer.validated_data.get("format") or None,
            auto_match=serializer.validated_data["auto_match"],
            uploaded_by=request.user,
        )
        payload = result.as_dict()
        record = BankStatementImport.objects.get(pk=result.statement_import_id)
        payload["import"] = BankStatementImportSerializer(record).data
        return Response(payload, status=status.HTTP_201_CREATED)


class SalesInvoiceFinalizeView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int, pk: int):
        invoice = get_object_or_404(Invoice, pk=pk, company=self.get_company())
        serializer = EntryDateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = finalize_sales_invoice(invoice, entry_date=serializer.validated_data.get("entry_date"))
        return _entry_response(entry)


class PurchaseInvoiceBookView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int, pk: int):
        invoice = get_object_or_404(Invoice, pk=pk, company=self.get_company())
        serializer = PurchaseBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = book_purchase_invoice(
            invoice,
            payment=PaymentDisposition.from_method(serializer.validated_data["payment_method"]),
            entry_date=serializer.validated_data.get("entry_date"),
        )
        return _entry_response(entry)


class PurchaseFromExtractionView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int):
        company = self.get_company()
        serializer = ExtractionBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = serializer.validated_data

        try:
            data = EnhancedInvoiceData.model_validate(payload["extraction"])
        except ExtractionValidationError as exc:
            return Response(
                {"detail": "Invalid extraction data.", "errors": exc.errors(include_url=False, include_context=False, include_input=False)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        expense_account = get_object_or_404(Account, pk=payload["expense_account_id"], company=company)
        contact = None
        if payload.get("contact_id"):
            contact = get_object_or_404(Contact, pk=payload["contact_id"], company=company)

        entry = book_purchase_from_extraction(
            company,
            data,
            expense_account=expense_account,
            contact=contact,
            payment=PaymentDisposition.from_method(payload["payment_method"]),
        )
        return _entry_response(entry)


class InvoicePaymentView(CompanyAPIView):
    """GET suggests the bank payment of an open invoice; POST books it."""

    parser_classes = [JSONParser]

    def get(self, request, company_id: int, pk: int):
        invoice = get_object_or_404(Invoice, pk=pk, company=self.get_company())
        match = find_payment_match(invoice)
        if match is None:
            return Response({"match": None})
        return Response(
            {
                "match": BankTransactionSerializer(match.bank_transaction).data,
                "confidence": match.confidence,
                "reason": match.reason,
            }
        )

    def post(self, request, company_id: int, pk: int):
        company = self.get_company()
        invoice = get_object_or_404(Invoice, pk=pk, company=company)
        serializer = InvoicePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        bank_transaction_id = serializer.validated_data.get("bank_transaction_id")
        if bank_transaction_id:
            bank_transaction = get_object_or_404(
                BankTransaction.objects.select_related("bank_account"),
                pk=bank_transaction_id,
                bank_account__company=company,
            )
        else:
            match = find_payment_match(invoice)
            if match is None:
                return Response(
                    {"detail": f"No bank payment found for invoice {invoice.invoice_number}."},
                    status=status.HTTP_404_NOT_FOUND,
                )
            bank_transaction = match.bank_transaction
        entry = settle_invoice_payment(invoice, bank_transaction)
        return _entry_response(entry)


class DepreciationRunView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int, pk: int):
        asset = get_object_or_404(FixedAsset, pk=pk, company=self.get_company())
        serializer = DepreciationRunSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = run_depreciation(asset, period_date=serializer.validated_data.get("period_date"))
        return _entry_response(entry)


class MileageRunView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int):
        serializer = EntryDateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = book_mileage(self.get_company(), entry_date=serializer.validated_data.get("entry_date"))
        return _entry_response(entry)


class EntryReverseView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int, pk: int):
        entry = get_object_or_404(JournalEntry, pk=pk, company=self.get_company())
        serializer = ReversalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reversal = reverse_journal_entry(
            entry,
            reversal_date=serializer.validated_data.get("reversal_date"),
            reason=serializer.validated_data["reason"],
        )
        return _entry_response(reversal)


class BankTransactionBookView(CompanyAPIView):
    parser_classes = [JSONParser]

    def post(self, request, company_id: int, pk: int):
        company = self.get_company()
        bank_transaction = get_object_or_404(
            BankTransaction.objects.select_related("bank_account__company"),
            pk=pk,
            bank_account__company=company,
        )
        serializer = ManualBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        account = get_object_or_404(Account, pk=serializer.validated_data["account_id"], company=company)
        entry = book_transaction_manually(
            bank_transaction,
            account,
            description=serializer.validated_data.get("description") or None,
        )
        return _entry_response(entry)


class SystemAccountsView(CompanyAPIView):
    parser_classes = [JSONParser]

    def get(self, request, company_id: int):
        overview = {}
        for role, account in resolve_all(self.get_company()).items():
            overview[role] = (
                {"id": account.pk, "code": account.code, "name": account.name} if account else None
            )
        return Response(overview)

    def post(self, request, company_id: int):
        company = self.get_company()
        serializer = SystemAccountBindingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        account = get_object_or_404(Account, pk=serializer.validated_data["account_id"], company=company)
        binding = bind_system_account(company, serializer.validated_data["role"], account)
        return Response(
            {"role": binding.role, "account_id": binding.account_id},
            status=status.HTTP_201_CREATED,
        )


class BankRulesView(CompanyAPIView):
    parser_classes = [JSONParser]

    def get(self, request, company_id: int):
        rules = (
            BankRule.objects.filter(company=self.get_company())
            .select_related("target_ledger_account")
            .order_by("-priority", "created_at", "id")
        )
        return Response(BankRuleSerializer(rules, many=True).data)

    def post(self, request, company_id: int):
        company = self.get_company()
        serializer = BankRuleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = serializer.validated_data

        target = get_object_or_404(Account, pk=payload["target_ledger_account_id"], company=company)
        contact = None
        if payload.get("contact_id"):
            contact = get_object_or_404(Contact, pk=payload["contact_id"], company=company)

        rule = create_bank_rule(
            company,
            keyword=payload["keyword"],
            target_ledger_account=target,
            match_type=payload["match_type"],
            contact=contact,
            description_template=payload["description_template"],
            priority=payload.get("priority"),
        )
        return Response(BankRuleSerializer(rule).data, status=status.HTTP_201_CREATED)
