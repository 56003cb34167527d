from django.urls import path

from .api import (
    BankRulesView,
    BankTransactionBookView,
    DepreciationRunView,
    EntryReverseView,
    InvoicePaymentView,
    MileageRunView,
    PurchaseFromExtractionView,
    PurchaseInvoiceBookView,
    SalesInvoiceFinalizeView,
    StatementImportView,
    SystemAccountsView,
)

app_name = "ledger"

urlpatterns = [
    path(
        "companies/<int:company_id>/bank-accounts/<int:bank_account_id>/import/",
        StatementImportView.as_view(),
        name="statement_import",
    ),
    path(
        "companies/<int:company_id>/bank-transactions/<int:pk>/book/",
        BankTransactionBookView.as_view(),
        name="bank_transaction_book",
    ),
    path("companies/<int:company_id>/bank-rules/", BankRulesView.as_view(), name="bank_rules"),
    path(
        "companies/<int:company_id>/invoices/<int:pk>/finalize/",
        SalesInvoiceFinalizeView.as_view(),
        name="sales_invoice_finalize",
    ),
    path(
        "companies/<int:company_id>/invoices/<int:pk>/book-purchase/",
        PurchaseInvoiceBookView.as_view(),
        name="purchase_invoice_book",
    ),
    path(
        "companies/<int:company_id>/purchases/from-extraction/",
        PurchaseFromExtractionView.as_view(),
        name="purchase_from_extraction",
    ),
    path(
        "companies/<int:company_id>/invoices/<int:pk>/payment/",
        InvoicePaymentView.as_view(),
        name="invoice_payment",
    ),
    path(
        "companies/<int:company_id>/assets/<int:pk>/depreciate/",
        DepreciationRunView.as_view(),
        name="depreciation_run",
    ),
    path("companies/<int:company_id>/mileage/book/", MileageRunView.as_view(), name="mileage_run"),
    path(
        "companies/<int:company_id>/entries/<int:pk>/reverse/",
        EntryReverseView.as_view(),
        name="entry_reverse",
    ),
    path(
        "companies/<int:company_id>/system-accounts/",
        SystemAccountsView.as_view(),
        name="system_accounts",
    ),
]
