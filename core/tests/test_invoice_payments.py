"""
Tests for settling invoices from bank payments.

Covers:
- sales payments clear receivables, purchase payments clear payables
- amount, direction and status checks before anything is booked
- finding the payment: invoice reference first, then amount, date and name
- reversing a payment reopens the invoice and frees the transaction
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError

from core.accounting_posting import book_purchase_invoice, finalize_sales_invoice, settle_invoice_payment
from core.exceptions import AlreadyPostedError
from core.ledger_services import get_account_balance, reverse_journal_entry
from core.models import BankAccount, BankTransaction, Invoice, JournalEntry
from core.services.invoice_payments import find_payment_match
from core.services.bank_rules import book_transaction_manually

from .test_invoice_posting import PostingTestCase, _line_map


class InvoicePaymentTestCase(PostingTestCase):
    def setUp(self):
        super().setUp()
        self.bank_account = BankAccount.objects.create(
            company=self.company, name="ING Zakelijk", ledger_account=self.accounts["bank"]
        )

    def _tx(self, amount, description="Betaling", txn_date=date(2024, 3, 20), contra_name="", reference=""):
        return BankTransaction.objects.create(
            bank_account=self.bank_account,
            transaction_date=txn_date,
            description=description,
            amount=Decimal(amount),
            contra_name=contra_name,
            reference=reference,
            fingerprint=f"{txn_date}|{amount}|{description}|{contra_name}"[:64],
        )

    def _sales_invoice(self, number="2024-010"):
        invoice = self._invoice(
            Invoice.Direction.SALES, number, [("Advies", "1000.00", "21", self.accounts["sales"])]
        )
        finalize_sales_invoice(invoice)
        invoice.refresh_from_db()
        return invoice

    def _purchase_invoice(self, number="INK-55"):
        invoice = self._invoice(
            Invoice.Direction.PURCHASE, number, [("Papier", "100.00", "21", self.accounts["opex"])]
        )
        book_purchase_invoice(invoice)
        invoice.refresh_from_db()
        return invoice


class SettleInvoicePaymentTest(InvoicePaymentTestCase):
    def test_sales_payment_clears_receivable(self):
        invoice = self._sales_invoice()
        tx = self._tx("1210.00", contra_name="Klant BV")

        entry = settle_invoice_payment(invoice, tx)

        self.assertEqual(entry.status, JournalEntry.Status.FINAL)
        self.assertEqual(entry.contact, self.customer)
        lines = _line_map(entry)
        self.assertEqual(lines["1100"], (Decimal("1210.00"), Decimal("0.00")))
        self.assertEqual(lines["1300"], (Decimal("0.00"), Decimal("1210.00")))
        self.assertEqual(get_account_balance(self.accounts["ar"]), Decimal("0.00"))

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.Status.PAID)
        self.assertEqual(invoice.payment_entry, entry)
        tx.refresh_from_db()
        self.assertEqual(tx.status, BankTransaction.TransactionStatus.MATCHED)
        self.assertEqual(tx.journal_entry, entry)

    def test_purchase_payment_clears_payable(self):
        invoice = self._purchase_invoice()
        tx = self._tx("-121.00", contra_name="Leverancier BV")

        entry = settle_invoice_payment(invoice, tx)

        lines = _line_map(entry)
        self.assertEqual(lines["1600"], (Decimal("121.00"), Decimal("0.00")))
        self.assertEqual(lines["1100"], (Decimal("0.00"), Decimal("121.00")))
        self.assertEqual(get_account_balance(self.accounts["ap"]), Decimal("0.00"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.Status.PAID)

    def test_partial_payment_is_rejected(self):
        invoice = self._sales_invoice()
        with self.assertRaises(ValidationError):
            settle_invoice_payment(invoice, self._tx("1000.00"))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.Status.SENT)

    def test_direction_must_fit(self):
        invoice = self._sales_invoice()
        with self.assertRaises(ValidationError):
            settle_invoice_payment(invoice, self._tx("-1210.00"))

    def test_draft_invoice_cannot_be_settled(self):
        invoice = self._invoice(
            Invoice.Direction.SALES, "2024-011", [("Advies", "100.00", "21", self.accounts["sales"])]
        )
        with self.assertRaises(ValidationError):
            settle_invoice_payment(invoice, self._tx("121.00"))

    def test_second_payment_is_rejected(self):
        invoice = self._sales_invoice()
        settle_invoice_payment(invoice, self._tx("1210.00"))
        with self.assertRaises(AlreadyPostedError):
            settle_invoice_payment(invoice, self._tx("1210.00", description="Nogmaals"))

    def test_booked_transaction_cannot_settle(self):
        invoice = self._sales_invoice()
        tx = self._tx("1210.00")
        book_transaction_manually(tx, self.accounts["sales"])
        with self.assertRaises(AlreadyPostedError):
            settle_invoice_payment(invoice, tx)

    def test_reversing_payment_reopens_invoice(self):
        invoice = self._sales_invoice()
        tx = self._tx("1210.00")
        entry = settle_invoice_payment(invoice, tx)

        with self.assertRaises(ValidationError):
            reverse_journal_entry(invoice.journal_entry)

        reverse_journal_entry(entry)

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.Status.SENT)
        self.assertIsNone(invoice.payment_entry)
        tx.refresh_from_db()
        self.assertEqual(tx.status, BankTransaction.TransactionStatus.UNMATCHED)
        self.assertEqual(settle_invoice_payment(invoice, tx).posting_key, f"bank-transaction:{tx.pk}#2")

    def test_reversing_invoice_returns_it_to_draft(self):
        invoice = self._sales_invoice()
        reverse_journal_entry(invoice.journal_entry)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.Status.DRAFT)
        self.assertIsNone(invoice.journal_entry)
        entry = finalize_sales_invoice(invoice)
        self.assertEqual(entry.posting_key, f"sales-invoice:{invoice.pk}#2")


class FindPaymentMatchTest(InvoicePaymentTestCase):
    def test_invoice_reference_wins(self):
        invoice = self._sales_invoice()
        self._tx("1210.00", description="Overboeking", contra_name="Klant BV")
        referenced = self._tx("1210.00", description="Betaling factuur 2024-010", txn_date=date(2024, 4, 2))

        match = find_payment_match(invoice)

        self.assertEqual(match.bank_transaction, referenced)
        self.assertEqual(match.confidence, 100)

    def test_name_breaks_amount_tie(self):
        invoice = self._sales_invoice()
        self._tx("1210.00", description="Overboeking", contra_name="Iemand")
        named = self._tx("1210.00", description="Overboeking", contra_name="KLANT BV", txn_date=date(2024, 3, 22))

        match = find_payment_match(invoice)

        self.assertEqual(match.bank_transaction, named)
        self.assertEqual(match.confidence, 100)
        self.assertEqual(match.reason, "Matched on amount, date, name")

    def test_amount_within_two_cents(self):
        invoice = self._sales_invoice()
        tx = self._tx("1210.01")
        self.assertEqual(find_payment_match(invoice).bank_transaction, tx)

    def test_candidates_are_filtered(self):
        invoice = self._sales_invoice()
        self._tx("1210.00", txn_date=date(2024, 7, 1))
        self._tx("1210.00", txn_date=date(2024, 1, 15))
        self._tx("-1210.00", description="Terugboeking")
        self._tx("1209.95", description="Bijna")
        booked = self._tx("1210.00", description="Al geboekt")
        book_transaction_manually(booked, self.accounts["sales"])

        self.assertIsNone(find_payment_match(invoice))

    def test_window_starts_thirty_days_early(self):
        invoice = self._sales_invoice()
        early = self._tx("1210.00", txn_date=date(2024, 2, 1))
        match = find_payment_match(invoice)
        self.assertEqual(match.bank_transaction, early)
        self.assertEqual(match.confidence, 70)

    def test_purchase_looks_for_money_out(self):
        invoice = self._purchase_invoice()
        tx = self._tx("-121.00", contra_name="Leverancier BV")
        self.assertEqual(find_payment_match(invoice).bank_transaction, tx)

    def test_paid_invoice_has_no_match(self):
        invoice = self._sales_invoice()
        settle_invoice_payment(invoice, self._tx("1210.00"))
        self._tx("1210.00", description="Nogmaals")
        invoice.refresh_from_db()
        self.assertIsNone(find_payment_match(invoice))
