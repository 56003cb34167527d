"""
Tests for the deduplicating bank statement importer.

Re-importing the same statement must never create a second copy of a
transaction; new rows are offered to the bank rules right after import.
"""
from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from core.accounting_defaults import ensure_default_accounts
from core.bank_import_services import import_statement, import_transactions, transaction_fingerprint
from core.exceptions import EmptyResultError, UnsupportedFormatError
from core.models import (
    BankAccount,
    BankRule,
    BankStatementImport,
    BankTransaction,
    Company,
    JournalEntry,
)
from core.services.statement_parsers import RawTransaction

User = get_user_model()


CSV_STATEMENT = (
    "Datum;Naam;Tegenrekening;Omschrijving;Bedrag\n"
    "15-03-2024;Albert Heijn;;Boodschappen;-12,50\n"
    "16-03-2024;Klant BV;NL02RABO0123456789;Factuur 2024-001;1.250,00\n"
    "17-03-2024;KPN;;KPN abonnement maart;-45,99\n"
    "18-03-2024;Shell;;Tanken Shell A12;-80,00\n"
    "19-03-2024;Belastingdienst;;Omzetbelasting Q1;-400,00\n"
)

ING_STATEMENT = (
    '"Datum";"Naam / Omschrijving";"Rekening";"Tegenrekening";"Code";"Af Bij";"Bedrag (EUR)";"Mutatiesoort";"Mededelingen"\n'
    '"20240315";"Albert Heijn 1234";"NL91INGB0001234567";"";"BA";"Af";"12,50";"Betaalautomaat";"Pasvolgnr:001"\n'
)

MT940_HEADER = ":20:STARTUMS\n:25:NL91INGB0001234567\n:28C:00002\n:60F:C240301EUR1000,00\n"
MT940_ROWS = [
    ":61:240315D12,50NTRFNONREF\n:86:Albert Heijn boodschappen\n",
    ":61:240316C1250,00NTRFNONREF\n:86:Klant BV factuur 2024-001\n",
    ":61:240317D45,99NTRFNONREF\n:86:KPN abonnement maart\n",
    ":61:240318D80,00NTRFNONREF\n:86:Shell tanken\n",
    ":61:240319D400,00NTRFNONREF\n:86:Belastingdienst omzetbelasting\n",
]


def _mt940(rows):
    return (MT940_HEADER + "".join(rows) + ":62F:C240319EUR1711,51\n-\n").encode("utf-8")


class FingerprintTest(TestCase):
    def test_normalized_description(self):
        a = transaction_fingerprint(1, date(2024, 3, 15), Decimal("-12.5"), "Albert  Heijn\nAmsterdam")
        b = transaction_fingerprint(1, date(2024, 3, 15), Decimal("-12.50"), "albert heijn amsterdam ")
        self.assertEqual(a, b)
        self.assertEqual(len(a), 64)

    def test_every_component_counts(self):
        base = transaction_fingerprint(1, date(2024, 3, 15), Decimal("-12.50"), "Albert Heijn")
        self.assertNotEqual(base, transaction_fingerprint(2, date(2024, 3, 15), Decimal("-12.50"), "Albert Heijn"))
        self.assertNotEqual(base, transaction_fingerprint(1, date(2024, 3, 16), Decimal("-12.50"), "Albert Heijn"))
        self.assertNotEqual(base, transaction_fingerprint(1, date(2024, 3, 15), Decimal("-12.51"), "Albert Heijn"))
        self.assertNotEqual(base, transaction_fingerprint(1, date(2024, 3, 15), Decimal("-12.50"), "Albert Heyn"))


class BankImportTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="importer", password="testpass123")
        self.company = Company.objects.create(name="Test BV", owner_user=self.user)
        self.accounts = ensure_default_accounts(self.company)
        self.bank_account = BankAccount.objects.create(
            company=self.company,
            name="ING Zakelijk",
            iban="NL91INGB0001234567",
            ledger_account=self.accounts["bank"],
        )

    def test_reimport_is_idempotent(self):
        first = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv")
        self.assertEqual(first.new_transactions, 5)
        self.assertEqual(first.duplicates, 0)

        second = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv")
        self.assertEqual(second.new_transactions, 0)
        self.assertEqual(second.duplicates, 5)
        self.assertEqual(BankTransaction.objects.filter(bank_account=self.bank_account).count(), 5)

    def test_partial_overlap(self):
        already = RawTransaction(
            transaction_date=date(2024, 3, 16),
            amount=Decimal("1250.00"),
            description="Factuur 2024-001",
        )
        import_transactions([already], self.bank_account)

        result = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv")

        self.assertEqual(result.new_transactions, 4)
        self.assertEqual(result.duplicates, 1)
        self.assertEqual(result.errors, [])

    def test_identical_rows_in_one_file_collapse(self):
        rows = [
            RawTransaction(transaction_date=date(2024, 3, 1), amount=Decimal("-5.00"), description="Koffie"),
            RawTransaction(transaction_date=date(2024, 3, 1), amount=Decimal("-5.00"), description="Koffie"),
        ]
        result = import_transactions(rows, self.bank_account)
        self.assertEqual(result.new_transactions, 1)
        self.assertEqual(result.duplicates, 1)

    def test_same_row_on_other_bank_account_is_new(self):
        other = BankAccount.objects.create(company=self.company, name="Rabo", ledger_account=None)
        row = RawTransaction(transaction_date=date(2024, 3, 1), amount=Decimal("-5.00"), description="Koffie")
        import_transactions([row], self.bank_account)
        result = import_transactions([row], other)
        self.assertEqual(result.new_transactions, 1)

    def test_stored_fields(self):
        import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv", auto_match=False)
        tx = BankTransaction.objects.get(bank_account=self.bank_account, description="Factuur 2024-001")
        self.assertEqual(tx.amount, Decimal("1250.00"))
        self.assertEqual(tx.contra_name, "Klant BV")
        self.assertEqual(tx.contra_account, "NL02RABO0123456789")
        self.assertEqual(tx.status, BankTransaction.TransactionStatus.UNMATCHED)

    def test_import_record_counts(self):
        result = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv", uploaded_by=self.user)
        record = BankStatementImport.objects.get(pk=result.statement_import_id)
        self.assertEqual(record.status, BankStatementImport.ImportStatus.COMPLETED)
        self.assertEqual(record.file_format, "CSV")
        self.assertEqual(record.new_count, 5)
        self.assertEqual(record.uploaded_by, self.user)
        self.bank_account.refresh_from_db()
        self.assertIsNotNone(self.bank_account.last_imported_at)

    def test_unsupported_file_marks_import_failed(self):
        with self.assertRaises(UnsupportedFormatError):
            import_statement(self.bank_account, b"just some notes", "notes.doc")
        record = BankStatementImport.objects.get(bank_account=self.bank_account)
        self.assertEqual(record.status, BankStatementImport.ImportStatus.FAILED)
        self.assertIn("Unsupported", record.error_message)

    def test_statement_without_valid_rows(self):
        data = "Datum;Omschrijving;Bedrag\n;zonder datum;5,00\n".encode("utf-8")
        with self.assertRaises(EmptyResultError):
            import_statement(self.bank_account, data, "leeg.csv")
        record = BankStatementImport.objects.get(bank_account=self.bank_account)
        self.assertEqual(record.skipped_count, 1)
        self.assertFalse(BankTransaction.objects.exists())

    def test_new_rows_are_auto_matched(self):
        BankRule.objects.create(
            company=self.company,
            keyword="kpn",
            target_ledger_account=self.accounts["opex"],
            priority=1,
        )
        result = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv")

        self.assertEqual(result.matched, 1)
        tx = BankTransaction.objects.get(description="KPN abonnement maart")
        self.assertEqual(tx.status, BankTransaction.TransactionStatus.MATCHED)
        self.assertEqual(tx.journal_entry.status, JournalEntry.Status.DRAFT)

        # Duplicates of matched rows are not matched again
        again = import_statement(self.bank_account, CSV_STATEMENT.encode("utf-8"), "maart.csv")
        self.assertEqual(again.matched, 0)
        self.assertEqual(JournalEntry.objects.filter(type=JournalEntry.EntryType.BANK_MATCH).count(), 1)

    def test_card_payment_matched_on_counterparty_name(self):
        # ING puts the shop in the name column and the card number in the description
        BankRule.objects.create(
            company=self.company,
            keyword="Albert Heijn",
            target_ledger_account=self.accounts["opex"],
            priority=1,
        )
        result = import_statement(self.bank_account, ING_STATEMENT.encode("utf-8"), "ing.csv")

        self.assertEqual(result.new_transactions, 1)
        self.assertEqual(result.matched, 1)
        tx = BankTransaction.objects.get()
        self.assertEqual(tx.description, "Pasvolgnr:001")
        self.assertEqual(tx.contra_name, "Albert Heijn 1234")
        self.assertEqual(tx.status, BankTransaction.TransactionStatus.MATCHED)

    def test_mt940_statement_with_one_known_transaction(self):
        import_statement(self.bank_account, _mt940(MT940_ROWS[2:3]), "week1.sta")

        result = import_statement(self.bank_account, _mt940(MT940_ROWS), "maart.sta")

        self.assertEqual(result.new_transactions, 4)
        self.assertEqual(result.duplicates, 1)
        self.assertEqual(result.errors, [])
        self.assertEqual(BankTransaction.objects.filter(bank_account=self.bank_account).count(), 5)

    def test_missing_amount_is_reported(self):
        rows = [RawTransaction(transaction_date=date(2024, 3, 15), amount=None, description="Zonder bedrag")]

        result = import_transactions(rows, self.bank_account)

        self.assertEqual(result.errors, ["Row 1: missing amount"])
        self.assertEqual(result.new_transactions, 0)
        self.assertFalse(BankTransaction.objects.exists())

    def test_bad_rows_do_not_block_good_ones(self):
        rows = [
            RawTransaction(transaction_date=None, amount=Decimal("-5.00"), description=""),
            RawTransaction(transaction_date=date(2024, 3, 15), amount=Decimal("-12.50"), description="Albert Heijn"),
        ]

        result = import_transactions(rows, self.bank_account)

        self.assertEqual(result.errors, ["Row 1: missing date"])
        self.assertEqual(result.new_transactions, 1)
        self.assertEqual(BankTransaction.objects.get().amount, Decimal("-12.50"))
