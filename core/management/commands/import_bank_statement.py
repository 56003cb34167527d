"""
Import a bank statement file into a bank account.

USAGE:
  python manage.py import_bank_statement <company_id> <bank_account_id> <path>
  python manage.py import_bank_statement 1 3 exports/ing-2024-03.sta --format MT940
  python manage.py import_bank_statement 1 3 statement.xml --no-match

Supported formats are MT940, CAMT.053 (XML), CSV and PDF. The format is
detected from the file content and name unless --format is given.
Re-importing the same file is safe: already known transactions are counted
as duplicates and not stored again.
"""
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from core.bank_import_services import import_statement
from core.exceptions import LedgerError
from core.models import BankAccount
from core.services.statement_parsers import SUPPORTED_FORMATS


class Command(BaseCommand):
    help = "Import an MT940, CAMT.053, CSV or PDF bank statement into a bank account."

    def add_arguments(self, parser):
        parser.add_argument("company_id", type=int)
        parser.add_argument("bank_account_id", type=int)
        parser.add_argument("path", help="Path to the statement file.")
        parser.add_argument(
            "--format",
            dest="declared_format",
            choices=SUPPORTED_FORMATS,
            help="Skip detection and parse the file as this format.",
        )
        parser.add_argument(
            "--no-match",
            action="store_true",
            help="Do not run bank rules over the new transactions.",
        )

    def handle(self, *args, **options):
        try:
            bank_account = BankAccount.objects.select_related("company").get(
                pk=options["bank_account_id"], company_id=options["company_id"]
            )
        except BankAccount.DoesNotExist:
            raise CommandError(
                f"Bank account {options['bank_account_id']} not found for company {options['company_id']}."
            )

        path = Path(options["path"])
        if not path.is_file():
            raise CommandError(f"File not found: {path}")

        try:
            result = import_statement(
                bank_account,
                path.read_bytes(),
                path.name,
                declared_format=options["declared_format"],
                auto_match=not options["no_match"],
            )
        except LedgerError as exc:
            raise CommandError(f"Import failed: {exc}")

        self.stdout.write(
            self.style.SUCCESS(
                f"{result.new_transactions} new, {result.duplicates} duplicates, "
                f"{result.skipped} skipped, {result.matched} auto-matched."
            )
        )
        for error in result.errors:
            self.stdout.write(self.style.WARNING(error))
