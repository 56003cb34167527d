"""
Create the default chart of accounts for a company.

USAGE:
  python manage.py seed_chart_of_accounts <company_id>

Idempotent: existing account codes are left untouched. Afterwards every
system account role is resolved once and the result is printed, so missing
or ambiguous roles show up immediately.
"""
from django.core.management.base import BaseCommand, CommandError

from core.accounting_defaults import ensure_default_accounts
from core.models import Company
from core.system_accounts import resolve_all


class Command(BaseCommand):
    help = "Create the default chart of accounts for a company."

    def add_arguments(self, parser):
        parser.add_argument("company_id", type=int)

    def handle(self, *args, **options):
        try:
            company = Company.objects.get(pk=options["company_id"])
        except Company.DoesNotExist:
            raise CommandError(f"Company {options['company_id']} does not exist.")

        ensure_default_accounts(company)
        self.stdout.write(self.style.SUCCESS(f"Default chart of accounts ready for {company.name}."))

        for role, account in resolve_all(company).items():
            if account is not None:
                self.stdout.write(f"  {role}: {account.code} {account.name}")
            else:
                self.stdout.write(self.style.WARNING(f"  {role}: not resolved"))
