"""
Tests for system account resolution: explicit binding, then well-known
codes, then name patterns.
"""
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from core.accounting_defaults import ensure_default_accounts
from core.exceptions import AmbiguousSystemAccountError, SystemAccountNotFoundError
from core.ledger_services import PostingLine, post_balanced_entry
from core.models import Account, Company, JournalEntry, SystemAccountRole
from core.system_accounts import (
    bind_system_account,
    deactivate_account,
    resolve,
    resolve_all,
    unbind_system_account,
    validate_binding,
)


class ResolveTest(TestCase):
    def setUp(self):
        self.company = Company.objects.create(name="Rollen BV")

    def _account(self, code, name, type_=Account.AccountType.ASSET, **kwargs):
        return Account.objects.create(company=self.company, code=code, name=name, type=type_, **kwargs)

    def test_default_chart_resolves_every_role(self):
        accounts = ensure_default_accounts(self.company)
        overview = resolve_all(self.company)
        self.assertTrue(all(overview.values()))
        self.assertEqual(overview[SystemAccountRole.ACCOUNTS_RECEIVABLE], accounts["ar"])
        self.assertEqual(overview[SystemAccountRole.VAT_PAYABLE], accounts["vat_payable"])
        self.assertEqual(overview[SystemAccountRole.PRIVATE], accounts["private"])

    def test_resolves_by_name_when_no_code_matches(self):
        account = self._account("1310", "Debiteuren binnenland")
        self.assertEqual(resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE), account)

    def test_code_tier_wins_over_names(self):
        ar = self._account("1300", "Vorderingen")
        self._account("1310", "Debiteuren EU")
        self.assertEqual(resolve(self.company, "ACCOUNTS_RECEIVABLE"), ar)

    def test_wrong_type_is_ignored(self):
        self._account("1300", "Debiteuren", type_=Account.AccountType.LIABILITY)
        with self.assertRaises(SystemAccountNotFoundError):
            resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE)

    def test_not_found_names_the_role(self):
        with self.assertRaises(SystemAccountNotFoundError) as ctx:
            resolve(self.company, SystemAccountRole.CASH)
        self.assertEqual(ctx.exception.role, SystemAccountRole.CASH)

    def test_ambiguous_names(self):
        self._account("1310", "Debiteuren NL")
        self._account("1320", "Debiteuren EU")
        with self.assertRaises(AmbiguousSystemAccountError) as ctx:
            resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE)
        self.assertEqual(len(ctx.exception.candidates), 2)

    def test_inactive_accounts_are_skipped(self):
        self._account("1000", "Kas", is_active=False)
        with self.assertRaises(SystemAccountNotFoundError):
            resolve(self.company, SystemAccountRole.CASH)

    def test_binding_overrides_conventions(self):
        ensure_default_accounts(self.company)
        other = self._account("1320", "Debiteuren EU")
        bind_system_account(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, other)
        self.assertEqual(resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE), other)

        # Rebinding replaces the previous binding
        again = self._account("1330", "Debiteuren buitenland")
        bind_system_account(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, again)
        self.assertEqual(resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE), again)

        self.assertEqual(unbind_system_account(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE), 1)
        self.assertEqual(resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE).code, "1300")

    def test_binding_to_inactive_account_fails_loudly(self):
        account = self._account("1320", "Debiteuren EU")
        bind_system_account(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, account)
        Account.objects.filter(pk=account.pk).update(is_active=False)
        with self.assertRaises(SystemAccountNotFoundError):
            resolve(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE)


class BindingValidationTest(TestCase):
    def setUp(self):
        self.company = Company.objects.create(name="Rollen BV")
        self.accounts = ensure_default_accounts(self.company)

    def test_type_must_fit_the_role(self):
        with self.assertRaises(ValidationError):
            validate_binding(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, self.accounts["ap"])
        validate_binding(self.company, SystemAccountRole.PRIVATE, self.accounts["private"])

    def test_account_must_belong_to_company(self):
        other = ensure_default_accounts(Company.objects.create(name="Ander BV"))
        with self.assertRaises(ValidationError):
            validate_binding(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, other["ar"])

    def test_account_must_be_active(self):
        self.accounts["ar"].is_active = False
        self.accounts["ar"].save()
        with self.assertRaises(ValidationError):
            bind_system_account(self.company, SystemAccountRole.ACCOUNTS_RECEIVABLE, self.accounts["ar"])


class DeactivateAccountTest(TestCase):
    def setUp(self):
        self.company = Company.objects.create(name="Rollen BV")
        self.accounts = ensure_default_accounts(self.company)

    def test_plain_account_is_deactivated(self):
        account = deactivate_account(self.accounts["opex"])
        self.assertFalse(account.is_active)

    def test_bound_account_is_refused(self):
        bind_system_account(self.company, SystemAccountRole.CASH, self.accounts["cash"])
        with self.assertRaises(ValidationError):
            deactivate_account(self.accounts["cash"])

    def test_sole_role_account_with_drafts_is_refused(self):
        post_balanced_entry(
            company=self.company,
            entry_date=date(2024, 3, 1),
            description="Kasopname",
            entry_type=JournalEntry.EntryType.MEMORIAL,
            status=JournalEntry.Status.DRAFT,
            lines=[
                PostingLine.debit(self.accounts["cash"], Decimal("50.00")),
                PostingLine.credit(self.accounts["bank"], Decimal("50.00")),
            ],
        )
        with self.assertRaises(ValidationError):
            deactivate_account(self.accounts["cash"])

        # The bank account plays no system role, so it can go
        self.assertFalse(deactivate_account(self.accounts["bank"]).is_active)
