"""
Bank Rule Matching

Auto-categorizes imported bank transactions:
- Active rules are checked highest priority first; the oldest rule wins a tie
- CONTAINS: case-insensitive substring of the description and counterparty name
- EXACT: case-insensitive equality with the whole description or counterparty name
- The first matching rule books a Draft journal entry against its target account
- No rule: a known counterparty (same IBAN, else a name match) with a default
  ledger account books a Draft entry against that account

Nothing fuzzy happens here. A transaction nothing matches stays Unmatched and
is left for manual booking.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Max

from core.accounting_posting import (
    post_bank_contact_match,
    post_bank_rule_match,
    post_bank_transaction,
)
from core.exceptions import AlreadyPostedError, ProtectedRuleError
from core.models import Account, BankRule, BankTransaction, Contact, JournalEntry
from core.utils import normalize_whitespace

logger = logging.getLogger(__name__)

MIN_CONTACT_NAME_LENGTH = 3


@dataclass
class MatchResult:
    matched: bool
    rule: Optional[BankRule] = None
    journal_entry: Optional[JournalEntry] = None
    contact: Optional[Contact] = None

    @property
    def journal_entry_id(self) -> Optional[int]:
        return self.journal_entry.pk if self.journal_entry else None


def active_rules(company) -> Iterable[BankRule]:
    return (
        BankRule.objects.filter(company=company, is_active=True)
        .select_related("target_ledger_account", "contact")
        .order_by("-priority", "created_at", "id")
    )


def find_matching_rule(company, description: str, rules=None, contra_name: str = "") -> Optional[BankRule]:
    """Return the first active rule whose keyword matches the transaction text."""
    for rule in rules if rules is not None else active_rules(company):
        if rule.matches(description, contra_name):
            return rule
    return None


def _compact_iban(value: str) -> str:
    return re.sub(r"\s+", "", value or "").upper()


def find_matching_contact(company, contra_account: str = "", contra_name: str = "") -> Optional[Contact]:
    """
    Active contact behind a counterparty: same IBAN first, otherwise the first
    contact (by name) whose name contains the counterparty name. Returns None
    when that contact has no default ledger account to book on.
    """
    contacts = Contact.objects.filter(company=company, is_active=True).select_related(
        "default_ledger_account"
    )
    contact = None
    iban = _compact_iban(contra_account)
    if iban:
        contact = next(
            (c for c in contacts.exclude(iban="").order_by("name", "id") if _compact_iban(c.iban) == iban),
            None,
        )
    name = normalize_whitespace(contra_name or "")
    if contact is None and len(name) >= MIN_CONTACT_NAME_LENGTH:
        contact = contacts.filter(name__icontains=name).order_by("name", "id").first()
    if contact is None or contact.default_ledger_account is None:
        return None
    return contact


def match_description(
    company, description: str, amount: Decimal, txn_date: date, contra_name: str = ""
) -> MatchResult:
    """
    Pure rule evaluation, no writes. ``amount`` and ``txn_date`` are part of
    the matching contract but keyword rules only look at the text.
    """
    rule = find_matching_rule(company, description, contra_name=contra_name)
    return MatchResult(matched=rule is not None, rule=rule)


def _book_contact_match(bank_transaction: BankTransaction, company) -> MatchResult:
    contact = find_matching_contact(
        company, bank_transaction.contra_account, bank_transaction.contra_name
    )
    if contact is None:
        return MatchResult(matched=False)
    try:
        entry = post_bank_contact_match(bank_transaction, contact)
    except AlreadyPostedError:
        logger.info("Bank transaction %s was booked concurrently; contact %s skipped", bank_transaction.pk, contact.pk)
        return MatchResult(matched=False, contact=contact)
    except ValidationError as exc:
        logger.warning("Contact %s could not book bank transaction %s: %s", contact.pk, bank_transaction.pk, exc)
        return MatchResult(matched=False, contact=contact)

    logger.info(
        "Bank transaction %s auto-matched by contact %s ('%s') into entry %s",
        bank_transaction.pk,
        contact.pk,
        contact.name,
        entry.pk,
    )
    return MatchResult(matched=True, journal_entry=entry, contact=contact)


def match_transaction(bank_transaction: BankTransaction, rules=None) -> MatchResult:
    """
    Offer a bank transaction to the rule set, then to the contact list, and
    book the first hit as a Draft entry. Already booked transactions are left
    alone.
    """
    if bank_transaction.status == BankTransaction.TransactionStatus.MATCHED:
        return MatchResult(matched=False)

    company = bank_transaction.bank_account.company
    rule = find_matching_rule(
        company, bank_transaction.description, rules=rules, contra_name=bank_transaction.contra_name
    )
    if rule is None:
        return _book_contact_match(bank_transaction, company)

    try:
        entry = post_bank_rule_match(bank_transaction, rule)
    except AlreadyPostedError:
        logger.info("Bank transaction %s was booked concurrently; rule %s skipped", bank_transaction.pk, rule.pk)
        return MatchResult(matched=False, rule=rule)
    except ValidationError as exc:
        # e.g. the rule's target account was deactivated; leave the row for manual booking
        logger.warning("Rule %s could not book bank transaction %s: %s", rule.pk, bank_transaction.pk, exc)
        return MatchResult(matched=False, rule=rule)

    logger.info(
        "Bank transaction %s auto-matched by rule %s ('%s') into entry %s",
        bank_transaction.pk,
        rule.pk,
        rule.keyword,
        entry.pk,
    )
    return MatchResult(matched=True, rule=rule, journal_entry=entry)


def apply_rules(bank_transactions: Iterable[BankTransaction], company) -> int:
    """Run the matching tiers over several transactions; returns how many matched."""
    rules = list(active_rules(company))
    matched = 0
    for bank_transaction in bank_transactions:
        if match_transaction(bank_transaction, rules=rules).matched:
            matched += 1
    return matched


def book_transaction_manually(
    bank_transaction: BankTransaction,
    target_account: Account,
    *,
    description: Optional[str] = None,
    contact=None,
) -> JournalEntry:
    """Final booking of an unmatched transaction chosen by the user."""
    if target_account.company_id != bank_transaction.bank_account.company_id:
        raise ValidationError("Target account belongs to a different company.")
    return post_bank_transaction(
        bank_transaction,
        target_account,
        description=description,
        contact=contact,
        status=JournalEntry.Status.FINAL,
    )


@transaction.atomic
def create_bank_rule(
    company,
    *,
    keyword: str,
    target_ledger_account: Account,
    match_type: str = BankRule.MatchType.CONTAINS,
    contact=None,
    description_template: str = "",
    priority: Optional[int] = None,
    is_system_rule: bool = False,
) -> BankRule:
    keyword = (keyword or "").strip()
    if not keyword:
        raise ValidationError("A bank rule needs a keyword.")
    if target_ledger_account.company_id != company.pk:
        raise ValidationError("Target account belongs to a different company.")
    if not target_ledger_account.is_active:
        raise ValidationError(f"Account {target_ledger_account} is inactive.")
    if match_type not in BankRule.MatchType.values:
        raise ValidationError(f"Unknown match type '{match_type}'.")
    if BankRule.objects.filter(company=company, keyword__iexact=keyword).exists():
        raise ValidationError(f"A bank rule for '{keyword}' already exists.")

    if priority is None:
        current = BankRule.objects.filter(company=company).aggregate(top=Max("priority"))["top"]
        priority = (current or 0) + 1

    rule = BankRule.objects.create(
        company=company,
        keyword=keyword,
        match_type=match_type,
        target_ledger_account=target_ledger_account,
        contact=contact,
        description_template=(description_template or "").strip(),
        priority=priority,
        is_system_rule=is_system_rule,
    )
    logger.info("Created bank rule %s '%s' (priority %s)", rule.pk, keyword, priority)
    return rule


def delete_bank_rule(rule: BankRule) -> None:
    if rule.is_system_rule:
        raise ProtectedRuleError(f"Bank rule '{rule.keyword}' is a system rule and cannot be deleted.")
    rule.delete()
