"""
System account resolution.

Every posting path needs a handful of accounts that play a fixed structural
role (receivables, VAT payable, cash, private drawings). They are found in
three tiers, always among active accounts of the role's expected type:

1. an explicit SystemAccountBinding for (company, role)
2. the role's well-known account codes
3. the role's name patterns

The first tier that yields anything decides. More than one candidate in that
tier is an error; so is finding nothing at all. Results are never cached:
callers resolve fresh for every posting.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q

from core.exceptions import (
    AmbiguousSystemAccountError,
    LedgerError,
    SystemAccountNotFoundError,
)
from core.models import (
    Account,
    JournalEntry,
    JournalLine,
    SystemAccountBinding,
    SystemAccountRole,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleConvention:
    account_types: Tuple[str, ...]
    codes: Tuple[str, ...]
    name_patterns: Tuple[str, ...]


ROLE_CONVENTIONS: Dict[str, RoleConvention] = {
    SystemAccountRole.ACCOUNTS_RECEIVABLE: RoleConvention(
        account_types=(Account.AccountType.ASSET,),
        codes=("1300",),
        name_patterns=("debiteuren", "accounts receivable", "te ontvangen"),
    ),
    SystemAccountRole.ACCOUNTS_PAYABLE: RoleConvention(
        account_types=(Account.AccountType.LIABILITY,),
        codes=("1600", "1500"),
        name_patterns=("crediteuren", "accounts payable", "leveranciers"),
    ),
    SystemAccountRole.VAT_PAYABLE: RoleConvention(
        account_types=(Account.AccountType.LIABILITY,),
        codes=("1530", "1540"),
        name_patterns=("btw te betalen", "omzetbelasting", "verschuldigde btw", "vat payable"),
    ),
    SystemAccountRole.VAT_RECEIVABLE: RoleConvention(
        account_types=(Account.AccountType.ASSET,),
        codes=("1450",),
        name_patterns=("btw te vorderen", "voorbelasting", "vat receivable"),
    ),
    SystemAccountRole.CASH: RoleConvention(
        account_types=(Account.AccountType.ASSET,),
        codes=("1000",),
        name_patterns=("kas", "cash"),
    ),
    SystemAccountRole.PRIVATE: RoleConvention(
        account_types=(Account.AccountType.EQUITY, Account.AccountType.LIABILITY),
        codes=("1700",),
        name_patterns=("privé", "prive", "private", "drawings"),
    ),
    SystemAccountRole.TRAVEL_COSTS: RoleConvention(
        account_types=(Account.AccountType.EXPENSE,),
        codes=("4000",),
        name_patterns=("autokosten", "reiskosten", "travel"),
    ),
}


def _base_queryset(company, convention: RoleConvention):
    return Account.objects.filter(
        company=company,
        is_active=True,
        type__in=convention.account_types,
    )


def _convention_candidates(company, role) -> List[Account]:
    convention = ROLE_CONVENTIONS[role]
    by_code = list(_base_queryset(company, convention).filter(code__in=convention.codes))
    if by_code:
        return by_code

    name_filter = Q()
    for pattern in convention.name_patterns:
        name_filter |= Q(name__icontains=pattern)
    return list(_base_queryset(company, convention).filter(name_filter))


def resolve(company, role) -> Account:
    """Return the single active account that plays ``role`` for ``company``."""
    role = SystemAccountRole(role)

    binding = (
        SystemAccountBinding.objects.select_related("account")
        .filter(company=company, role=role)
        .first()
    )
    if binding is not None:
        if not binding.account.is_active:
            logger.error(
                "System role %s for company %s is bound to inactive account %s",
                role,
                company.pk,
                binding.account_id,
            )
            raise SystemAccountNotFoundError(
                role, message=f"System role '{role}' is bound to inactive account {binding.account}."
            )
        return binding.account

    candidates = _convention_candidates(company, role)
    if not candidates:
        logger.warning("No account found for system role %s (company %s)", role, company.pk)
        raise SystemAccountNotFoundError(role)
    if len(candidates) > 1:
        logger.warning(
            "Ambiguous system role %s (company %s): %s",
            role,
            company.pk,
            [acc.code for acc in candidates],
        )
        raise AmbiguousSystemAccountError(role, candidates)
    return candidates[0]


def resolve_all(company) -> Dict[str, Optional[Account]]:
    """Best-effort overview of every role; unresolved roles map to None."""
    overview = {}
    for role in SystemAccountRole:
        try:
            overview[role.value] = resolve(company, role)
        except LedgerError:
            overview[role.value] = None
    return overview


def validate_binding(company, role, account: Account) -> None:
    role = SystemAccountRole(role)
    convention = ROLE_CONVENTIONS[role]
    if account.company_id != company.pk:
        raise ValidationError("Account belongs to a different company.")
    if not account.is_active:
        raise ValidationError(f"Account {account} is inactive.")
    if account.type not in convention.account_types:
        expected = ", ".join(convention.account_types)
        raise ValidationError(
            f"Account {account} has type {account.type}; role {role.label} expects {expected}."
        )


@transaction.atomic
def bind_system_account(company, role, account: Account) -> SystemAccountBinding:
    validate_binding(company, role, account)
    binding, _ = SystemAccountBinding.objects.update_or_create(
        company=company,
        role=SystemAccountRole(role),
        defaults={"account": account},
    )
    logger.info("Bound system role %s to account %s (company %s)", role, account.code, company.pk)
    return binding


def unbind_system_account(company, role) -> int:
    deleted, _ = SystemAccountBinding.objects.filter(
        company=company, role=SystemAccountRole(role)
    ).delete()
    return deleted


@transaction.atomic
def deactivate_account(account: Account) -> Account:
    """
    Deactivate a ledger account.

    Refused while the account is bound to a system role, or while it is the
    only account that resolves a role and draft journal lines still use it.
    """
    account = Account.objects.select_for_update().get(pk=account.pk)
    if not account.is_active:
        return account

    bound_roles = list(account.system_bindings.values_list("role", flat=True))
    if bound_roles:
        raise ValidationError(
            f"Account {account} is bound to system role(s) {', '.join(bound_roles)}; "
            "rebind the role first."
        )

    has_open_lines = JournalLine.objects.filter(
        account=account,
        journal_entry__status=JournalEntry.Status.DRAFT,
    ).exists()
    if has_open_lines:
        for role in SystemAccountRole:
            try:
                resolved = resolve(account.company, role)
            except LedgerError:
                continue
            if resolved.pk == account.pk:
                raise ValidationError(
                    f"Account {account} is the only {role.label} account and draft "
                    "entries still reference it."
                )

    account.is_active = False
    account.save(update_fields=["is_active"])
    logger.info("Deactivated account %s (company %s)", account.code, account.company_id)
    return account
