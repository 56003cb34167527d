from core.models import Account

# Small Dutch chart of accounts. Codes line up with the conventions in
# core.system_accounts so a freshly seeded company resolves every role.
DEFAULT_ACCOUNTS = [
    ("0100", "Inventaris", Account.AccountType.ASSET, 0),
    ("0500", "Eigen vermogen", Account.AccountType.EQUITY, 0),
    ("1000", "Kas", Account.AccountType.ASSET, 0),
    ("1100", "Bank", Account.AccountType.ASSET, 0),
    ("1300", "Debiteuren", Account.AccountType.ASSET, 0),
    ("1450", "BTW te vorderen", Account.AccountType.ASSET, 0),
    ("1530", "BTW te betalen", Account.AccountType.LIABILITY, 0),
    ("1600", "Crediteuren", Account.AccountType.LIABILITY, 0),
    ("1700", "Privé", Account.AccountType.EQUITY, 0),
    ("4000", "Autokosten", Account.AccountType.EXPENSE, 21),
    ("4500", "Afschrijvingskosten", Account.AccountType.EXPENSE, 0),
    ("4600", "Algemene kosten", Account.AccountType.EXPENSE, 21),
    ("8000", "Omzet hoog tarief", Account.AccountType.REVENUE, 21),
    ("8100", "Omzet laag tarief", Account.AccountType.REVENUE, 9),
]


def ensure_default_accounts(company):
    """Ensure the baseline chart exists for the given company and return a mapping."""
    accounts = {}
    for code, name, type_, vat_code in DEFAULT_ACCOUNTS:
        acc, _ = Account.objects.get_or_create(
            company=company,
            code=code,
            defaults={
                "name": name,
                "type": type_,
                "vat_code": vat_code,
            },
        )
        accounts[code] = acc
    return {
        "fixed_assets": accounts["0100"],
        "cash": accounts["1000"],
        "bank": accounts["1100"],
        "ar": accounts["1300"],
        "vat_receivable": accounts["1450"],
        "vat_payable": accounts["1530"],
        "ap": accounts["1600"],
        "private": accounts["1700"],
        "travel": accounts["4000"],
        "depreciation": accounts["4500"],
        "opex": accounts["4600"],
        "sales": accounts["8000"],
        "sales_low": accounts["8100"],
    }
