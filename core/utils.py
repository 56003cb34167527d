import re
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")

_WHITESPACE_RE = re.compile(r"\s+")


def quantize_money(value) -> Decimal:
    """Round a money value to cents, half-up. Accepts Decimal, int or str."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a money amount: {value!r}") from exc
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def truncate(text: str, limit: int) -> str:
    text = text or ""
    return text[:limit]


def get_owned_company(user, company_id):
    """
    Return the Company with ``company_id`` if ``user`` owns it, else None.

    The company is always passed explicitly; there is no session-wide
    "current company".
    """
    if not user or not getattr(user, "is_authenticated", False):
        return None
    from .models import Company  # local import to avoid circular deps

    qs = Company.objects.filter(pk=company_id)
    if not user.is_superuser:
        qs = qs.filter(owner_user=user)
    return qs.first()
