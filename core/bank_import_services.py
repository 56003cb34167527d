import hashlib
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import LedgerError
from .models import BankAccount, BankStatementImport, BankTransaction
from .services.bank_rules import apply_rules
from .services.statement_parsers import RawTransaction, parse_statement
from .utils import normalize_whitespace, quantize_money

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    new_transactions: int = 0
    duplicates: int = 0
    skipped: int = 0
    matched: int = 0
    errors: List[str] = field(default_factory=list)
    transaction_ids: List[int] = field(default_factory=list)
    statement_import_id: Optional[int] = None

    def as_dict(self):
        return {
            "new_transactions": self.new_transactions,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "matched": self.matched,
            "errors": list(self.errors),
            "transaction_ids": list(self.transaction_ids),
            "statement_import_id": self.statement_import_id,
        }


def normalize_description(description: str) -> str:
    return normalize_whitespace(description).lower()


def transaction_fingerprint(bank_account_id, txn_date, amount, description) -> str:
    """
    Stable identity of an imported movement: account, date, amount to the
    cent and the normalized description. Exact match only.
    """
    description_hash = hashlib.sha256(
        normalize_description(description).encode("utf-8")
    ).hexdigest()
    raw = f"{bank_account_id}|{txn_date.isoformat()}|{quantize_money(amount)}|{description_hash}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _missing_fields(raw: RawTransaction) -> List[str]:
    missing = []
    if getattr(raw, "transaction_date", None) is None:
        missing.append("date")
    if getattr(raw, "amount", None) is None:
        missing.append("amount")
    if not (getattr(raw, "description", "") or "").strip():
        missing.append("description")
    return missing


def import_transactions(
    transactions: Iterable[RawTransaction],
    bank_account: BankAccount,
    *,
    statement_import: Optional[BankStatementImport] = None,
) -> ImportResult:
    """
    Persist canonical transactions, skipping ones already present.

    Not atomic across the batch: every row gets its own savepoint, so one bad
    row is recorded in ``errors`` and the rest still import. The unique
    (bank_account, fingerprint) constraint decides what counts as a duplicate,
    which keeps overlapping concurrent imports from inserting twice.
    """
    result = ImportResult(
        statement_import_id=statement_import.pk if statement_import is not None else None
    )

    for position, raw in enumerate(transactions, start=1):
        missing = _missing_fields(raw)
        if missing:
            result.errors.append(f"Row {position}: missing {', '.join(missing)}")
            continue

        fingerprint = transaction_fingerprint(
            bank_account.pk, raw.transaction_date, raw.amount, raw.description
        )
        try:
            with transaction.atomic():
                obj, created = BankTransaction.objects.get_or_create(
                    bank_account=bank_account,
                    fingerprint=fingerprint,
                    defaults={
                        "transaction_date": raw.transaction_date,
                        "description": raw.description,
                        "amount": quantize_money(raw.amount),
                        "contra_account": raw.contra_account,
                        "contra_name": raw.contra_name,
                        "reference": raw.reference,
                        "statement_import": statement_import,
                    },
                )
        except IntegrityError as exc:
            # get_or_create already retries the lookup once; anything left is a data problem
            if BankTransaction.objects.filter(bank_account=bank_account, fingerprint=fingerprint).exists():
                result.duplicates += 1
            else:
                result.errors.append(f"Row {position}: {exc}")
            continue
        except (ValueError, TypeError) as exc:
            result.errors.append(f"Row {position}: {exc}")
            continue

        if created:
            result.new_transactions += 1
            result.transaction_ids.append(obj.pk)
        else:
            result.duplicates += 1

    logger.info(
        "Imported into bank account %s: %s new, %s duplicates, %s errors",
        bank_account.pk,
        result.new_transactions,
        result.duplicates,
        len(result.errors),
    )
    return result


def import_statement(
    bank_account: BankAccount,
    data: bytes,
    filename: str = "",
    *,
    declared_format: Optional[str] = None,
    auto_match: bool = True,
    uploaded_by=None,
) -> ImportResult:
    """
    Parse a statement file, store the new transactions and offer each of them
    to the bank rules. Parse failures are recorded on the import and re-raised.
    """
    statement_import = BankStatementImport.objects.create(
        company=bank_account.company,
        bank_account=bank_account,
        uploaded_by=uploaded_by,
        file_name=(filename or "")[:255],
        status=BankStatementImport.ImportStatus.PROCESSING,
    )

    try:
        parsed = parse_statement(data, filename=filename, declared_format=declared_format)
    except LedgerError as exc:
        statement_import.status = BankStatementImport.ImportStatus.FAILED
        statement_import.error_message = str(exc)
        statement_import.skipped_count = getattr(exc, "skipped", 0)
        statement_import.save(update_fields=["status", "error_message", "skipped_count"])
        logger.warning("Statement import %s failed: %s", statement_import.pk, exc)
        raise

    result = import_transactions(parsed.transactions, bank_account, statement_import=statement_import)
    result.skipped = parsed.skipped

    if auto_match and result.transaction_ids:
        if bank_account.ledger_account_id is None:
            logger.warning(
                "Bank account %s has no ledger account; skipping rule matching", bank_account.pk
            )
        else:
            new_rows = (
                BankTransaction.objects.filter(pk__in=result.transaction_ids)
                .select_related("bank_account__company")
                .order_by("transaction_date", "id")
            )
            result.matched = apply_rules(new_rows, bank_account.company)

    statement_import.file_format = parsed.format
    statement_import.status = BankStatementImport.ImportStatus.COMPLETED
    statement_import.new_count = result.new_transactions
    statement_import.duplicate_count = result.duplicates
    statement_import.skipped_count = result.skipped
    statement_import.error_count = len(result.errors)
    statement_import.matched_count = result.matched
    statement_import.error_message = "\n".join(result.errors)[:5000]
    statement_import.save()

    bank_account.last_imported_at = timezone.now()
    bank_account.save(update_fields=["last_imported_at"])
    return result
