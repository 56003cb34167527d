import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .exceptions import AlreadyPostedError
from .ledger_services import PostingLine, post_balanced_entry
from .models import Company, FixedAsset, JournalEntry, MileageLog, SystemAccountRole
from .system_accounts import resolve
from .utils import quantize_money

logger = logging.getLogger(__name__)


def _depreciation_key(asset, period_date) -> str:
    return f"depreciation:{asset.pk}:{period_date:%Y-%m}"


def _months_posted(asset) -> int:
    return JournalEntry.objects.filter(
        company_id=asset.company_id,
        type=JournalEntry.EntryType.DEPRECIATION,
        posting_key__startswith=f"depreciation:{asset.pk}:",
        reversed_by__isnull=True,
    ).count()


@transaction.atomic
def run_depreciation(asset: FixedAsset, *, period_date=None) -> JournalEntry:
    """
    Post one month of straight-line depreciation.

    Dr the depreciation expense account, Cr the balance-sheet asset account.
    A month that is already covered by ``last_depreciation_date`` is refused,
    as is an asset with nothing left to depreciate. The last month takes
    whatever rounding remainder is left.
    """
    asset = (
        FixedAsset.objects.select_for_update()
        .select_related("company", "depreciation_account", "balance_sheet_account")
        .get(pk=asset.pk)
    )
    period_date = period_date or timezone.localdate()

    if asset.status == FixedAsset.Status.FULLY_DEPRECIATED or asset.remaining_depreciation <= 0:
        raise AlreadyPostedError(f"Asset '{asset.name}' is already fully depreciated.")
    last = asset.last_depreciation_date
    if last is not None and (last.year, last.month) >= (period_date.year, period_date.month):
        raise AlreadyPostedError(
            f"Asset '{asset.name}' is already depreciated through {last:%Y-%m}."
        )
    if (period_date.year, period_date.month) < (asset.purchase_date.year, asset.purchase_date.month):
        raise ValidationError("Depreciation period lies before the purchase date.")

    remaining = asset.remaining_depreciation
    if _months_posted(asset) + 1 >= asset.lifespan_months:
        amount = remaining
    else:
        amount = min(asset.monthly_depreciation, remaining)

    entry = post_balanced_entry(
        company=asset.company,
        entry_date=period_date,
        description=f"Depreciation {asset.name} {period_date:%Y-%m}",
        entry_type=JournalEntry.EntryType.DEPRECIATION,
        lines=[
            PostingLine.debit(asset.depreciation_account, amount, "Afschrijving"),
            PostingLine.credit(asset.balance_sheet_account, amount, asset.name),
        ],
        status=JournalEntry.Status.FINAL,
        posting_key=_depreciation_key(asset, period_date),
    )

    asset.last_depreciation_date = period_date
    asset.accumulated_depreciation = quantize_money(asset.accumulated_depreciation + amount)
    if asset.remaining_depreciation <= 0:
        asset.status = FixedAsset.Status.FULLY_DEPRECIATED
    asset.save(update_fields=["last_depreciation_date", "accumulated_depreciation", "status"])
    return entry


@transaction.atomic
def book_mileage(company, *, entry_date=None) -> JournalEntry:
    """
    Reimburse every unbooked trip in one entry: total km x the company rate,
    Dr travel costs, Cr private. All included logs point at that entry.
    """
    logs = list(
        MileageLog.objects.select_for_update()
        .filter(company=company, is_booked=False)
        .order_by("trip_date", "id")
    )
    if not logs:
        raise AlreadyPostedError("There are no unbooked mileage logs.")

    rate = Company.objects.values_list("mileage_rate", flat=True).get(pk=company.pk)
    total_km = sum((log.distance_km for log in logs), Decimal("0"))
    amount = quantize_money(total_km * rate)
    if amount <= Decimal("0.00"):
        raise ValidationError("Mileage total is zero; nothing to reimburse.")

    travel_costs = resolve(company, SystemAccountRole.TRAVEL_COSTS)
    private = resolve(company, SystemAccountRole.PRIVATE)
    log_ids = [log.pk for log in logs]

    entry = post_balanced_entry(
        company=company,
        entry_date=entry_date or timezone.localdate(),
        description=f"Mileage reimbursement: {total_km} km",
        entry_type=JournalEntry.EntryType.MILEAGE,
        lines=[
            PostingLine.debit(travel_costs, amount, f"{total_km} km x {rate}"),
            PostingLine.credit(private, amount, "Private car use"),
        ],
        status=JournalEntry.Status.FINAL,
        posting_key=f"mileage:{min(log_ids)}-{max(log_ids)}:{len(log_ids)}",
    )

    MileageLog.objects.filter(pk__in=log_ids).update(is_booked=True, journal_entry=entry)
    logger.info("Booked %s mileage logs (%s km) into entry %s", len(log_ids), total_km, entry.pk)
    return entry
