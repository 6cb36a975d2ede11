"""Recurring charge detection."""

import logging
from collections import defaultdict
from datetime import date
from statistics import median
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from ledgerkit.config import DEFAULT_SETTINGS, ReconciliationSettings
from ledgerkit.database.base import Database
from ledgerkit.domain.entities import EntryType, LedgerEntry, RecurringSignal
from ledgerkit.utils.text import build_merchant_key, has_installment_marker

logger = logging.getLogger(__name__)


def detect_recurring(
    entries: Iterable[LedgerEntry],
    as_of: Optional[date] = None,
    limit: Optional[int] = None,
    settings: ReconciliationSettings = DEFAULT_SETTINGS,
) -> list[RecurringSignal]:
    """Flag merchants whose expenses look like a monthly charge.

    Expense entries are grouped by merchant key; installments of a split
    purchase are ignored. A merchant qualifies with at least two charges in
    two different months that sit close to the median amount and the median
    day of month.

    Args:
        entries: Ledger entries to inspect
        as_of: Ignore entries posted after this date
        limit: Maximum number of signals to return
        settings: Amount and day tolerances

    Returns:
        Signals sorted by estimated monthly cost, highest first
    """
    groups: dict[str, list[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        if entry.type != EntryType.EXPENSE or entry.excluded:
            continue
        if as_of is not None and entry.posted_at > as_of:
            continue
        if has_installment_marker(entry.description):
            continue
        key = entry.merchant_key or build_merchant_key(entry.description)
        groups[key].append(entry)

    signals = []
    for merchant_key, items in groups.items():
        if len(items) < 2:
            continue
        if len({(item.posted_at.year, item.posted_at.month) for item in items}) < 2:
            continue

        median_amount = median(item.abs_cents for item in items)
        median_day = median(item.posted_at.day for item in items)
        consistent = [
            item
            for item in items
            if abs(item.abs_cents - median_amount) <= median_amount * settings.recurring_amount_tolerance
            and abs(item.posted_at.day - median_day) <= settings.recurring_day_tolerance
        ]
        if len(consistent) < 2:
            continue
        if len({(item.posted_at.year, item.posted_at.month) for item in consistent}) < 2:
            continue

        latest = max(consistent, key=lambda item: (item.posted_at, item.id))
        signals.append(
            RecurringSignal(
                merchant_key=merchant_key,
                label=latest.description,
                estimated_monthly_cost_cents=int(round(median_amount)),
                # relativedelta clamps to the last day of shorter months
                next_expected_date=latest.posted_at + relativedelta(months=1),
                occurrences=len(consistent),
                last_seen=latest.posted_at,
            )
        )

    signals.sort(key=lambda signal: (-signal.estimated_monthly_cost_cents, signal.merchant_key))
    if limit is not None:
        signals = signals[:limit]
    return signals


class RecurringService:
    """Service running recurring detection over an owner's ledger."""

    def __init__(self, db: Database, settings: Optional[ReconciliationSettings] = None):
        self.db = db
        self.settings = settings or DEFAULT_SETTINGS

    def detect(
        self,
        owner_id: int,
        as_of: Optional[date] = None,
        limit: Optional[int] = None,
        lookback_months: int = 12,
    ) -> list[RecurringSignal]:
        """Detect recurring charges over the last ``lookback_months`` months."""
        as_of = as_of or date.today()
        entries = self.db.list_ledger_entries(
            owner_id,
            start_date=as_of - relativedelta(months=lookback_months),
            end_date=as_of,
            entry_types=[EntryType.EXPENSE],
            include_excluded=False,
        )
        signals = detect_recurring(entries, as_of=as_of, limit=limit, settings=self.settings)
        logger.info("Detected %d recurring charges for owner %s", len(signals), owner_id)
        return signals
