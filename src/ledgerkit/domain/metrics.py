"""Metrics aggregation domain service.

Aggregates run over the reconciled ledger in Python. Two rules apply to
every view: excluded entries never count as income or expense (they are
tracked as ``excluded_total``), and transfer entries never count as income or
expense (they only move balances between accounts).
"""

import calendar
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from ledgerkit.database.base import Database
from ledgerkit.domain.entities import (
    AccountBalance,
    CategoryTotal,
    DashboardSummary,
    DateRange,
    EntryType,
    Granularity,
    LedgerEntry,
    MetricsFilters,
    PatrimonyPoint,
    PeriodComparison,
    TrendPoint,
)
from ledgerkit.domain.errors import ValidationError
from ledgerkit.utils.text import normalize_text

logger = logging.getLogger(__name__)


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def resolve_date_range(
    start: Optional[date] = None, end: Optional[date] = None, today: Optional[date] = None
) -> DateRange:
    """Resolve a requested range and the window it is compared against.

    Without dates the range is the current calendar month up to today. A
    range that starts on the first of a month and ends in the same month is
    month-anchored: it is compared with the same days of the previous month
    (the whole previous month when the range covers a whole month). Any other
    range is compared with the window of equal length right before it.

    Raises:
        ValidationError: If start is after end
    """
    today = today or date.today()
    if start is None and end is None:
        start, end = today.replace(day=1), today
    elif start is None:
        start = end.replace(day=1)
    elif end is None:
        if (start.year, start.month) == (today.year, today.month):
            end = max(start, today)
        else:
            end = start.replace(day=_last_day(start.year, start.month))
    if start > end:
        raise ValidationError(f"Start date {start} is after end date {end}")

    month_anchored = start.day == 1 and (start.year, start.month) == (end.year, end.month)
    if month_anchored:
        previous_start = start - relativedelta(months=1)
        previous_last = _last_day(previous_start.year, previous_start.month)
        if end.day == _last_day(end.year, end.month):
            previous_end = previous_start.replace(day=previous_last)
        else:
            previous_end = previous_start.replace(day=min(end.day, previous_last))
    else:
        length = (end - start).days + 1
        previous_end = start - timedelta(days=1)
        previous_start = start - timedelta(days=length)

    return DateRange(
        start=start,
        end=end,
        previous_start=previous_start,
        previous_end=previous_end,
        month_anchored=month_anchored,
    )


def variation_percent(current: int, previous: int) -> float:
    """Percent change from previous to current; 0 or 100 when previous is 0."""
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return round((current - previous) / abs(previous) * 100, 2)


def bucket_start(day: date, granularity: Granularity) -> date:
    """First day of the bucket holding ``day`` (weeks start on Monday)."""
    if granularity == Granularity.DAY:
        return day
    if granularity == Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def iter_buckets(start: date, end: date, granularity: Granularity) -> list[date]:
    """Every bucket start covering the range, in order."""
    buckets = []
    current = bucket_start(start, granularity)
    while current <= end:
        buckets.append(current)
        if granularity == Granularity.DAY:
            current += timedelta(days=1)
        elif granularity == Granularity.WEEK:
            current += timedelta(weeks=1)
        else:
            current += relativedelta(months=1)
    return buckets


def counts_as_flow(entry: LedgerEntry) -> bool:
    """Whether an entry contributes to income or expense."""
    return not entry.excluded and entry.type != EntryType.TRANSFER


def flow_totals(entries: Iterable[LedgerEntry]) -> tuple[int, int, int]:
    """Return (income, expense, excluded_total) in cents; expense is positive."""
    income = 0
    expense = 0
    excluded_total = 0
    for entry in entries:
        if entry.type == EntryType.TRANSFER:
            continue
        if entry.excluded:
            excluded_total += entry.abs_cents
        elif entry.type == EntryType.INCOME:
            income += entry.amount_cents
        else:
            expense += -entry.amount_cents
    return income, expense, excluded_total


def balance_delta(entry: LedgerEntry) -> int:
    """Signed effect of an entry on the running balance."""
    if entry.excluded:
        return 0
    if entry.type == EntryType.INCOME:
        return entry.abs_cents
    if entry.type == EntryType.EXPENSE:
        return -entry.abs_cents
    return entry.amount_cents


class MetricsService:
    """Service computing summaries, trends and balances."""

    def __init__(self, db: Database):
        """Initialize metrics service.

        Args:
            db: Database instance
        """
        self.db = db

    def _entries(
        self,
        owner_id: int,
        start: Optional[date],
        end: Optional[date],
        filters: Optional[MetricsFilters],
    ) -> list[LedgerEntry]:
        filters = filters or MetricsFilters()
        entries = self.db.list_ledger_entries(
            owner_id, start_date=start, end_date=end, account_id=filters.account_id
        )
        query = normalize_text(filters.query) if filters.query else ""
        result = []
        for entry in entries:
            if filters.entry_type is not None and entry.type != filters.entry_type:
                continue
            if filters.category_id is not None and entry.category_id != filters.category_id:
                continue
            if filters.excluded_only and not entry.excluded:
                continue
            if query and query not in entry.normalized_description:
                continue
            result.append(entry)
        return result

    def summary(
        self,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        filters: Optional[MetricsFilters] = None,
        today: Optional[date] = None,
    ) -> DashboardSummary:
        """Income, expense and net for a range, with the previous period.

        Args:
            owner_id: Owner of the ledger
            start: Range start (defaults to the first of the current month)
            end: Range end (defaults to today)
            filters: Optional account, type, category, text and excluded filters
            today: Reference date for the default range

        Returns:
            DashboardSummary with amounts in cents
        """
        date_range = resolve_date_range(start, end, today)
        income, expense, excluded_total = flow_totals(
            self._entries(owner_id, date_range.start, date_range.end, filters)
        )
        prev_income, prev_expense, prev_excluded = flow_totals(
            self._entries(owner_id, date_range.previous_start, date_range.previous_end, filters)
        )
        net = income - expense
        previous_net = prev_income - prev_expense
        logger.debug(
            "Summary for owner %s %s..%s: income=%d expense=%d excluded=%d",
            owner_id,
            date_range.start,
            date_range.end,
            income,
            expense,
            excluded_total,
        )

        return DashboardSummary(
            start=date_range.start,
            end=date_range.end,
            total_income=income,
            total_expense=expense,
            net=net,
            excluded_total=excluded_total,
            previous_period_comparison=PeriodComparison(
                previous_start=date_range.previous_start,
                previous_end=date_range.previous_end,
                previous_income=prev_income,
                previous_expense=prev_expense,
                previous_net=previous_net,
                previous_excluded_total=prev_excluded,
                delta=net - previous_net,
                percent=variation_percent(net, previous_net),
            ),
        )

    def category_breakdown(
        self,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        filters: Optional[MetricsFilters] = None,
        today: Optional[date] = None,
    ) -> list[CategoryTotal]:
        """Expense per category, largest first, with previous-period variation."""
        date_range = resolve_date_range(start, end, today)

        def expense_by_category(entries: list[LedgerEntry]) -> dict[Optional[int], int]:
            totals: dict[Optional[int], int] = defaultdict(int)
            for entry in entries:
                if counts_as_flow(entry) and entry.type == EntryType.EXPENSE:
                    totals[entry.category_id] += entry.abs_cents
            return totals

        current = expense_by_category(self._entries(owner_id, date_range.start, date_range.end, filters))
        previous = expense_by_category(
            self._entries(owner_id, date_range.previous_start, date_range.previous_end, filters)
        )
        names = {category.id: category.name for category in self.db.list_categories(owner_id)}
        grand_total = sum(current.values())

        breakdown = [
            CategoryTotal(
                category_id=category_id,
                name=names.get(category_id, "Uncategorized") if category_id is not None else "Uncategorized",
                total=total,
                share=round(total / grand_total * 100, 2) if grand_total else 0.0,
                previous_total=previous.get(category_id, 0),
                variation_percent=variation_percent(total, previous.get(category_id, 0)),
            )
            for category_id, total in current.items()
        ]
        breakdown.sort(key=lambda item: (-item.total, item.name))
        return breakdown

    def trends(
        self,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        granularity: Granularity = Granularity.DAY,
        filters: Optional[MetricsFilters] = None,
        today: Optional[date] = None,
    ) -> list[TrendPoint]:
        """Income and expense per bucket, zero-filled over the whole range.

        The series always has one point per bucket in the range, even when
        there is no activity at all.
        """
        date_range = resolve_date_range(start, end, today)
        granularity = Granularity(granularity)
        buckets = iter_buckets(date_range.start, date_range.end, granularity)
        income: dict[date, int] = dict.fromkeys(buckets, 0)
        expense: dict[date, int] = dict.fromkeys(buckets, 0)

        for entry in self._entries(owner_id, date_range.start, date_range.end, filters):
            if not counts_as_flow(entry):
                continue
            key = bucket_start(entry.posted_at, granularity)
            if entry.type == EntryType.INCOME:
                income[key] += entry.amount_cents
            else:
                expense[key] += -entry.amount_cents

        return [
            TrendPoint(
                bucket_start=bucket,
                income=income[bucket],
                expense=expense[bucket],
                net=income[bucket] - expense[bucket],
            )
            for bucket in buckets
        ]

    def patrimony(
        self,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        granularity: Granularity = Granularity.DAY,
        filters: Optional[MetricsFilters] = None,
        today: Optional[date] = None,
    ) -> list[PatrimonyPoint]:
        """Running balance per bucket, seeded with everything before the range.

        Transfers move money between accounts and cancel out in the aggregate;
        a confirmed fee difference is the only part that remains. Only the
        account filter applies.
        """
        account_id = filters.account_id if filters else None
        date_range = resolve_date_range(start, end, today)
        granularity = Granularity(granularity)
        buckets = iter_buckets(date_range.start, date_range.end, granularity)

        baseline = sum(
            balance_delta(entry)
            for entry in self.db.list_ledger_entries(
                owner_id, end_date=date_range.start - timedelta(days=1), account_id=account_id
            )
        )
        changes: dict[date, int] = dict.fromkeys(buckets, 0)
        for entry in self.db.list_ledger_entries(
            owner_id, start_date=date_range.start, end_date=date_range.end, account_id=account_id
        ):
            changes[bucket_start(entry.posted_at, granularity)] += balance_delta(entry)

        points = []
        balance = baseline
        for bucket in buckets:
            balance += changes[bucket]
            points.append(PatrimonyPoint(bucket_start=bucket, change=changes[bucket], balance=balance))
        return points

    def account_balances(self, owner_id: int, as_of: Optional[date] = None) -> list[AccountBalance]:
        """Signed balance of every account, including transfers."""
        totals: dict[int, int] = defaultdict(int)
        for entry in self.db.list_ledger_entries(owner_id, end_date=as_of):
            if not entry.excluded:
                totals[entry.account_id] += entry.amount_cents
        return [
            AccountBalance(account=account, balance=totals.get(account.id, 0))
            for account in self.db.list_accounts(owner_id)
        ]

    def cash_balance(self, owner_id: int, as_of: Optional[date] = None) -> int:
        """Total balance of the non-credit accounts."""
        return sum(item.balance for item in self.account_balances(owner_id, as_of) if not item.account.is_credit)

    def card_debt(self, owner_id: int, as_of: Optional[date] = None) -> int:
        """Outstanding debt on credit accounts, as a positive number."""
        return -sum(item.balance for item in self.account_balances(owner_id, as_of) if item.account.is_credit)
