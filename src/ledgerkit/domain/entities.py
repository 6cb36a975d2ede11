"""Domain model entities for ledgerkit.

These are pure data classes representing business concepts, independent of
database schema. Amounts on the ledger are signed integer cents; manually
entered transactions keep a Decimal amount.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, Union


class AccountKind(str, Enum):
    """Kind of account."""

    CHECKING = "checking"
    CREDIT = "credit"
    CASH = "cash"
    INVESTMENT = "investment"


class EntryType(str, Enum):
    """Classification of a ledger entry."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Direction(str, Enum):
    """Money flow direction of a ledger entry."""

    IN = "in"
    OUT = "out"


class ImportKind(str, Enum):
    """Source kind of an import batch."""

    BANK_STATEMENT = "BANK_STATEMENT"
    CC_STATEMENT = "CC_STATEMENT"


class LinkKind(str, Enum):
    """How a transfer link was produced."""

    AUTO = "auto"
    CARD_PAYMENT = "card_payment"
    SUGGESTED = "suggested"


class LinkStatus(str, Enum):
    """Review status of a transfer link."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class RowStatus(str, Enum):
    """Outcome status of a normalized statement row."""

    OK = "ok"
    IGNORED = "ignored"
    ERROR = "error"


class RowReason(str, Enum):
    """Reason codes attached to non-ok statement rows."""

    MISSING_DATE = "missing_date"
    MISSING_DESCRIPTION = "missing_description"
    MISSING_AMOUNT = "missing_amount"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_DATE = "invalid_date"
    IGNORED_BALANCE_ROW = "ignored_balance_row"
    ZERO_AMOUNT = "zero_amount"
    INVALID_NORMALIZED_ROW = "invalid_normalized_row"
    ROW_PARSE_ERROR = "row_parse_error"


class Granularity(str, Enum):
    """Bucket size for time series."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class Institution:
    """Financial institution domain entity."""

    id: int
    name: str
    slug: str
    created_at: datetime


@dataclass(frozen=True)
class Account:
    """Account domain entity."""

    id: int
    owner_id: int
    name: str
    kind: AccountKind
    currency: str
    institution_id: Optional[int]
    parent_account_id: Optional[int]
    created_at: datetime

    @property
    def is_credit(self) -> bool:
        return self.kind == AccountKind.CREDIT


@dataclass(frozen=True)
class Category:
    """Category domain entity."""

    id: int
    owner_id: int
    name: str
    created_at: datetime


@dataclass(frozen=True)
class ImportBatch:
    """Import batch domain entity."""

    id: int
    owner_id: int
    institution_id: int
    kind: ImportKind
    file_name: str
    file_hash: str
    imported_count: int
    duplicate_count: int
    created_at: datetime


@dataclass(frozen=True)
class LedgerEntry:
    """Ledger entry domain entity."""

    id: int
    owner_id: int
    account_id: int
    posted_at: date
    amount_cents: int
    type: EntryType
    original_type: EntryType
    direction: Direction
    description: str
    normalized_description: str
    merchant_key: str
    category_id: Optional[int]
    external_ref: Optional[str]
    fingerprint: Optional[str]
    transfer_link_id: Optional[int]
    import_batch_id: Optional[int]
    balance_after_cents: Optional[int]
    fee_adjusted: bool
    excluded: bool
    created_at: datetime

    @property
    def abs_cents(self) -> int:
        return abs(self.amount_cents)


@dataclass(frozen=True)
class TransferLink:
    """Transfer link domain entity."""

    id: int
    owner_id: int
    out_entry_id: int
    in_entry_id: int
    kind: LinkKind
    status: LinkStatus
    confidence: Optional[float]
    fee_delta_cents: int
    created_at: datetime


@dataclass(frozen=True)
class Transaction:
    """Manually entered transaction domain entity."""

    id: int
    owner_id: int
    account_id: int
    date: date
    amount: Decimal
    description: Optional[str]
    category_id: Optional[int]
    type: EntryType
    transfer_group: Optional[str]
    excluded: bool
    notes: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class RecurringSignal:
    """Merchant charge that looks periodic. Derived, never persisted."""

    merchant_key: str
    label: str
    estimated_monthly_cost_cents: int
    next_expected_date: date
    occurrences: int
    last_seen: date


# Normalizer types


@dataclass(frozen=True)
class ColumnMapping:
    """Which statement column feeds each canonical field."""

    date: Optional[str] = None
    description: Optional[str] = None
    history: Optional[str] = None
    amount: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    type: Optional[str] = None
    account: Optional[str] = None
    balance_after: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def has_amount_source(self) -> bool:
        return self.amount is not None or self.debit is not None or self.credit is not None


@dataclass(frozen=True)
class ParsedStatement:
    """Tabular view of a statement file after decoding and header detection."""

    columns: tuple[str, ...]
    rows: tuple[dict[str, str], ...]
    delimiter: str
    encoding: str
    header_index: int


@dataclass(frozen=True)
class CanonicalRow:
    """A statement row reduced to the fields the ledger needs."""

    posted_at: date
    description: str
    normalized_description: str
    amount_cents: int
    type: EntryType
    merchant_key: str
    account_hint: Optional[str] = None
    external_id: Optional[str] = None
    balance_after_cents: Optional[int] = None

    @property
    def direction(self) -> Direction:
        return Direction.IN if self.amount_cents >= 0 else Direction.OUT


@dataclass(frozen=True)
class RowOk:
    """Row normalized successfully."""

    row: CanonicalRow
    status = RowStatus.OK


@dataclass(frozen=True)
class RowIgnored:
    """Row skipped on purpose (blank fields, balance lines, zero amounts)."""

    reason: RowReason
    message: str
    status = RowStatus.IGNORED


@dataclass(frozen=True)
class RowError:
    """Row that could not be normalized."""

    reason: RowReason
    message: str
    status = RowStatus.ERROR


RowOutcome = Union[RowOk, RowIgnored, RowError]


@dataclass(frozen=True)
class RowDiagnostic:
    """Outcome for one input row. ``line`` is 1-based within the data rows."""

    line: int
    outcome: RowOutcome
    raw: dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> RowStatus:
        return self.outcome.status

    @property
    def reason(self) -> Optional[RowReason]:
        return getattr(self.outcome, "reason", None)


@dataclass(frozen=True)
class NormalizationSummary:
    """Row counts by status and by reason."""

    total_rows: int
    valid_rows: int
    ignored_rows: int
    error_rows: int
    reasons: dict[str, int]


@dataclass(frozen=True)
class NormalizationReport:
    """Canonical rows plus one diagnostic per input row."""

    rows: tuple[CanonicalRow, ...]
    diagnostics: tuple[RowDiagnostic, ...]
    summary: NormalizationSummary
    mapping: ColumnMapping


# Import types


@dataclass(frozen=True)
class ImportRow:
    """One row handed to the ledger writer."""

    posted_at: date
    amount_cents: int
    description: str
    direction: Optional[Direction] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    external_id: Optional[str] = None
    balance_after_cents: Optional[int] = None


@dataclass(frozen=True)
class ImportRequest:
    """A batch of rows coming from one statement file."""

    owner_id: int
    kind: ImportKind
    file_name: str
    file_hash: str
    rows: tuple[ImportRow, ...]
    institution_id: Optional[int] = None
    institution_name: Optional[str] = None
    default_account_id: Optional[int] = None
    default_credit_card_account_id: Optional[int] = None


@dataclass(frozen=True)
class ImportResult:
    """Counts produced by one import."""

    batch_id: Optional[int]
    imported: int
    deduped: int
    skipped: int
    duplicate_import_source: bool = False


@dataclass(frozen=True)
class StatementImport:
    """Result of importing a raw statement file."""

    result: ImportResult
    report: NormalizationReport


@dataclass(frozen=True)
class SyncResult:
    """Counts produced by mirroring manual transactions into the ledger."""

    created: int
    updated: int
    attached: int
    linked: int


# Matcher types


@dataclass(frozen=True)
class MatchResult:
    """Counts produced by one matcher run."""

    matched: int
    suggested: int


@dataclass(frozen=True)
class TransferSuggestion:
    """A pending transfer link awaiting manual review."""

    link: TransferLink
    out_entry: LedgerEntry
    in_entry: LedgerEntry
    label: str

    @property
    def fee_delta_cents(self) -> int:
        return self.link.fee_delta_cents


# Metrics types


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range with the window it is compared against."""

    start: date
    end: date
    previous_start: date
    previous_end: date
    month_anchored: bool

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class MetricsFilters:
    """Optional filters applied to every aggregate view."""

    account_id: Optional[int] = None
    entry_type: Optional[EntryType] = None
    category_id: Optional[int] = None
    query: Optional[str] = None
    excluded_only: bool = False


@dataclass(frozen=True)
class PeriodComparison:
    """Current period against the previous window."""

    previous_start: date
    previous_end: date
    previous_income: int
    previous_expense: int
    previous_net: int
    previous_excluded_total: int
    delta: int
    percent: float


@dataclass(frozen=True)
class DashboardSummary:
    """Income/expense totals for a range, in cents."""

    start: date
    end: date
    total_income: int
    total_expense: int
    net: int
    excluded_total: int
    previous_period_comparison: PeriodComparison


@dataclass(frozen=True)
class CategoryTotal:
    """Expense total for one category."""

    category_id: Optional[int]
    name: str
    total: int
    share: float
    previous_total: int
    variation_percent: float


@dataclass(frozen=True)
class TrendPoint:
    """One bucket of the income/expense series."""

    bucket_start: date
    income: int
    expense: int
    net: int


@dataclass(frozen=True)
class PatrimonyPoint:
    """Running balance at the end of a bucket."""

    bucket_start: date
    change: int
    balance: int


@dataclass(frozen=True)
class AccountBalance:
    """Signed balance of an account, in cents."""

    account: Account
    balance: int
