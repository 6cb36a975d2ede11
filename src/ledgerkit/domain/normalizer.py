"""Statement row normalizer.

Turns a raw bank or card export into canonical rows. The pipeline is:
decode (encoding detection plus mojibake repair), delimiter detection,
quote-aware tokenizing, header detection past banner rows, column naming,
mapping suggestion and finally per-row analysis. OFX files skip the table
steps and yield one row per transaction. Every input row ends up with
exactly one diagnostic; only ``ok`` rows reach the ledger.
"""

import csv
import io
import logging
import math
import re
from collections import Counter
from decimal import Decimal
from typing import Optional

from ledgerkit.config import DEFAULT_SETTINGS, ReconciliationSettings
from ledgerkit.domain.entities import (
    CanonicalRow,
    ColumnMapping,
    EntryType,
    NormalizationReport,
    NormalizationSummary,
    ParsedStatement,
    RowDiagnostic,
    RowError,
    RowIgnored,
    RowOk,
    RowOutcome,
    RowReason,
    RowStatus,
)
from ledgerkit.utils.amount_parser import parse_amount, to_cents
from ledgerkit.utils.date_parser import looks_like_date, parse_statement_date
from ledgerkit.utils.text import (
    build_merchant_key,
    decode_statement,
    normalize_key,
    normalize_text,
)

logger = logging.getLogger(__name__)

DELIMITER_CANDIDATES = (",", ";", "\t", "|")
DELIMITER_SAMPLE_ROWS = 25

HEADER_KEYWORDS = (
    "DATA",
    "DATE",
    "LANC",
    "POSTED",
    "DESCR",
    "HIST",
    "MEMO",
    "DETAIL",
    "VALOR",
    "AMOUNT",
    "DEBIT",
    "CREDIT",
    "CONTA",
    "ACCOUNT",
    "TIPO",
    "TYPE",
    "SALDO",
    "BALANCE",
)

AMOUNT_LIKE = re.compile(r"^[-+(]?\s*(?:R\$|US\$|\$)?\s*\d[\d.,]*[.,]\d{2}\)?-?$")

BALANCE_ROW_PATTERN = re.compile(
    r"\b(SALDO\s*(ANTERIOR|FINAL|DISPONIVEL|DO DIA|EM CONTA|TOTAL)|TOTAL\s*(DO DIA|GERAL)|RESUMO|"
    r"(OPENING|CLOSING|PREVIOUS|AVAILABLE|ENDING)\s*BALANCE|BALANCE\s*(FORWARD|BROUGHT)|SUMMARY)\b"
)

DEBIT_TYPE_WORDS = ("DEB", "SAIDA", "DESP", "WITHDRAW", "PAGAMENTO ENVIADO")
CREDIT_TYPE_WORDS = ("CRED", "ENTRADA", "RECE", "DEPOSIT")

# Alias lists are normalized keys: lowercase, no diacritics, single spaces
MAPPING_ALIASES: dict[str, tuple[str, ...]] = {
    "date": (
        "data",
        "date",
        "data lancamento",
        "data de lancamento",
        "data movimento",
        "data transacao",
        "data da compra",
        "posted date",
        "posting date",
        "transaction date",
        "dt",
    ),
    "amount": ("valor", "amount", "valor rs", "valor r", "value", "quantia", "montante", "valor brl"),
    "debit": ("debito", "debit", "saida", "saidas", "withdrawal", "valor debito", "debit amount"),
    "credit": ("credito", "credit", "entrada", "entradas", "deposit", "valor credito", "credit amount"),
    "balance_after": ("saldo", "balance", "saldo apos", "saldo final", "running balance", "saldo rs"),
    "type": ("tipo", "type", "natureza", "d c", "dc", "tipo transacao", "tipo de transacao"),
    "external_id": (
        "fitid",
        "id",
        "codigo",
        "codigo transacao",
        "documento",
        "numero documento",
        "reference",
        "referencia",
        "transaction id",
    ),
    "account": ("conta", "account", "cartao", "card", "account number", "numero da conta"),
    "description": (
        "descricao",
        "description",
        "estabelecimento",
        "lancamento",
        "memo",
        "payee",
        "details",
        "detalhe",
        "detalhes",
        "titulo",
        "merchant",
    ),
    "history": ("historico", "history", "complemento", "observacao", "notes"),
}

BALANCE_LIKE_KEYS = ("saldo", "balance")
AMOUNT_FIELDS = ("amount", "debit", "credit")

OFX_MARKER = re.compile(r"<(OFX|STMTTRN)>", re.IGNORECASE)
OFX_TRANSACTION = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
OFX_COLUMNS = ("DATE", "DESCRIPTION", "TRNAMT", "FITID", "ACCTID")
OFX_MAPPING = ColumnMapping(
    date="DATE", description="DESCRIPTION", amount="TRNAMT", external_id="FITID", account="ACCTID"
)
OFX_DEFAULT_DESCRIPTION = "Lancamento OFX"


def split_rows(text: str, delimiter: str) -> list[list[str]]:
    """Tokenize delimited text into rows of trimmed cells.

    Quoted fields may contain delimiters and line breaks, and ``""`` inside a
    quoted field is an escaped quote. CR, LF and CRLF all end a row. Rows
    whose cells are all blank are dropped.
    """
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    rows = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def detect_delimiter(sample: str) -> str:
    """Pick the delimiter that splits the sample into the most consistent table.

    Each candidate is scored on the first rows of the sample as
    ``10 * viable_rows + mean_columns - variance``, where a viable row has
    more than one non-empty cell. Falls back to a comma.
    """
    best_delimiter = ","
    best_score = None
    for candidate in DELIMITER_CANDIDATES:
        rows = split_rows(sample, candidate)[:DELIMITER_SAMPLE_ROWS]
        counts = [len(row) for row in rows if sum(1 for cell in row if cell) > 1]
        if not counts:
            continue
        mean = sum(counts) / len(counts)
        variance = sum((count - mean) ** 2 for count in counts) / len(counts)
        score = len(counts) * 10 + mean - variance
        if best_score is None or score > best_score:
            best_delimiter, best_score = candidate, score
    return best_delimiter


def looks_like_amount(value: str) -> bool:
    """Check whether a cell contains something shaped like a money amount."""
    return bool(AMOUNT_LIKE.match((value or "").strip()))


def find_header_index(matrix: list[list[str]], scan_rows: int = 30) -> int:
    """Locate the header row, skipping banner and metadata lines.

    Score per row: non-empty cells + 3 * header keyword hits, minus 2 when
    the row looks like data (has both a date-like and an amount-like cell).
    Rows with fewer than two non-empty cells are not considered.
    """
    best_index = 0
    best_score = None
    for index, row in enumerate(matrix[:scan_rows]):
        cells = [cell for cell in row if cell]
        if len(cells) < 2:
            continue
        hits = 0
        for cell in cells:
            normalized = normalize_text(cell)
            if any(keyword in normalized for keyword in HEADER_KEYWORDS):
                hits += 1
        is_data_row = any(looks_like_date(c) for c in cells) and any(looks_like_amount(c) for c in cells)
        score = len(cells) + 3 * hits - (2 if is_data_row else 0)
        if best_score is None or score > best_score:
            best_index, best_score = index, score
    return best_index


def build_columns(header_row: list[str]) -> list[str]:
    """Name columns from the header row.

    Blank header cells become ``col_<n>``; names that collide after
    normalization get a ``_<count>`` suffix.
    """
    seen: Counter = Counter()
    columns = []
    for index, cell in enumerate(header_row, start=1):
        name = re.sub(r"\s+", " ", cell or "").strip() or f"col_{index}"
        key = normalize_key(name) or name
        seen[key] += 1
        if seen[key] > 1:
            name = f"{name}_{seen[key]}"
        columns.append(name)
    return columns


def is_repeated_header(row: dict[str, str], columns: list[str]) -> bool:
    """Check whether a data row repeats the header text."""
    matches = sum(
        1 for column in columns if row.get(column) and normalize_key(row[column]) == normalize_key(column)
    )
    return matches >= max(2, math.ceil(0.6 * len(columns)))


def parse_statement(
    buffer: bytes | str, settings: ReconciliationSettings = DEFAULT_SETTINGS
) -> ParsedStatement:
    """Decode and tabulate a statement file.

    Args:
        buffer: Raw file bytes, or already decoded text
        settings: Sample sizes for delimiter and header detection

    Returns:
        ParsedStatement with column names and one dict per data row
    """
    if isinstance(buffer, bytes):
        text, encoding = decode_statement(buffer)
    else:
        text, encoding = buffer.lstrip("\ufeff"), "utf-8"

    if is_ofx(text):
        return parse_ofx(text, encoding)

    delimiter = detect_delimiter(text[: settings.delimiter_sample_chars])
    matrix = split_rows(text, delimiter)
    if not matrix:
        return ParsedStatement(columns=(), rows=(), delimiter=delimiter, encoding=encoding, header_index=0)

    header_index = find_header_index(matrix, settings.header_scan_rows)
    columns = build_columns(matrix[header_index])

    rows = []
    for cells in matrix[header_index + 1 :]:
        padded = cells + [""] * (len(columns) - len(cells))
        row = dict(zip(columns, padded))
        if not any(row.values()):
            continue
        if is_repeated_header(row, columns):
            continue
        rows.append(row)

    logger.debug(
        "Parsed statement: encoding=%s delimiter=%r header_row=%d columns=%d rows=%d",
        encoding,
        delimiter,
        header_index,
        len(columns),
        len(rows),
    )
    return ParsedStatement(
        columns=tuple(columns),
        rows=tuple(rows),
        delimiter=delimiter,
        encoding=encoding,
        header_index=header_index,
    )


def is_ofx(text: str) -> bool:
    """Check whether decoded text is an OFX/QFX export rather than a table."""
    return bool(OFX_MARKER.search(text))


def _ofx_tag(block: str, tag: str) -> str:
    # SGML OFX leaves leaf tags unclosed, so the value runs to the next tag or line end
    match = re.search(rf"<{tag}>([^<\r\n]+)", block, re.IGNORECASE)
    return match.group(1).strip() if match else ""


def parse_ofx(text: str, encoding: str = "utf-8") -> ParsedStatement:
    """Tabulate the ``<STMTTRN>`` blocks of an OFX/QFX statement.

    Each transaction becomes a row with fixed columns: the posting date
    (``DTPOSTED``, then ``DTUSER``, then ``DTAVAIL``, cut to ``yyyymmdd``),
    the description (``MEMO``, then ``NAME``), the signed ``TRNAMT``, the
    bank's ``FITID`` and the statement ``ACCTID``. Both SGML and XML flavors
    are accepted.
    """
    account = _ofx_tag(text, "ACCTID")
    rows = []
    for block in OFX_TRANSACTION.findall(text):
        posted = _ofx_tag(block, "DTPOSTED") or _ofx_tag(block, "DTUSER") or _ofx_tag(block, "DTAVAIL")
        if re.match(r"^\d{8}", posted):
            posted = posted[:8]
        rows.append(
            {
                "DATE": posted,
                "DESCRIPTION": _ofx_tag(block, "MEMO") or _ofx_tag(block, "NAME") or OFX_DEFAULT_DESCRIPTION,
                "TRNAMT": _ofx_tag(block, "TRNAMT"),
                "FITID": _ofx_tag(block, "FITID"),
                "ACCTID": account,
            }
        )

    logger.debug("Parsed OFX statement: account=%s transactions=%d", account or "-", len(rows))
    return ParsedStatement(columns=OFX_COLUMNS, rows=tuple(rows), delimiter="", encoding=encoding, header_index=0)


def _contains_words(key: str, alias: str) -> bool:
    return f" {alias} " in f" {key} "


def suggest_mapping(columns: list[str] | tuple[str, ...]) -> ColumnMapping:
    """Guess which columns hold each canonical field.

    Exact alias matches win over containment matches. Amount, debit and
    credit never resolve to balance-like columns.
    """
    keys = {column: normalize_key(column) for column in columns}
    chosen: dict[str, str] = {}
    used: set[str] = set()

    def eligible(field: str, column: str) -> bool:
        if column in used:
            return False
        if field in AMOUNT_FIELDS and any(word in keys[column] for word in BALANCE_LIKE_KEYS):
            return False
        return True

    for exact in (True, False):
        for field, aliases in MAPPING_ALIASES.items():
            if field in chosen:
                continue
            for alias in aliases:
                match = next(
                    (
                        column
                        for column in columns
                        if eligible(field, column)
                        and (keys[column] == alias if exact else _contains_words(keys[column], alias))
                    ),
                    None,
                )
                if match is not None:
                    chosen[field] = match
                    used.add(match)
                    break

    # A lone amount column beats a debit/credit pair that only half resolved
    if "amount" in chosen and ("debit" in chosen) != ("credit" in chosen):
        chosen.pop("debit", None)
        chosen.pop("credit", None)

    return ColumnMapping(**chosen)


def _cell(raw: dict[str, str], column: Optional[str]) -> str:
    if column is None:
        return ""
    return (raw.get(column) or "").strip()


def _resolve_amount(raw: dict[str, str], mapping: ColumnMapping) -> tuple[Optional[Decimal], str]:
    """Return (amount, state) where state is ``ok``, ``missing`` or ``invalid``."""
    if mapping.amount is not None:
        value = _cell(raw, mapping.amount)
        if not value:
            return None, "missing"
        try:
            return parse_amount(value), "ok"
        except ValueError:
            return None, "invalid"

    debit_raw = _cell(raw, mapping.debit)
    credit_raw = _cell(raw, mapping.credit)
    if not debit_raw and not credit_raw:
        return None, "missing"
    try:
        debit = abs(parse_amount(debit_raw)) if debit_raw else Decimal("0")
        credit = abs(parse_amount(credit_raw)) if credit_raw else Decimal("0")
    except ValueError:
        return None, "invalid"
    return credit - debit, "ok"


def _apply_type_column(amount: Decimal, type_value: str) -> Decimal:
    normalized = normalize_text(type_value)
    if not normalized:
        return amount
    if normalized == "D" or any(word in normalized for word in DEBIT_TYPE_WORDS):
        return -abs(amount)
    if normalized == "C" or any(word in normalized for word in CREDIT_TYPE_WORDS):
        return abs(amount)
    return amount


def _description(raw: dict[str, str], mapping: ColumnMapping) -> str:
    parts = []
    for column in (mapping.description, mapping.history):
        value = _cell(raw, column)
        if value and value not in parts:
            parts.append(value)
    return " ".join(parts)


def _parse_optional_cents(value: str) -> Optional[int]:
    if not value:
        return None
    try:
        return to_cents(parse_amount(value))
    except ValueError:
        return None


def analyze_row(raw: dict[str, str], mapping: ColumnMapping) -> RowOutcome:
    """Classify one statement row."""
    try:
        date_raw = _cell(raw, mapping.date)
        if not date_raw:
            return RowIgnored(RowReason.MISSING_DATE, "Row has no date")

        description = _description(raw, mapping)
        if not description:
            return RowIgnored(RowReason.MISSING_DESCRIPTION, "Row has no description")

        amount, state = _resolve_amount(raw, mapping)
        if state == "missing":
            return RowIgnored(RowReason.MISSING_AMOUNT, "Row has no amount")
        if state == "invalid":
            return RowError(RowReason.INVALID_AMOUNT, "Amount could not be parsed")

        normalized_description = normalize_text(description)
        if BALANCE_ROW_PATTERN.search(normalized_description):
            return RowIgnored(RowReason.IGNORED_BALANCE_ROW, "Balance or summary line")

        try:
            posted_at = parse_statement_date(date_raw)
        except ValueError as e:
            return RowError(RowReason.INVALID_DATE, str(e))

        amount = _apply_type_column(amount, _cell(raw, mapping.type))
        amount_cents = to_cents(amount)
        if amount_cents == 0:
            return RowIgnored(RowReason.ZERO_AMOUNT, "Amount is zero")

        if not normalized_description:
            return RowError(RowReason.INVALID_NORMALIZED_ROW, "Description is empty after normalization")

        row = CanonicalRow(
            posted_at=posted_at,
            description=description,
            normalized_description=normalized_description,
            amount_cents=amount_cents,
            type=EntryType.INCOME if amount_cents > 0 else EntryType.EXPENSE,
            merchant_key=build_merchant_key(description),
            account_hint=_cell(raw, mapping.account) or None,
            external_id=_cell(raw, mapping.external_id) or None,
            balance_after_cents=_parse_optional_cents(_cell(raw, mapping.balance_after)),
        )
        return RowOk(row)
    except Exception as e:
        return RowError(RowReason.ROW_PARSE_ERROR, f"{type(e).__name__}: {e}")


def analyze_rows(
    rows: list[dict[str, str]] | tuple[dict[str, str], ...], mapping: ColumnMapping
) -> NormalizationReport:
    """Normalize rows and report one diagnostic per input row.

    Args:
        rows: Data rows keyed by column name
        mapping: Column mapping to apply

    Returns:
        NormalizationReport with canonical rows in input order
    """
    canonical: list[CanonicalRow] = []
    diagnostics: list[RowDiagnostic] = []
    reasons: Counter = Counter()

    for line, raw in enumerate(rows, start=1):
        outcome = analyze_row(raw, mapping)
        diagnostics.append(RowDiagnostic(line=line, outcome=outcome, raw=dict(raw)))
        if isinstance(outcome, RowOk):
            canonical.append(outcome.row)
        else:
            reasons[outcome.reason.value] += 1
            logger.debug("Row %d %s: %s", line, outcome.reason.value, outcome.message)

    statuses = Counter(diagnostic.status for diagnostic in diagnostics)
    summary = NormalizationSummary(
        total_rows=len(diagnostics),
        valid_rows=statuses[RowStatus.OK],
        ignored_rows=statuses[RowStatus.IGNORED],
        error_rows=statuses[RowStatus.ERROR],
        reasons=dict(reasons),
    )
    logger.info(
        "Normalized %d rows: %d ok, %d ignored, %d errors",
        summary.total_rows,
        summary.valid_rows,
        summary.ignored_rows,
        summary.error_rows,
    )
    return NormalizationReport(
        rows=tuple(canonical),
        diagnostics=tuple(diagnostics),
        summary=summary,
        mapping=mapping,
    )


def normalize_statement(
    buffer: bytes | str,
    mapping: Optional[ColumnMapping] = None,
    settings: ReconciliationSettings = DEFAULT_SETTINGS,
) -> NormalizationReport:
    """Parse a statement file and normalize its rows.

    OFX files always use their fixed tag mapping; a mapping hint only
    applies to delimited files.

    Args:
        buffer: Raw file bytes or decoded text
        mapping: Column mapping hint; suggested from the header when None
        settings: Detection settings

    Returns:
        NormalizationReport
    """
    parsed = parse_statement(buffer, settings)
    if parsed.columns == OFX_COLUMNS:
        mapping = OFX_MAPPING
    elif mapping is None:
        mapping = suggest_mapping(parsed.columns)
    return analyze_rows(parsed.rows, mapping)
