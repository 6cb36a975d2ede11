"""Transfer matcher domain service."""

import logging
import re
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional

from ledgerkit.config import DEFAULT_SETTINGS, ReconciliationSettings
from ledgerkit.database.base import Database
from ledgerkit.domain.entities import (
    Account,
    Direction,
    EntryType,
    LedgerEntry,
    LinkKind,
    LinkStatus,
    MatchResult,
    TransferLink,
    TransferSuggestion,
)
from ledgerkit.domain.errors import NotFoundError, ValidationError, entry_not_found, link_not_found
from ledgerkit.utils.text import normalize_text, token_set

logger = logging.getLogger(__name__)

CARD_PAYMENT_KEYWORDS = (
    "PAGAMENTO FATURA",
    "PGTO FATURA",
    "PAGTO FATURA",
    "FATURA CARTAO",
    "FATURA CART",
    "PAG CARTAO",
    "PAG CART",
    "CREDIT CARD PAYMENT",
    "CARD PAYMENT",
)

TRANSFER_KEYWORDS = ("PIX", "TED", "DOC", "TRANSFER", "TRANSF", "ENVIADO", "RECEBIDO", "WIRE")

CARD_PAYMENT_REF_PREFIX = "card-payment:"

PAYMENT_HINT = re.compile(r"\b(?:PAGAMENTO|PAGTO|PGTO|PAG|PAYMENT)\b")
CARD_HINT = re.compile(r"\bCART[A-Z]*\b|\bCARD\b")


def is_card_payment_description(description: str) -> bool:
    """Check if a description reads like a credit card bill payment."""
    normalized = normalize_text(description)
    if any(keyword in normalized for keyword in CARD_PAYMENT_KEYWORDS):
        return True
    return "FATURA" in normalized and bool(PAYMENT_HINT.search(normalized) or CARD_HINT.search(normalized))


def card_payment_ref(out_entry_id: int) -> str:
    """External reference of the card-side entry written for a bill payment."""
    return f"{CARD_PAYMENT_REF_PREFIX}{out_entry_id}"


def is_card_payment_entry(entry: LedgerEntry) -> bool:
    return bool(entry.external_ref and entry.external_ref.startswith(CARD_PAYMENT_REF_PREFIX))


def transfer_score(
    out_entry: LedgerEntry,
    in_entry: LedgerEntry,
    settings: ReconciliationSettings = DEFAULT_SETTINGS,
) -> float:
    """Confidence that two entries are the same movement, between 0 and 1.

    Weighted sum of amount similarity (0.55), date proximity (0.25),
    transfer keywords (0.10) and description token overlap (0.10).
    """
    fee_tolerance = settings.fee_tolerance_cents
    diff = abs(out_entry.abs_cents - in_entry.abs_cents)
    if diff == 0:
        amount_score = 1.0
    elif diff > fee_tolerance:
        return 0.0
    else:
        amount_score = max(0.0, 1 - diff / (fee_tolerance * 1.1))

    days = abs((in_entry.posted_at - out_entry.posted_at).days)
    if days > settings.transfer_window_days:
        return 0.0
    date_score = max(0.0, 1 - days / (settings.transfer_window_days + 1))

    descriptions = (out_entry.normalized_description, in_entry.normalized_description)
    has_keyword = any(
        keyword in description for description in descriptions for keyword in TRANSFER_KEYWORDS
    ) or any(is_card_payment_description(description) for description in descriptions)
    keyword_score = 1.0 if has_keyword else 0.45

    left, right = token_set(descriptions[0]), token_set(descriptions[1])
    similarity = len(left & right) / len(left | right) if left and right else 0.0

    score = amount_score * 0.55 + date_score * 0.25 + keyword_score * 0.1 + similarity * 0.1
    return round(min(1.0, score), 4)


def transfer_label(from_name: str, to_name: str) -> str:
    """Human readable description of a movement between two accounts."""
    return f"TRANSFER: {from_name} -> {to_name}"


class TransferMatcher:
    """Service pairing outgoing and incoming entries into transfers."""

    def __init__(self, db: Database, settings: Optional[ReconciliationSettings] = None):
        """Initialize transfer matcher.

        Args:
            db: Database instance
            settings: Window and tolerance settings
        """
        self.db = db
        self.settings = settings or DEFAULT_SETTINGS

    def run(
        self, owner_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> MatchResult:
        """Scan unlinked entries and link or suggest transfer pairs.

        Exact amount matches within the date window become confirmed links
        (``auto``, or ``card_payment`` when the incoming side is a credit
        account) and both entries are reclassified as transfers. An ``auto``
        pair scoring below ``auto_confidence_threshold`` and matches within
        the fee tolerance become pending ``suggested`` links instead, and the
        entries keep their type until someone confirms.

        A bill payment from a card's settlement account with no payment row
        on the card yet is linked to a payment entry written on the card.
        That entry is replaced by the card statement's own payment row once
        it is imported.

        Entries already linked or waiting in the inbox are skipped, and
        rejected pairs are never proposed again, so re-running is safe.

        Args:
            owner_id: Owner whose ledger is scanned
            start: Only consider outgoing entries posted on or after this date
            end: Only consider outgoing entries posted on or before this date

        Returns:
            MatchResult with the number of confirmed links and suggestions created
        """
        window = timedelta(days=self.settings.transfer_window_days)
        accounts = {account.id: account for account in self.db.list_accounts(owner_id)}
        entries = self.db.list_ledger_entries(
            owner_id,
            start_date=start - window if start else None,
            end_date=end + window if end else None,
            entry_types=[EntryType.INCOME, EntryType.EXPENSE],
            unlinked_only=True,
            include_excluded=False,
        )

        links = self.db.list_transfer_links(owner_id)
        busy: set[int] = set()
        rejected: set[tuple[int, int]] = set()
        for link in links:
            if link.status == LinkStatus.REJECTED:
                rejected.add((link.out_entry_id, link.in_entry_id))
            else:
                busy.update((link.out_entry_id, link.in_entry_id))

        candidates = [entry for entry in entries if entry.id not in busy]
        out_entries = [
            entry
            for entry in candidates
            if entry.direction == Direction.OUT
            and entry.account_id in accounts
            and not accounts[entry.account_id].is_credit
            and (start is None or entry.posted_at >= start)
            and (end is None or entry.posted_at <= end)
        ]
        out_entries.sort(key=lambda entry: (entry.posted_at, entry.id))
        in_entries = [entry for entry in candidates if entry.direction == Direction.IN]

        used: set[int] = set()
        matched = self._adopt_statement_payments(owner_id, links, in_entries, used, rejected)
        suggested = 0
        for out_entry in out_entries:
            best = self._best_candidate(out_entry, in_entries, accounts, used, rejected)
            if best is None:
                continue

            in_entry, kind, amount_delta = best
            confidence = transfer_score(out_entry, in_entry, self.settings)
            exact = amount_delta <= self.settings.rounding_tolerance_cents
            confident = kind == LinkKind.CARD_PAYMENT or confidence >= self.settings.auto_confidence_threshold
            if exact and confident:
                self._link(owner_id, out_entry, in_entry, kind, confidence, amount_delta)
                matched += 1
            else:
                self.db.create_transfer_link(
                    owner_id=owner_id,
                    out_entry_id=out_entry.id,
                    in_entry_id=in_entry.id,
                    kind=LinkKind.SUGGESTED,
                    status=LinkStatus.PENDING,
                    confidence=confidence,
                    fee_delta_cents=amount_delta,
                )
                suggested += 1
                logger.debug(
                    "Suggested transfer %d -> %d (fee delta %d cents, confidence %.2f)",
                    out_entry.id,
                    in_entry.id,
                    amount_delta,
                    confidence,
                )
            used.update((out_entry.id, in_entry.id))

        cards_by_parent: dict[int, list[Account]] = defaultdict(list)
        for account in accounts.values():
            if account.is_credit and account.parent_account_id is not None:
                cards_by_parent[account.parent_account_id].append(account)
        for out_entry in out_entries:
            if out_entry.id in used or not is_card_payment_description(out_entry.description):
                continue
            cards = cards_by_parent.get(out_entry.account_id, [])
            if len(cards) != 1:
                logger.debug("Bill payment %d has %d candidate cards", out_entry.id, len(cards))
                continue
            self._settle_card(owner_id, out_entry, cards[0])
            used.add(out_entry.id)
            matched += 1

        logger.info(
            "Transfer matcher for owner %s: %d matched, %d suggested, %d candidates",
            owner_id,
            matched,
            suggested,
            len(candidates),
        )
        return MatchResult(matched=matched, suggested=suggested)

    def _adopt_statement_payments(
        self,
        owner_id: int,
        links: list[TransferLink],
        in_entries: list[LedgerEntry],
        used: set[int],
        rejected: set[tuple[int, int]],
    ) -> int:
        """Move card payments from written payment entries onto imported statement rows."""
        moved = 0
        for link in links:
            if link.kind != LinkKind.CARD_PAYMENT or link.status != LinkStatus.CONFIRMED:
                continue
            payment = self.db.get_ledger_entry(link.in_entry_id)
            out_entry = self.db.get_ledger_entry(link.out_entry_id)
            if payment is None or out_entry is None or not is_card_payment_entry(payment):
                continue

            best_key = None
            statement_row = None
            for in_entry in in_entries:
                if in_entry.id in used or in_entry.account_id != payment.account_id:
                    continue
                if in_entry.abs_cents != out_entry.abs_cents or (out_entry.id, in_entry.id) in rejected:
                    continue
                days = abs((in_entry.posted_at - out_entry.posted_at).days)
                if days > self.settings.transfer_window_days:
                    continue
                key = (days, in_entry.posted_at, in_entry.id)
                if best_key is None or key < best_key:
                    best_key = key
                    statement_row = in_entry
            if statement_row is None:
                continue

            with self.db.atomic():
                self._drop_link(link)
                self._link(
                    owner_id,
                    out_entry,
                    statement_row,
                    LinkKind.CARD_PAYMENT,
                    transfer_score(out_entry, statement_row, self.settings),
                    0,
                )
            used.add(statement_row.id)
            moved += 1
            logger.debug("Card payment %d moved onto statement row %d", out_entry.id, statement_row.id)
        return moved

    def _best_candidate(
        self,
        out_entry: LedgerEntry,
        in_entries: list[LedgerEntry],
        accounts: dict[int, Account],
        used: set[int],
        rejected: set[tuple[int, int]],
    ) -> Optional[tuple[LedgerEntry, LinkKind, int]]:
        """Pick the incoming entry closest in date, then in amount."""
        out_account = accounts[out_entry.account_id]
        best_key = None
        best = None
        for in_entry in in_entries:
            if in_entry.id in used or in_entry.account_id == out_entry.account_id:
                continue
            if (out_entry.id, in_entry.id) in rejected:
                continue
            in_account = accounts.get(in_entry.account_id)
            if in_account is None:
                continue

            days = abs((in_entry.posted_at - out_entry.posted_at).days)
            if days > self.settings.transfer_window_days:
                continue
            amount_delta = abs(out_entry.abs_cents - in_entry.abs_cents)
            if amount_delta > self.settings.fee_tolerance_cents:
                continue

            if in_account.is_credit:
                if not self._is_card_payment(out_account, in_account, out_entry, in_entry):
                    continue
                kind = LinkKind.CARD_PAYMENT
            else:
                kind = LinkKind.AUTO

            key = (days, amount_delta, in_entry.posted_at, in_entry.id)
            if best_key is None or key < best_key:
                best_key = key
                best = (in_entry, kind, amount_delta)
        return best

    @staticmethod
    def _is_card_payment(
        out_account: Account,
        card_account: Account,
        out_entry: LedgerEntry,
        in_entry: LedgerEntry,
    ) -> bool:
        """A card is paid from its settlement account, or by a bill payment when it has none."""
        if card_account.parent_account_id is not None:
            return card_account.parent_account_id == out_account.id
        return is_card_payment_description(out_entry.description) or is_card_payment_description(
            in_entry.description
        )

    def _settle_card(self, owner_id: int, out_entry: LedgerEntry, card: Account) -> int:
        """Write the card side of a bill payment and link both sides."""
        with self.db.atomic():
            payment_id = self.db.create_ledger_entry(
                owner_id=owner_id,
                account_id=card.id,
                posted_at=out_entry.posted_at,
                amount_cents=out_entry.abs_cents,
                entry_type=EntryType.INCOME,
                direction=Direction.IN,
                description=out_entry.description,
                normalized_description=out_entry.normalized_description,
                merchant_key=out_entry.merchant_key,
                external_ref=card_payment_ref(out_entry.id),
            )
            payment = self.db.get_ledger_entry(payment_id)
            return self._link(
                owner_id,
                out_entry,
                payment,
                LinkKind.CARD_PAYMENT,
                transfer_score(out_entry, payment, self.settings),
                0,
            )

    def _link(
        self,
        owner_id: int,
        out_entry: LedgerEntry,
        in_entry: LedgerEntry,
        kind: LinkKind,
        confidence: float,
        fee_delta_cents: int,
    ) -> int:
        """Create a confirmed link and reclassify both sides in one transaction."""
        with self.db.atomic():
            link_id = self.db.create_transfer_link(
                owner_id=owner_id,
                out_entry_id=out_entry.id,
                in_entry_id=in_entry.id,
                kind=kind,
                status=LinkStatus.CONFIRMED,
                confidence=confidence,
                fee_delta_cents=fee_delta_cents,
            )
            self._mark_transfer(out_entry.id, in_entry.id, link_id, fee_delta_cents)
        logger.debug("Linked %s transfer %d -> %d", kind.value, out_entry.id, in_entry.id)
        return link_id

    def _mark_transfer(self, out_entry_id: int, in_entry_id: int, link_id: int, fee_delta_cents: int):
        for entry_id in (out_entry_id, in_entry_id):
            self.db.update_ledger_entry(
                entry_id,
                type=EntryType.TRANSFER,
                transfer_link_id=link_id,
                fee_adjusted=fee_delta_cents > 0,
            )

    def link_entries(
        self,
        owner_id: int,
        out_entry_id: int,
        in_entry_id: int,
        kind: LinkKind = LinkKind.AUTO,
    ) -> int:
        """Link two known entries as a transfer, bypassing candidate search.

        Used when both sides of a movement are already known, such as a
        manually entered transfer.

        Raises:
            ValidationError: If the entries cannot form a transfer
        """
        out_entry = self._get_owned_entry(owner_id, out_entry_id)
        in_entry = self._get_owned_entry(owner_id, in_entry_id)
        if out_entry.direction != Direction.OUT or in_entry.direction != Direction.IN:
            raise ValidationError("A transfer needs one outgoing and one incoming entry")
        if out_entry.account_id == in_entry.account_id:
            raise ValidationError("A transfer needs two different accounts")
        if out_entry.transfer_link_id is not None or in_entry.transfer_link_id is not None:
            raise ValidationError("Entries are already part of a transfer")

        fee_delta = abs(out_entry.abs_cents - in_entry.abs_cents)
        confidence = transfer_score(out_entry, in_entry, self.settings)
        return self._link(owner_id, out_entry, in_entry, kind, confidence, fee_delta)

    def _get_owned_entry(self, owner_id: int, entry_id: int) -> LedgerEntry:
        entry = self.db.get_ledger_entry(entry_id)
        if entry is None or entry.owner_id != owner_id:
            raise NotFoundError(entry_not_found(entry_id))
        return entry

    def _get_owned_link(self, owner_id: int, link_id: int) -> TransferLink:
        link = self.db.get_transfer_link(link_id)
        if link is None or link.owner_id != owner_id:
            raise NotFoundError(link_not_found(link_id))
        return link

    def reconciliation_inbox(self, owner_id: int) -> list[TransferSuggestion]:
        """List pending transfer suggestions awaiting review.

        Args:
            owner_id: Owner of the suggestions

        Returns:
            Suggestions ordered by the outgoing entry's date
        """
        accounts = {account.id: account for account in self.db.list_accounts(owner_id)}
        suggestions = []
        for link in self.db.list_transfer_links(owner_id, status=LinkStatus.PENDING):
            out_entry = self.db.get_ledger_entry(link.out_entry_id)
            in_entry = self.db.get_ledger_entry(link.in_entry_id)
            if out_entry is None or in_entry is None:
                continue
            from_name = accounts[out_entry.account_id].name if out_entry.account_id in accounts else "?"
            to_name = accounts[in_entry.account_id].name if in_entry.account_id in accounts else "?"
            suggestions.append(
                TransferSuggestion(
                    link=link,
                    out_entry=out_entry,
                    in_entry=in_entry,
                    label=transfer_label(from_name, to_name),
                )
            )
        suggestions.sort(key=lambda s: (s.out_entry.posted_at, s.link.id))
        return suggestions

    def confirm_suggestion(self, owner_id: int, link_id: int) -> TransferLink:
        """Accept a pending suggestion.

        Both entries become transfers; when the amounts differ both are
        flagged as fee-adjusted.

        Raises:
            NotFoundError: If the link does not exist for the owner
            ValidationError: If the link is not pending or an entry was linked since
        """
        link = self._get_owned_link(owner_id, link_id)
        if link.status != LinkStatus.PENDING:
            raise ValidationError(f"Transfer link {link_id} is not pending (status: {link.status.value})")

        out_entry = self._get_owned_entry(owner_id, link.out_entry_id)
        in_entry = self._get_owned_entry(owner_id, link.in_entry_id)
        if out_entry.transfer_link_id is not None or in_entry.transfer_link_id is not None:
            raise ValidationError("One of the entries is already part of another transfer")

        with self.db.atomic():
            self.db.update_transfer_link_status(link_id, LinkStatus.CONFIRMED)
            self._mark_transfer(out_entry.id, in_entry.id, link_id, link.fee_delta_cents)
        logger.info("Confirmed transfer suggestion %d", link_id)
        return self.db.get_transfer_link(link_id)

    def reject_suggestion(self, owner_id: int, link_id: int) -> TransferLink:
        """Reject a pending suggestion; the pair is never proposed again.

        Raises:
            NotFoundError: If the link does not exist for the owner
            ValidationError: If the link is not pending
        """
        link = self._get_owned_link(owner_id, link_id)
        if link.status != LinkStatus.PENDING:
            raise ValidationError(f"Transfer link {link_id} is not pending (status: {link.status.value})")
        self.db.update_transfer_link_status(link_id, LinkStatus.REJECTED)
        logger.info("Rejected transfer suggestion %d", link_id)
        return self.db.get_transfer_link(link_id)

    def unlink(self, owner_id: int, link_id: int) -> None:
        """Remove a link and revert both entries to their original type.

        Raises:
            NotFoundError: If the link does not exist for the owner
        """
        link = self._get_owned_link(owner_id, link_id)
        with self.db.atomic():
            self._drop_link(link)
        logger.info("Removed transfer link %d", link_id)

    def remove_entry_links(self, entry_id: int) -> int:
        """Remove every link touching an entry, reverting the counterparts.

        Returns:
            Number of links removed
        """
        links = self.db.links_for_entry(entry_id)
        with self.db.atomic():
            for link in links:
                self._drop_link(link)
        return len(links)

    def _drop_link(self, link: TransferLink) -> None:
        """Delete a link, reverting confirmed sides to their original type."""
        if link.status == LinkStatus.CONFIRMED:
            for entry_id in (link.out_entry_id, link.in_entry_id):
                entry = self.db.get_ledger_entry(entry_id)
                if entry is None or entry.transfer_link_id != link.id:
                    continue
                self.db.update_ledger_entry(
                    entry_id,
                    type=entry.original_type,
                    transfer_link_id=None,
                    fee_adjusted=False,
                )
        self.db.delete_transfer_link(link.id)
        # A written card-side payment only exists for its link
        payment = self.db.get_ledger_entry(link.in_entry_id)
        if payment is not None and is_card_payment_entry(payment):
            self.db.delete_ledger_entry(payment.id)
