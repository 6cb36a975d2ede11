"""Stable identities for ledger occurrences and statement files."""

import hashlib
from datetime import date
from typing import Optional

from ledgerkit.domain.entities import EntryType


def build_fingerprint(
    owner_id: int,
    posted_at: date,
    normalized_description: str,
    amount_cents: int,
    entry_type: EntryType,
    category_id: Optional[int] = None,
) -> str:
    """Hash the fields that identify one logical transaction occurrence.

    Two rows with the same fingerprint for the same owner are the same
    occurrence, whichever file they came from.

    Args:
        owner_id: Owner of the entry
        posted_at: Posting date
        normalized_description: Description after normalize_text
        amount_cents: Signed amount in cents
        entry_type: Entry classification
        category_id: Category, or None

    Returns:
        Hex SHA-256 digest
    """
    parts = [
        str(owner_id),
        posted_at.isoformat(),
        normalized_description,
        str(int(amount_cents)),
        EntryType(entry_type).value,
        "-" if category_id is None else str(category_id),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def build_file_hash(content: bytes) -> str:
    """Hash the raw content of a statement file."""
    return hashlib.sha256(content).hexdigest()
