"""Domain layer for ledgerkit.

Services are imported from their modules (``ledgerkit.domain.ledger`` and
friends); this package only groups them.
"""
