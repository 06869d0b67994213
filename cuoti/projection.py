"""
Monthly projection of stored transactions.

Recurring subscriptions and services are stored once (the generator row)
plus one real row per month the user actually settled. For any month,
``project_month`` returns the real rows that fall in it and fills the
gaps with virtual occurrences of the open recurring groups. Virtual
occurrences are never written back; they carry ``is_virtual=True`` and
the generator id in ``source_id``.
"""
from typing import Dict, Iterable, List

from cuoti.finance_utils import effective_date, month_bounds, set_month_and_year
from cuoti.schemas import Transaction


def virtual_occurrence(tx: Transaction, year: int, month: int) -> Transaction:
    return tx.model_copy(
        update={
            "id": None,
            "date": set_month_and_year(effective_date(tx), month, year),
            "payment_date": set_month_and_year(tx.payment_date, month, year) if tx.payment_date else None,
            "status": "pending",
            "is_virtual": True,
            "source_id": tx.id,
        },
        deep=True,
    )


def project_month(transactions: Iterable[Transaction], year: int, month: int) -> List[Transaction]:
    """Effective obligations for ``month``/``year`` (1-based month), in no particular order."""
    transactions = list(transactions)
    first_day, last_day = month_bounds(year, month)

    def falls_in_month(tx: Transaction) -> bool:
        return first_day <= effective_date(tx) <= last_day

    settled_groups = {tx.group_id for tx in transactions if tx.group_id and falls_in_month(tx)}

    projected: List[Transaction] = []
    generators: Dict[str, Transaction] = {}

    for tx in transactions:
        if falls_in_month(tx):
            projected.append(tx)
            continue
        if not (tx.is_recurring and tx.group_id) or tx.group_id in settled_groups:
            continue
        start = effective_date(tx)
        if start > last_day:
            continue  # recurrence starts after this month
        if tx.recurrence_end_date and tx.recurrence_end_date < first_day:
            continue
        # one occurrence per group: the most recent generator wins
        current = generators.get(tx.group_id)
        if current is None or start > effective_date(current):
            generators[tx.group_id] = tx

    projected.extend(virtual_occurrence(tx, year, month) for tx in generators.values())
    return projected


def display_key(tx: Transaction, year: int, month: int) -> str:
    """Stable list key for UI consumers; virtual rows have no id of their own."""
    if tx.is_virtual:
        return f"v{tx.source_id}-{year}-{month:02d}"
    return str(tx.id)
