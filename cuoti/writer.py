import uuid
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from cuoti.db import Database
from cuoti.finance_utils import add_months
from cuoti.schemas import Transaction, TransactionCreate, TransactionItemIn

logger = logging.getLogger(__name__)

_INSERT_TX = (
    "INSERT INTO transactions (date, shop_name, total_amount, is_debt, debt_to, type, is_recurring, "
    "group_id, status, payment_date, recurrence_end_date) VALUES (:date, :shop_name, :total_amount, "
    ":is_debt, :debt_to, :type, :is_recurring, :group_id, :status, :payment_date, :recurrence_end_date)"
)

_INSERT_ITEM = (
    "INSERT INTO items (transaction_id, name, price, quantity, link, image_url) "
    "VALUES (:transaction_id, :name, :price, :quantity, :link, :image_url)"
)


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def new_group_id() -> str:
    return str(uuid.uuid4())


class TransactionWriter:
    """
    Turns a submitted transaction into stored rows.

    Installment loops are not transactional: a failing statement aborts
    the remaining iterations and leaves the rows already written in place.
    """

    def __init__(self, db: Database):
        self.db = db

    def _items_for(self, body: TransactionCreate) -> List[TransactionItemIn]:
        if body.items or body.type == "purchase":
            return list(body.items)
        # subscriptions/services carry a single item mirroring the charge
        return [TransactionItemIn(name=body.shop_name, price=body.total_amount, quantity=1)]

    def _insert_tags(self, tx_id: int, tag_ids: List[int]) -> None:
        for tag_id in tag_ids:
            self.db.execute(
                "INSERT INTO transaction_tags (transaction_id, tag_id) VALUES (:transaction_id, :tag_id)",
                {"transaction_id": tx_id, "tag_id": tag_id},
            )

    def _insert_items(self, tx_id: int, items: List[TransactionItemIn], divisor: int = 1) -> None:
        for item in items:
            self.db.execute(
                _INSERT_ITEM,
                {
                    "transaction_id": tx_id,
                    "name": item.name,
                    "price": item.price / divisor,
                    "quantity": item.quantity,
                    "link": item.link,
                    "image_url": item.image_url,
                },
            )

    def create(self, body: TransactionCreate, status: str = "pending") -> List[int]:
        """
        Insert one row per installment (purchases) or a single row
        (subscriptions/services). Returns the new ids in installment order.
        """
        loop_count = body.installments if body.type == "purchase" else 1
        group_id = body.group_id or new_group_id()
        items = self._items_for(body)
        ids: List[int] = []

        for i in range(loop_count):
            shop_name = body.shop_name
            if loop_count > 1:
                shop_name = f"{body.shop_name} ({i + 1}/{loop_count})"

            params: Dict[str, Any] = {
                "date": add_months(body.date, i).isoformat(),
                "shop_name": shop_name,
                "total_amount": body.total_amount / loop_count,
                "is_debt": 1 if body.is_debt else 0,
                "debt_to": body.debt_to or None,
                "type": body.type,
                "is_recurring": 1 if body.is_recurring else 0,
                "group_id": group_id,
                "status": status,
                "payment_date": _iso(add_months(body.payment_date, i)) if body.payment_date else None,
                "recurrence_end_date": _iso(body.recurrence_end_date),
            }
            tx_id = self.db.execute(_INSERT_TX, params).last_insert_id
            self._insert_tags(tx_id, body.tag_ids)
            self._insert_items(tx_id, items, loop_count)
            ids.append(tx_id)

        logger.info("Stored %d row(s) for '%s' in group %s", len(ids), body.shop_name, group_id)
        return ids

    def update(self, tx_id: int, body: TransactionCreate) -> bool:
        """Replace one row's fields, tags and items. Sibling installments are untouched."""
        res = self.db.execute(
            """UPDATE transactions SET
                date = :date,
                shop_name = :shop_name,
                total_amount = :total_amount,
                is_debt = :is_debt,
                debt_to = :debt_to,
                type = :type,
                is_recurring = :is_recurring,
                payment_date = :payment_date,
                recurrence_end_date = :recurrence_end_date
            WHERE id = :id""",
            {
                "date": body.date.isoformat(),
                "shop_name": body.shop_name,
                "total_amount": body.total_amount,
                "is_debt": 1 if body.is_debt else 0,
                "debt_to": body.debt_to or None,
                "type": body.type,
                "is_recurring": 1 if body.is_recurring else 0,
                "payment_date": _iso(body.payment_date),
                "recurrence_end_date": _iso(body.recurrence_end_date),
                "id": tx_id,
            },
        )
        if res.rowcount == 0:
            return False

        self.db.execute("DELETE FROM transaction_tags WHERE transaction_id = :id", {"id": tx_id})
        self._insert_tags(tx_id, body.tag_ids)

        self.db.execute("DELETE FROM items WHERE transaction_id = :id", {"id": tx_id})
        self._insert_items(tx_id, self._items_for(body))
        return True

    def update_status(self, tx_id: int, status: str) -> bool:
        res = self.db.execute(
            "UPDATE transactions SET status = :status WHERE id = :id",
            {"status": status, "id": tx_id},
        )
        return res.rowcount > 0

    def materialize(self, virtual: Transaction, status: str = "completed") -> int:
        """
        Store a projected occurrence as a real row of the same group, with
        the requested status written in the same insert.
        """
        if not virtual.is_virtual:
            raise ValueError("only projected occurrences can be materialized")
        body = TransactionCreate(
            date=virtual.date,
            shop_name=virtual.shop_name,
            total_amount=virtual.total_amount,
            type=virtual.type,
            is_recurring=False,  # the monthly instance is not the generator
            is_debt=virtual.is_debt,
            debt_to=virtual.debt_to,
            tag_ids=list(virtual.tag_ids),
            payment_date=virtual.payment_date,
            items=[
                TransactionItemIn(
                    name=i.name, price=i.price, quantity=i.quantity, link=i.link, image_url=i.image_url,
                )
                for i in virtual.items
            ],
            group_id=virtual.group_id,
            recurrence_end_date=None,
        )
        return self.create(body, status=status)[0]

    def delete(self, tx_id: int) -> bool:
        self.db.execute("DELETE FROM items WHERE transaction_id = :id", {"id": tx_id})
        self.db.execute("DELETE FROM transaction_tags WHERE transaction_id = :id", {"id": tx_id})
        res = self.db.execute("DELETE FROM transactions WHERE id = :id", {"id": tx_id})
        return res.rowcount > 0

    def delete_group(self, group_id: str) -> int:
        rows = self.db.select("SELECT id FROM transactions WHERE group_id = :group_id", {"group_id": group_id})
        for row in rows:
            self.db.execute("DELETE FROM items WHERE transaction_id = :id", {"id": row["id"]})
            self.db.execute("DELETE FROM transaction_tags WHERE transaction_id = :id", {"id": row["id"]})
        res = self.db.execute("DELETE FROM transactions WHERE group_id = :group_id", {"group_id": group_id})
        return res.rowcount
