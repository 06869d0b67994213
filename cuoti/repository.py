from typing import List, Optional

from sqlalchemy import bindparam, text

from cuoti.db import Database
from cuoti.finance_utils import financed_total
from cuoti.mapper import group_pairs, map_tag, map_transactions, map_wishlist_item
from cuoti.schemas import (
    Tag, TagIn, Transaction, WishlistItem, WishlistItemIn, WishlistItemUpdate, WishlistOptionIn,
)

_TAGS_FOR = text(
    "SELECT transaction_id, tag_id FROM transaction_tags WHERE transaction_id IN :ids ORDER BY tag_id"
).bindparams(bindparam("ids", expanding=True))

_ITEMS_FOR = text(
    "SELECT * FROM items WHERE transaction_id IN :ids ORDER BY id ASC"
).bindparams(bindparam("ids", expanding=True))

_WISHLIST_TAGS_FOR = text(
    "SELECT item_id, tag_id FROM wishlist_item_tags WHERE item_id IN :ids ORDER BY tag_id"
).bindparams(bindparam("ids", expanding=True))

_OPTIONS_FOR = text(
    "SELECT * FROM wishlist_options WHERE item_id IN :ids ORDER BY id ASC"
).bindparams(bindparam("ids", expanding=True))


class Repository:
    """Read side for transactions, plus tag and wishlist bookkeeping."""

    def __init__(self, db: Database):
        self.db = db

    # ---- transactions ----

    def _hydrate(self, rows) -> List[Transaction]:
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        tag_rows = self.db.select(_TAGS_FOR, {"ids": ids})
        item_rows = self.db.select(_ITEMS_FOR, {"ids": ids})
        return map_transactions(rows, tag_rows, item_rows)

    def get_transactions(self) -> List[Transaction]:
        rows = self.db.select("SELECT * FROM transactions ORDER BY date DESC, id DESC")
        return self._hydrate(rows)

    def get_transaction(self, tx_id: int) -> Optional[Transaction]:
        rows = self.db.select("SELECT * FROM transactions WHERE id = :id", {"id": tx_id})
        found = self._hydrate(rows)
        return found[0] if found else None

    def get_transactions_by_group(self, group_id: str) -> List[Transaction]:
        rows = self.db.select(
            "SELECT * FROM transactions WHERE group_id = :group_id ORDER BY date ASC, id ASC",
            {"group_id": group_id},
        )
        return self._hydrate(rows)

    # ---- tags ----

    def get_tags(self) -> List[Tag]:
        return [map_tag(r) for r in self.db.select("SELECT * FROM tags ORDER BY id ASC")]

    def add_tag(self, body: TagIn) -> Tag:
        res = self.db.execute(
            "INSERT INTO tags (name, color) VALUES (:name, :color)",
            {"name": body.name, "color": body.color},
        )
        return Tag(id=res.last_insert_id, name=body.name, color=body.color)

    def delete_tag(self, tag_id: int) -> bool:
        res = self.db.execute("DELETE FROM tags WHERE id = :id", {"id": tag_id})
        self.db.execute("DELETE FROM transaction_tags WHERE tag_id = :id", {"id": tag_id})
        self.db.execute("DELETE FROM wishlist_item_tags WHERE tag_id = :id", {"id": tag_id})
        return res.rowcount > 0

    # ---- wishlist ----

    def get_wishlist(self) -> List[WishlistItem]:
        rows = self.db.select("SELECT * FROM wishlist_items ORDER BY created_at DESC, id DESC")
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        tags = group_pairs(self.db.select(_WISHLIST_TAGS_FOR, {"ids": ids}), "item_id", "tag_id")
        options = {}
        for o in self.db.select(_OPTIONS_FOR, {"ids": ids}):
            options.setdefault(o["item_id"], []).append(o)
        return [map_wishlist_item(r, tags.get(r["id"]), options.get(r["id"])) for r in rows]

    def get_wishlist_item(self, item_id: int) -> Optional[WishlistItem]:
        return next((w for w in self.get_wishlist() if w.id == item_id), None)

    def _set_wishlist_tags(self, item_id: int, tag_ids: List[int]) -> None:
        self.db.execute("DELETE FROM wishlist_item_tags WHERE item_id = :id", {"id": item_id})
        for tag_id in tag_ids:
            self.db.execute(
                "INSERT INTO wishlist_item_tags (item_id, tag_id) VALUES (:item_id, :tag_id)",
                {"item_id": item_id, "tag_id": tag_id},
            )

    def add_wishlist_item(self, body: WishlistItemIn) -> int:
        res = self.db.execute(
            "INSERT INTO wishlist_items (name, price, link, image_url, notes, priority) "
            "VALUES (:name, :price, :link, :image_url, :notes, :priority)",
            {
                "name": body.name,
                "price": body.price,
                "link": body.link,
                "image_url": body.image_url,
                "notes": body.notes,
                "priority": body.priority or 0,
            },
        )
        item_id = res.last_insert_id
        if body.tag_ids:
            self._set_wishlist_tags(item_id, body.tag_ids)
        return item_id

    def update_wishlist_item(self, item_id: int, body: WishlistItemUpdate) -> bool:
        # fields left as None keep their stored value
        res = self.db.execute(
            """UPDATE wishlist_items SET
                name = COALESCE(:name, name),
                price = COALESCE(:price, price),
                link = COALESCE(:link, link),
                image_url = COALESCE(:image_url, image_url),
                notes = COALESCE(:notes, notes),
                priority = COALESCE(:priority, priority)
            WHERE id = :id""",
            {
                "name": body.name,
                "price": body.price,
                "link": body.link,
                "image_url": body.image_url,
                "notes": body.notes,
                "priority": body.priority,
                "id": item_id,
            },
        )
        if res.rowcount == 0:
            return False
        if body.tag_ids is not None:
            self._set_wishlist_tags(item_id, body.tag_ids)
        return True

    def delete_wishlist_item(self, item_id: int) -> bool:
        self.db.execute("DELETE FROM wishlist_options WHERE item_id = :id", {"id": item_id})
        self.db.execute("DELETE FROM wishlist_item_tags WHERE item_id = :id", {"id": item_id})
        res = self.db.execute("DELETE FROM wishlist_items WHERE id = :id", {"id": item_id})
        return res.rowcount > 0

    def add_wishlist_option(self, item_id: int, body: WishlistOptionIn) -> Optional[int]:
        rows = self.db.select("SELECT price FROM wishlist_items WHERE id = :id", {"id": item_id})
        if not rows:
            return None
        total = financed_total(float(rows[0]["price"]), body.interest_rate)
        res = self.db.execute(
            "INSERT INTO wishlist_options (item_id, installments, interest_rate, total_amount, description) "
            "VALUES (:item_id, :installments, :interest_rate, :total_amount, :description)",
            {
                "item_id": item_id,
                "installments": body.installments,
                "interest_rate": body.interest_rate,
                "total_amount": total,
                "description": "Sin interés" if body.interest_rate == 0 else "Con interés",
            },
        )
        return res.last_insert_id

    def delete_wishlist_option(self, option_id: int) -> bool:
        res = self.db.execute("DELETE FROM wishlist_options WHERE id = :id", {"id": option_id})
        return res.rowcount > 0
