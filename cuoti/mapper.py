"""
Row -> entity conversion.

The gateway hands back plain dict rows with SQLite storage types
(0/1 integers for flags, ISO strings for dates); everything here turns
them into the pydantic entities the rest of the package works with.
"""
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from cuoti.schemas import Tag, Transaction, TransactionItem, WishlistItem, WishlistOption
from cuoti.finance_utils import installment_amount, financing_surcharge

Row = Dict[str, Any]


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes")
    return bool(value)


def to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.fromisoformat(str(value).strip())


def group_pairs(rows: Iterable[Row], key: str, value: str) -> Dict[Any, List[Any]]:
    """Many-to-many join rows -> {owner_id: [related ids]}."""
    grouped: Dict[Any, List[Any]] = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(row[value])
    return grouped


def map_item(row: Row) -> TransactionItem:
    return TransactionItem(
        id=row["id"],
        transaction_id=row["transaction_id"],
        name=row["name"],
        price=float(row["price"]),
        quantity=int(row.get("quantity") or 1),
        link=row.get("link"),
        image_url=row.get("image_url"),
    )


def map_transaction(row: Row, tag_ids: Optional[List[int]] = None,
                    items: Optional[List[TransactionItem]] = None) -> Transaction:
    return Transaction(
        id=row["id"],
        user_id=row.get("user_id"),
        date=to_date(row["date"]),
        shop_name=row["shop_name"],
        total_amount=float(row["total_amount"]),
        currency=row.get("currency") or "ARS",
        status=row.get("status") or "completed",
        is_debt=to_bool(row.get("is_debt")),
        debt_to=row.get("debt_to"),
        type=row.get("type") or "purchase",
        is_recurring=to_bool(row.get("is_recurring")),
        group_id=row.get("group_id"),
        payment_date=to_date(row.get("payment_date")),
        recurrence_end_date=to_date(row.get("recurrence_end_date")),
        tag_ids=list(tag_ids or []),
        items=list(items or []),
        created_at=to_datetime(row.get("created_at")),
    )


def map_transactions(rows: List[Row], tag_rows: List[Row], item_rows: List[Row]) -> List[Transaction]:
    tags = group_pairs(tag_rows, "transaction_id", "tag_id")
    items: Dict[int, List[TransactionItem]] = defaultdict(list)
    for row in item_rows:
        items[row["transaction_id"]].append(map_item(row))
    return [map_transaction(row, tags.get(row["id"]), items.get(row["id"])) for row in rows]


def map_tag(row: Row) -> Tag:
    return Tag(id=row["id"], name=row["name"], color=row["color"])


def map_option(row: Row, price: float) -> WishlistOption:
    total = float(row["total_amount"])
    installments = int(row["installments"])
    difference, percent = financing_surcharge(total, price)
    return WishlistOption(
        id=row["id"],
        item_id=row["item_id"],
        installments=installments,
        interest_rate=float(row.get("interest_rate") or 0.0),
        total_amount=total,
        description=row.get("description"),
        monthly_amount=installment_amount(total, installments),
        difference=difference,
        percent_difference=percent,
    )


def map_wishlist_item(row: Row, tag_ids: Optional[List[int]] = None,
                      option_rows: Optional[List[Row]] = None) -> WishlistItem:
    price = float(row["price"])
    return WishlistItem(
        id=row["id"],
        name=row["name"],
        price=price,
        link=row.get("link"),
        image_url=row.get("image_url"),
        priority=int(row.get("priority") or 0),
        notes=row.get("notes"),
        tag_ids=list(tag_ids or []),
        options=[map_option(o, price) for o in (option_rows or [])],
    )
