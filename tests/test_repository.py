from datetime import date, datetime

import pytest

from cuoti.mapper import map_transaction, to_bool, to_date
from cuoti.schemas import TagIn, TransactionCreate, WishlistItemIn, WishlistItemUpdate, WishlistOptionIn


def test_mapper_coerces_storage_types():
    tx = map_transaction({
        "id": 1,
        "date": "2024-03-10",
        "shop_name": "Netflix",
        "total_amount": 1000,
        "status": "pending",
        "is_debt": 0,
        "is_recurring": 1,
        "type": None,
        "group_id": "g",
        "payment_date": "2024-03-12 00:00:00",
        "recurrence_end_date": None,
        "created_at": "2024-03-10 12:30:00",
    }, tag_ids=[2, 3])

    assert tx.date == date(2024, 3, 10)
    assert tx.payment_date == date(2024, 3, 12)
    assert tx.recurrence_end_date is None
    assert tx.is_recurring is True
    assert tx.is_debt is False
    assert tx.type == "purchase"
    assert tx.tag_ids == [2, 3]
    assert tx.created_at == datetime(2024, 3, 10, 12, 30)
    assert tx.currency == "ARS"


@pytest.mark.parametrize("raw, expected", [(1, True), (0, False), (None, False), ("true", True), ("0", False)])
def test_to_bool(raw, expected):
    assert to_bool(raw) is expected


def test_to_date_accepts_datetimes():
    assert to_date(datetime(2024, 1, 2, 15, 0)) == date(2024, 1, 2)
    assert to_date("") is None


def test_tags_crud_and_cascade(repo, writer, db):
    hogar = repo.add_tag(TagIn(name="Hogar", color="#123456"))
    ocio = repo.add_tag(TagIn(name="Ocio", color="#abcdef"))
    tx_id = writer.create(TransactionCreate(
        date=date(2024, 1, 1), shop_name="Easy", total_amount=10.0, tag_ids=[hogar.id, ocio.id],
    ))[0]
    item_id = repo.add_wishlist_item(WishlistItemIn(name="Silla", price=50.0, tag_ids=[hogar.id]))

    assert [t.name for t in repo.get_tags()] == ["Hogar", "Ocio"]
    assert repo.delete_tag(hogar.id)

    assert [t.name for t in repo.get_tags()] == ["Ocio"]
    assert repo.get_transaction(tx_id).tag_ids == [ocio.id]
    assert repo.get_wishlist_item(item_id).tag_ids == []
    assert repo.delete_tag(hogar.id) is False


def test_tags_only_attributed_to_their_transaction(repo, writer):
    tag = repo.add_tag(TagIn(name="Hogar", color="#123456"))
    tagged = writer.create(TransactionCreate(date=date(2024, 1, 1), shop_name="A", total_amount=1.0,
                                             tag_ids=[tag.id]))[0]
    plain = writer.create(TransactionCreate(date=date(2024, 1, 2), shop_name="B", total_amount=1.0))[0]

    by_id = {t.id: t for t in repo.get_transactions()}
    assert by_id[tagged].tag_ids == [tag.id]
    assert by_id[plain].tag_ids == []


def test_wishlist_item_with_options(repo):
    item_id = repo.add_wishlist_item(WishlistItemIn(name="Notebook", price=100000.0, priority=2))
    repo.add_wishlist_option(item_id, WishlistOptionIn(installments=3, interest_rate=0))
    repo.add_wishlist_option(item_id, WishlistOptionIn(installments=12, interest_rate=40))

    item = repo.get_wishlist_item(item_id)
    assert item.priority == 2
    cash, financed = item.options
    assert cash.description == "Sin interés"
    assert cash.total_amount == pytest.approx(100000.0)
    assert cash.monthly_amount == pytest.approx(100000.0 / 3)
    assert financed.description == "Con interés"
    assert financed.total_amount == pytest.approx(140000.0)
    assert financed.difference == pytest.approx(40000.0)
    assert financed.percent_difference == pytest.approx(40.0)


def test_wishlist_option_for_missing_item(repo):
    assert repo.add_wishlist_option(404, WishlistOptionIn(installments=3)) is None


def test_wishlist_partial_update(repo):
    tag = repo.add_tag(TagIn(name="Tech", color="#000"))
    item_id = repo.add_wishlist_item(WishlistItemIn(name="Notebook", price=100.0, notes="gamer"))

    assert repo.update_wishlist_item(item_id, WishlistItemUpdate(price=120.0, tag_ids=[tag.id]))

    item = repo.get_wishlist_item(item_id)
    assert item.name == "Notebook"
    assert item.notes == "gamer"
    assert item.price == 120.0
    assert item.tag_ids == [tag.id]
    assert repo.update_wishlist_item(999, WishlistItemUpdate(price=1.0)) is False


def test_wishlist_delete_cascades_options(repo, db):
    item_id = repo.add_wishlist_item(WishlistItemIn(name="Bici", price=10.0))
    option_id = repo.add_wishlist_option(item_id, WishlistOptionIn(installments=6))

    assert repo.delete_wishlist_item(item_id)
    assert repo.get_wishlist() == []
    assert db.select("SELECT * FROM wishlist_options WHERE id = :id", {"id": option_id}) == []
    assert repo.delete_wishlist_option(option_id) is False


def test_wishlist_newest_first(repo):
    first = repo.add_wishlist_item(WishlistItemIn(name="A", price=1.0))
    second = repo.add_wishlist_item(WishlistItemIn(name="B", price=1.0))
    assert [w.id for w in repo.get_wishlist()] == [second, first]
