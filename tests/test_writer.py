from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from cuoti.projection import project_month
from cuoti.schemas import TransactionCreate, TransactionItemIn
from cuoti.writer import TransactionWriter


def purchase(**overrides):
    data = {
        "date": date(2024, 1, 15),
        "shop_name": "Fravega",
        "total_amount": 1200.0,
        "installments": 6,
        "type": "purchase",
        "items": [TransactionItemIn(name="Heladera", price=1200.0, quantity=1)],
    }
    data.update(overrides)
    return TransactionCreate(**data)


def test_installment_purchase_expands_into_rows(writer, repo):
    ids = writer.create(purchase())

    assert len(ids) == 6
    rows = repo.get_transactions_by_group(repo.get_transaction(ids[0]).group_id)
    assert [r.date for r in rows] == [date(2024, m, 15) for m in range(1, 7)]
    assert [r.shop_name for r in rows] == [f"Fravega ({k}/6)" for k in range(1, 7)]
    assert all(r.total_amount == pytest.approx(200.0) for r in rows)
    assert all(r.status == "pending" for r in rows)
    assert all(r.items[0].price == pytest.approx(200.0) for r in rows)


def test_installments_reconstruct_grand_total(writer, repo):
    ids = writer.create(purchase(total_amount=1000.0, installments=3))
    group_id = repo.get_transaction(ids[0]).group_id
    total = sum(r.total_amount for r in repo.get_transactions_by_group(group_id))
    assert total == pytest.approx(1000.0)


def test_installment_dates_clamp_at_month_end(writer, repo):
    ids = writer.create(purchase(date=date(2024, 1, 31), payment_date=date(2024, 1, 31), installments=3))
    rows = [repo.get_transaction(i) for i in ids]
    assert [r.date for r in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
    assert [r.payment_date for r in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


def test_single_purchase_keeps_name_and_gets_group(writer, repo):
    ids = writer.create(purchase(installments=1))
    tx = repo.get_transaction(ids[0])
    assert tx.shop_name == "Fravega"
    assert tx.group_id
    assert tx.total_amount == 1200.0


def test_subscription_ignores_installments_and_gets_synthetic_item(writer, repo):
    ids = writer.create(TransactionCreate(
        date=date(2024, 1, 10), shop_name="Spotify", total_amount=1000.0, installments=6,
        type="subscription", is_recurring=True,
    ))
    assert len(ids) == 1
    tx = repo.get_transaction(ids[0])
    assert tx.is_recurring
    assert tx.shop_name == "Spotify"
    assert [(i.name, i.price) for i in tx.items] == [("Spotify", 1000.0)]


def test_provided_group_id_is_reused(writer, repo):
    ids = writer.create(purchase(installments=1, group_id="g-123"))
    assert repo.get_transaction(ids[0]).group_id == "g-123"


def test_tags_are_attached_to_every_installment(writer, repo, db):
    tag_id = db.execute("INSERT INTO tags (name, color) VALUES ('Hogar', '#ff0000')").last_insert_id
    ids = writer.create(purchase(installments=2, tag_ids=[tag_id]))
    assert all(repo.get_transaction(i).tag_ids == [tag_id] for i in ids)


def test_update_is_single_row_scoped(writer, repo, db):
    tag_id = db.execute("INSERT INTO tags (name, color) VALUES ('Hogar', '#ff0000')").last_insert_id
    ids = writer.create(purchase(installments=3))

    ok = writer.update(ids[1], purchase(
        shop_name="Fravega (2/3) ajustada", total_amount=450.0, installments=1, tag_ids=[tag_id],
        date=date(2024, 2, 20), items=[TransactionItemIn(name="Heladera", price=450.0)],
    ))

    assert ok
    edited = repo.get_transaction(ids[1])
    assert edited.total_amount == 450.0
    assert edited.date == date(2024, 2, 20)
    assert edited.tag_ids == [tag_id]
    assert [i.price for i in edited.items] == [450.0]
    assert repo.get_transaction(ids[0]).total_amount == pytest.approx(400.0)
    assert repo.get_transaction(ids[2]).shop_name == "Fravega (3/3)"


def test_update_missing_row(writer):
    assert writer.update(999, purchase()) is False


def test_update_status(writer, repo):
    tx_id = writer.create(purchase(installments=1))[0]
    assert writer.update_status(tx_id, "completed")
    assert repo.get_transaction(tx_id).status == "completed"
    assert writer.update_status(999, "completed") is False


def test_delete_removes_items_and_tags(writer, repo, db):
    tag_id = db.execute("INSERT INTO tags (name, color) VALUES ('Hogar', '#ff0000')").last_insert_id
    tx_id = writer.create(purchase(installments=1, tag_ids=[tag_id]))[0]

    assert writer.delete(tx_id)
    assert repo.get_transaction(tx_id) is None
    assert db.select("SELECT * FROM items WHERE transaction_id = :id", {"id": tx_id}) == []
    assert db.select("SELECT * FROM transaction_tags WHERE transaction_id = :id", {"id": tx_id}) == []
    assert writer.delete(tx_id) is False


def test_delete_group_removes_every_installment(writer, repo, db):
    ids = writer.create(purchase(installments=4))
    other = writer.create(purchase(installments=1, shop_name="Otro"))[0]
    group_id = repo.get_transaction(ids[0]).group_id

    assert writer.delete_group(group_id) == 4
    assert repo.get_transactions_by_group(group_id) == []
    assert db.select("SELECT COUNT(*) AS n FROM items")[0]["n"] == 1
    assert repo.get_transaction(other) is not None


def test_materialize_virtual_with_status(writer, repo):
    gen_id = writer.create(TransactionCreate(
        date=date(2024, 1, 10), shop_name="Netflix", total_amount=1000.0,
        type="subscription", is_recurring=True,
    ))[0]
    virtual = project_month(repo.get_transactions(), 2024, 3)[0]

    new_id = writer.materialize(virtual, "completed")

    real = repo.get_transaction(new_id)
    assert real.status == "completed"
    assert real.date == date(2024, 3, 10)
    assert not real.is_recurring
    assert real.recurrence_end_date is None
    assert real.group_id == repo.get_transaction(gen_id).group_id
    march = project_month(repo.get_transactions(), 2024, 3)
    assert [t.id for t in march] == [new_id]


def test_materialized_row_is_not_dated_after_its_payment(writer, repo):
    writer.create(TransactionCreate(
        date=date(2024, 1, 28), payment_date=date(2024, 2, 5), shop_name="Spotify", total_amount=900.0,
        type="subscription", is_recurring=True,
    ))
    virtual = project_month(repo.get_transactions(), 2024, 4)[0]

    real = repo.get_transaction(writer.materialize(virtual))

    assert real.date == date(2024, 4, 5)
    assert real.payment_date == date(2024, 4, 5)
    assert [t.id for t in project_month(repo.get_transactions(), 2024, 4)] == [real.id]


def test_materialize_rejects_real_rows(writer, repo):
    tx_id = writer.create(purchase(installments=1))[0]
    with pytest.raises(ValueError):
        writer.materialize(repo.get_transaction(tx_id))


class FailingAfter:
    """Gateway wrapper whose n-th transaction insert blows up."""

    def __init__(self, db, fail_on):
        self.db = db
        self.fail_on = fail_on
        self.inserts = 0

    def select(self, query, params=None):
        return self.db.select(query, params)

    def execute(self, query, params=None):
        if str(query).startswith("INSERT INTO transactions"):
            self.inserts += 1
            if self.inserts == self.fail_on:
                raise OperationalError(str(query), params, Exception("disk I/O error"))
        return self.db.execute(query, params)


def test_partial_failure_leaves_written_installments(db, repo):
    writer = TransactionWriter(FailingAfter(db, fail_on=3))

    with pytest.raises(OperationalError):
        writer.create(purchase(installments=6, group_id="partial"))

    assert len(repo.get_transactions_by_group("partial")) == 2
