from decimal import Decimal

import pytest

from app import directory, laundry, payments
from app.errors import InvalidInput, NotFound


def test_order_and_payment_are_created_together(db, actor, guest) -> None:
    order = laundry.create_laundry(db, actor, guest.id, "2 shirts, 1 trouser", price=150)

    assert order.status == "pending"
    assert order.guest.name == "Abebe Kebede"
    payment = order.payment
    assert payment.amount == Decimal("150")
    assert (payment.status, payment.method, payment.service_type) == ("paid", "cash", "LAUNDRY")
    assert payment.description == "Laundry charge"
    assert payment.guest_id == guest.id

    listed = laundry.list_laundry(db)
    assert [o.id for o in listed] == [order.id]
    assert listed[0].guest.name == "Abebe Kebede"


def test_failed_create_leaves_no_payment(db, actor, guest) -> None:
    with pytest.raises(NotFound, match="Guest not found"):
        laundry.create_laundry(db, actor, 999, "socks", price=20)
    with pytest.raises(InvalidInput):
        laundry.create_laundry(db, actor, guest.id, "socks", price=-1)
    with pytest.raises(InvalidInput):
        laundry.create_laundry(db, actor, guest.id, "socks", status="lost")
    assert laundry.list_laundry(db) == []
    assert payments.list_payments(db) == []


def test_search_and_status_filters(db, actor, guest) -> None:
    other = directory.create_guest(db, actor, "Sara Alemu", "0911223344")
    shirts = laundry.create_laundry(db, actor, guest.id, "3 shirts", price=90)
    laundry.create_laundry(db, actor, other.id, "bed sheets", status="in_progress", price=60)

    assert [o.items for o in laundry.list_laundry(db, q="SHIRT")] == ["3 shirts"]
    assert [o.items for o in laundry.list_laundry(db, q="alemu")] == ["bed sheets"]
    assert [o.items for o in laundry.list_laundry(db, status="in_progress")] == ["bed sheets"]
    assert [o.id for o in laundry.list_laundry(db, guest_id=guest.id)] == [shirts.id]


def test_update_and_status_change(db, actor, guest) -> None:
    order = laundry.create_laundry(db, actor, guest.id, "towels")
    assert order.price == Decimal("0")

    done = laundry.update_laundry_status(db, actor, order.id, "done")
    assert done.status == "done"
    edited = laundry.update_laundry(db, actor, order.id, {"items": "2 towels", "price": Decimal("40")})
    assert (edited.items, edited.price, edited.status) == ("2 towels", Decimal("40"), "done")

    with pytest.raises(InvalidInput, match="Status must be one of"):
        laundry.update_laundry_status(db, actor, order.id, "washed")
    with pytest.raises(NotFound):
        laundry.update_laundry_status(db, actor, 999, "done")


def test_delete_keeps_the_payment(db, actor, guest) -> None:
    order = laundry.create_laundry(db, actor, guest.id, "jacket", price=75)
    order_id, payment_id = order.id, order.payment.id

    laundry.delete_laundry(db, actor, order_id)

    with pytest.raises(NotFound):
        laundry.get_laundry(db, order_id)
    kept = payments.get_payment(db, payment_id)
    assert kept.laundry_id is None
    assert kept.guest_id == guest.id
