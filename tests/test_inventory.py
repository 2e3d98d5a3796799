import threading

import pytest

from app import inventory
from app.errors import InvalidInput, NotFound


@pytest.fixture
def towels(db, actor):
    return inventory.create_item(db, actor, "Towels", "Linen", "pcs", sku="LIN-001", quantity=10, min_threshold=4)


def test_movements_update_quantity_and_append_log(db, actor, towels) -> None:
    item_id = towels.id
    item, movement = inventory.record_movement(db, actor, item_id, "IN", 5, "delivery")
    assert (item.quantity, movement.type, movement.resulting_quantity) == (15, "IN", 15)
    assert inventory.record_movement(db, actor, item_id, "OUT", 12, "rooms")[0].quantity == 3
    assert inventory.record_movement(db, actor, item_id, "ADJUST", 7, "stock take")[0].quantity == 7

    log = inventory.list_movements(db, item_id)
    assert [(m.type, m.quantity, m.resulting_quantity) for m in log] == [
        ("ADJUST", 7, 7),
        ("OUT", 12, 3),
        ("IN", 5, 15),
    ]
    assert log[-1].reason == "delivery"
    assert len(inventory.list_movements(db, item_id, limit=0)) == 1


def test_rejected_movements_change_nothing(db, actor, towels) -> None:
    item_id = towels.id
    with pytest.raises(InvalidInput, match="Insufficient stock"):
        inventory.record_movement(db, actor, item_id, "OUT", 11)
    with pytest.raises(InvalidInput, match="Quantity must be > 0"):
        inventory.record_movement(db, actor, item_id, "IN", 0)
    with pytest.raises(InvalidInput, match="Quantity cannot be negative"):
        inventory.record_movement(db, actor, item_id, "ADJUST", -1)
    with pytest.raises(InvalidInput, match="Invalid movement type"):
        inventory.record_movement(db, actor, item_id, "LOSS", 1)
    with pytest.raises(NotFound):
        inventory.record_movement(db, actor, 999, "IN", 1)

    assert inventory.get_item(db, item_id).quantity == 10
    assert inventory.list_movements(db, item_id) == []


def test_adjust_to_zero_is_allowed(db, actor, towels) -> None:
    item, _ = inventory.record_movement(db, actor, towels.id, "ADJUST", 0)
    assert item.quantity == 0
    assert inventory.is_low_stock(item)


def test_update_item_cannot_touch_quantity(db, actor, towels) -> None:
    updated = inventory.update_item(
        db, actor, towels.id, {"name": "Bath towels", "quantity": 99, "min_threshold": 12}
    )
    assert updated.name == "Bath towels"
    assert updated.quantity == 10
    assert updated.min_threshold == 12

    with pytest.raises(InvalidInput):
        inventory.update_item(db, actor, towels.id, {"unit": "crates"})
    with pytest.raises(InvalidInput):
        inventory.create_item(db, actor, "Rice", "Kitchen", quantity=-1)


def test_list_filters_and_metrics(db, actor, towels) -> None:
    inventory.create_item(db, actor, "Sheets", "Linen", "pcs", quantity=2, min_threshold=5)
    inventory.create_item(db, actor, "Coffee", "Kitchen", "kg", quantity=8, min_threshold=2)

    assert {i.name for i in inventory.list_items(db, category="Linen")} == {"Towels", "Sheets"}
    assert [i.name for i in inventory.list_items(db, q="lin-0")] == ["Towels"]
    assert [i.name for i in inventory.list_items(db, low=True)] == ["Sheets"]

    metrics = inventory.inventory_metrics(db)
    assert metrics["total_items"] == 3
    assert metrics["total_quantity"] == 20
    assert metrics["low_stock"] == 1
    assert metrics["categories"]["Linen"] == {"count": 2, "quantity": 12}


def test_delete_item_removes_its_movements(db, actor, towels) -> None:
    item_id = towels.id
    inventory.record_movement(db, actor, item_id, "IN", 1)
    inventory.delete_item(db, actor, item_id)
    with pytest.raises(NotFound):
        inventory.get_item(db, item_id)
    with pytest.raises(NotFound):
        inventory.list_movements(db, item_id)


def test_each_movement_reports_its_own_row(session_factory, db, actor, towels) -> None:
    item_id = towels.id
    db.commit()

    attempts = 6
    barrier = threading.Barrier(attempts)
    reported = []
    lock = threading.Lock()

    def receive() -> None:
        session = session_factory()
        try:
            barrier.wait()
            _, movement = inventory.record_movement(session, actor, item_id, "IN", 1, "delivery")
            row = (movement.id, movement.resulting_quantity)
        finally:
            session.close()
        with lock:
            reported.append(row)

    threads = [threading.Thread(target=receive) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len({movement_id for movement_id, _ in reported}) == attempts
    assert sorted(q for _, q in reported) == list(range(11, 11 + attempts))
    assert inventory.get_item(db, item_id).quantity == 10 + attempts
