"""
Suitcase item store and inventory stock tests.

Verifies:
- Checkout decrements stock and logs a movement in the same commit
- Repeated checkout of the same product merges into one item
- Stock can never go negative
- Quantity changes, returns and losses respect the state machine
- Sale annotations only on in_possession items
"""

import pytest

from maleta.models import InventoryMovement, SuitcaseItem
from maleta.services import inventory_service, suitcase_item_service
from maleta.services.errors import (
    InsufficientStock,
    InvalidItemState,
    InventoryItemNotFound,
    SuitcaseNotFound,
)
from maleta.services.inventory_service import MOVEMENT_CHECKOUT, MOVEMENT_RETURN


# =============================================================================
# CHECKOUT
# =============================================================================


class TestAddItemToSuitcase:

    def test_checkout_decrements_stock(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=4)

        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 3)

        assert item.status == "in_possession"
        assert item.quantity == 3
        assert inventory_service.get_available_quantity(product.id) == 1

        movements = inventory_service.list_movements(product.id)
        assert [(m.movement_type, m.quantity_delta) for m in movements] == [(MOVEMENT_CHECKOUT, -3)]
        assert movements[0].suitcase_item_id == item.id

    def test_second_checkout_merges(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=4)

        first = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)
        second = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 2)

        assert first.id == second.id
        assert second.quantity == 3
        assert suitcase_item_service.count_attached_items(suitcase.id) == 1

    def test_insufficient_stock_leaves_nothing_behind(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=1)

        with pytest.raises(InsufficientStock):
            suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 2)

        assert inventory_service.get_available_quantity(product.id) == 1
        assert suitcase_item_service.count_attached_items(suitcase.id) == 0
        assert db_session.query(InventoryMovement).count() == 0

    def test_unknown_suitcase(self, db_session, make_product):
        product = make_product(1500)
        with pytest.raises(SuitcaseNotFound):
            suitcase_item_service.add_item_to_suitcase(999, product.id, 1)

    def test_unknown_inventory_item(self, db_session, suitcase):
        with pytest.raises(InventoryItemNotFound):
            suitcase_item_service.add_item_to_suitcase(suitcase.id, 999, 1)

    def test_quantity_must_be_positive(self, db_session, suitcase, make_product):
        product = make_product(1500)
        with pytest.raises(ValueError):
            suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 0)


# =============================================================================
# QUANTITY / RETURN / LOSS
# =============================================================================


class TestItemMutations:

    def test_increase_quantity_takes_more_stock(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=5)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)

        suitcase_item_service.update_item_quantity(item.id, 4)

        assert inventory_service.get_available_quantity(product.id) == 1

    def test_decrease_quantity_gives_stock_back(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=5)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 3)

        suitcase_item_service.update_item_quantity(item.id, 1)

        assert inventory_service.get_available_quantity(product.id) == 4
        types = [m.movement_type for m in inventory_service.list_movements(product.id)]
        assert MOVEMENT_RETURN in types

    def test_quantity_increase_beyond_stock(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=2)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)

        with pytest.raises(InsufficientStock):
            suitcase_item_service.update_item_quantity(item.id, 5)

        db_session.expire_all()
        assert db_session.get(SuitcaseItem, item.id).quantity == 1
        assert inventory_service.get_available_quantity(product.id) == 1

    def test_return_restocks(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=5)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 2)

        returned = suitcase_item_service.return_item_to_inventory(item.id)

        assert returned.status == "returned"
        assert inventory_service.get_available_quantity(product.id) == 5

    def test_returned_item_is_frozen(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=5)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 2)
        suitcase_item_service.return_item_to_inventory(item.id)

        with pytest.raises(InvalidItemState):
            suitcase_item_service.update_item_quantity(item.id, 3)
        with pytest.raises(InvalidItemState):
            suitcase_item_service.return_item_to_inventory(item.id)

        assert inventory_service.get_available_quantity(product.id) == 5

    def test_lost_item_does_not_touch_stock(self, db_session, suitcase, make_product):
        product = make_product(1500, quantity=5)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)

        lost = suitcase_item_service.mark_item_lost(item.id)

        assert lost.status == "lost"
        assert inventory_service.get_available_quantity(product.id) == 4

    def test_status_filter(self, db_session, suitcase, make_product):
        kept = suitcase_item_service.add_item_to_suitcase(suitcase.id, make_product(1000).id, 1)
        lost = suitcase_item_service.add_item_to_suitcase(suitcase.id, make_product(2000).id, 1)
        suitcase_item_service.mark_item_lost(lost.id)

        held = suitcase_item_service.get_suitcase_items(suitcase.id, status="in_possession")

        assert [i.id for i in held] == [kept.id]


# =============================================================================
# SALE ANNOTATIONS
# =============================================================================


class TestSaleInfo:

    def test_upsert_only_writes_given_fields(self, db_session, suitcase, make_product):
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, make_product(1000).id, 1)

        suitcase_item_service.record_sale_info(item.id, customer_name="Ana")
        sale = suitcase_item_service.record_sale_info(item.id, payment_method="pix")

        assert sale.customer_name == "Ana"
        assert sale.payment_method == "pix"

    def test_rejected_for_lost_item(self, db_session, suitcase, make_product):
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, make_product(1000).id, 1)
        suitcase_item_service.mark_item_lost(item.id)

        with pytest.raises(InvalidItemState):
            suitcase_item_service.record_sale_info(item.id, customer_name="Ana")


class TestStockAdjustment:

    def test_manual_adjustment_is_logged(self, db_session, make_product):
        product = make_product(1000, quantity=2)

        inventory_service.adjust_quantity(product.id, 3, reason="recount")
        db_session.commit()

        assert inventory_service.get_available_quantity(product.id) == 5
        movement = inventory_service.list_movements(product.id)[0]
        assert movement.movement_type == inventory_service.MOVEMENT_ADJUST
        assert movement.reason == "recount"

    def test_adjustment_cannot_go_negative(self, db_session, make_product):
        product = make_product(1000, quantity=2)

        with pytest.raises(InsufficientStock):
            inventory_service.adjust_quantity(product.id, -3)
