"""
Settlement workflow tests.

Verifies:
- Items not presented are sold, presented ones go back to stock
- total_sales / commission for the 10/20/30 suitcase
- The suitcase ends empty after every settlement
- A second settlement never re-sells items
- A pendente settlement is finalized in place
- A settlement with sales cannot be moved back to pendente
- Sale annotations are copied to the sold-item records
- Concurrent settlements of one suitcase are rejected
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from maleta.models import Seller, Settlement, SettlementLock, SoldItemRecord
from maleta.services import inventory_service, settlement_service, suitcase_item_service
from maleta.services.errors import (
    PersistenceFailure,
    SellerNotFound,
    SettlementInProgress,
    SettlementNotFound,
    SuitcaseNotFound,
)
from maleta.time_utils import utcnow
from maleta.services.settlement_service import (
    SETTLEMENT_STATUS_COMPLETED,
    SETTLEMENT_STATUS_PENDING,
    SettlementError,
)


SETTLEMENT_DATE = datetime(2026, 10, 1, 12, 0, 0)


# =============================================================================
# CORE WORKFLOW
# =============================================================================


class TestCreateSettlement:

    def test_items_not_presented_are_sold(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, item_20, item_30) = loaded_suitcase

        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )

        assert settlement.status == SETTLEMENT_STATUS_COMPLETED
        assert settlement.total_sales_cents == 5000
        assert settlement.commission_cents == 1500
        assert settlement.commission_rate_applied == Decimal("0.3")
        assert sorted(r.suitcase_item_id for r in settlement.sold_items) == sorted(
            [item_20.id, item_30.id]
        )
        assert suitcase_item_service.count_attached_items(suitcase.id) == 0

    def test_presented_item_goes_back_to_stock(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, item_20, _) = loaded_suitcase

        settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )

        # 5 in stock, 1 checked out, 1 back
        assert inventory_service.get_available_quantity(item_10.inventory_id) == 5
        # sold units stay out of stock
        assert inventory_service.get_available_quantity(item_20.inventory_id) == 4

    def test_empty_items_present_sells_everything(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase

        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        assert settlement.total_sales_cents == 6000
        assert settlement.commission_cents == 1800
        assert len(settlement.sold_items) == 3

    def test_second_settlement_does_not_double_count(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase

        first = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )
        second = settlement_service.create_settlement(
            suitcase.id, seller.id, datetime(2026, 10, 2), items_present=[]
        )

        assert first.id != second.id
        assert second.total_sales_cents == 0
        assert second.commission_cents == 0
        assert second.sold_items == []
        assert db_session.query(SoldItemRecord).count() == 2

    def test_unknown_present_ids_are_ignored(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase

        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id, 987654]
        )

        assert settlement.total_sales_cents == 5000

    def test_present_ids_accept_dicts_and_strings(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, item_20, _) = loaded_suitcase

        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE,
            items_present=[{"id": item_10.id}, str(item_20.id)],
        )

        assert settlement.total_sales_cents == 3000

    def test_seller_defaults_to_suitcase_seller(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase

        settlement = settlement_service.create_settlement(suitcase.id, None, SETTLEMENT_DATE)

        assert settlement.seller_id == seller.id

    def test_seller_without_rate_uses_configured_default(self, app, db_session, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        no_rate = Seller(name="Sem taxa", commission_rate=None)
        db_session.add(no_rate)
        db_session.commit()

        settlement = settlement_service.create_settlement(suitcase.id, no_rate.id, SETTLEMENT_DATE)

        assert settlement.commission_rate_applied == Decimal(app.config["DEFAULT_COMMISSION_RATE"])
        assert settlement.commission_cents == 1800

    def test_next_settlement_date_is_stored(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        next_date = datetime(2026, 11, 1)

        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, next_settlement_date=next_date
        )

        assert settlement.next_settlement_date == next_date
        assert settlement.suitcase.next_settlement_date == next_date

    def test_sale_annotations_are_copied(self, db_session, seller, loaded_suitcase):
        suitcase, (_, item_20, _) = loaded_suitcase
        suitcase_item_service.record_sale_info(item_20.id, customer_name="Ana", payment_method="pix")

        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        record = next(r for r in settlement.sold_items if r.suitcase_item_id == item_20.id)
        assert record.customer_name == "Ana"
        assert record.payment_method == "pix"

    def test_lost_items_are_not_sold(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        suitcase_item_service.mark_item_lost(item_10.id)

        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        assert settlement.total_sales_cents == 5000
        assert suitcase_item_service.count_attached_items(suitcase.id) == 0


# =============================================================================
# PENDENTE SETTLEMENTS
# =============================================================================


class TestPendingSettlement:

    def test_pending_settlement_is_finalized_in_place(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        pending = Settlement(
            suitcase_id=suitcase.id,
            seller_id=seller.id,
            settlement_date=datetime(2026, 9, 1),
            status=SETTLEMENT_STATUS_PENDING,
        )
        db_session.add(pending)
        db_session.commit()

        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )

        assert settlement.id == pending.id
        assert settlement.status == SETTLEMENT_STATUS_COMPLETED
        assert settlement.total_sales_cents == 5000
        assert db_session.query(Settlement).count() == 1

    def test_only_one_pending_per_suitcase(self, db_session, seller, suitcase):
        for day in (1, 2):
            db_session.add(Settlement(
                suitcase_id=suitcase.id,
                seller_id=seller.id,
                settlement_date=datetime(2026, 9, day),
                status=SETTLEMENT_STATUS_COMPLETED,
            ))
        db_session.commit()
        first, second = db_session.query(Settlement).order_by(Settlement.id).all()

        settlement_service.update_settlement_status(first.id, SETTLEMENT_STATUS_PENDING)
        with pytest.raises(PersistenceFailure):
            settlement_service.update_settlement_status(second.id, SETTLEMENT_STATUS_PENDING)

    def test_settlement_with_sales_cannot_be_reopened(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )
        settlement_id = settlement.id

        with pytest.raises(SettlementError):
            settlement_service.update_settlement_status(settlement_id, SETTLEMENT_STATUS_PENDING)

        later = settlement_service.create_settlement(suitcase.id, seller.id, datetime(2026, 10, 15))
        assert later.id != settlement_id

        original = settlement_service.get_settlement_by_id(settlement_id)
        assert original.status == SETTLEMENT_STATUS_COMPLETED
        assert original.total_sales_cents == 5000
        assert original.total_sales_cents == sum(r.price_cents for r in original.sold_items)

    def test_settlement_without_sales_can_be_reopened(self, db_session, seller, suitcase):
        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        reopened = settlement_service.update_settlement_status(settlement.id, SETTLEMENT_STATUS_PENDING)

        assert reopened.status == SETTLEMENT_STATUS_PENDING

    def test_invalid_status(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        with pytest.raises(SettlementError):
            settlement_service.update_settlement_status(settlement.id, "cancelado")


# =============================================================================
# ERRORS AND CONCURRENCY
# =============================================================================


class TestSettlementErrors:

    def test_unknown_suitcase(self, db_session, seller):
        with pytest.raises(SuitcaseNotFound):
            settlement_service.create_settlement(999, seller.id, SETTLEMENT_DATE)

    def test_unknown_seller_changes_nothing(self, db_session, loaded_suitcase):
        suitcase, _ = loaded_suitcase

        with pytest.raises(SellerNotFound):
            settlement_service.create_settlement(suitcase.id, 999, SETTLEMENT_DATE)

        assert db_session.query(Settlement).count() == 0
        assert db_session.query(SettlementLock).count() == 0
        assert suitcase_item_service.count_attached_items(suitcase.id) == 3

    def test_seller_rate_above_one_is_rejected_by_schema(self, db_session):
        db_session.add(Seller(name="Taxa alta", commission_rate=Decimal("1.5")))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_settlement_date_required(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        with pytest.raises(SettlementError):
            settlement_service.create_settlement(suitcase.id, seller.id, None)

    def test_concurrent_settlement_rejected(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        db_session.add(SettlementLock(suitcase_id=suitcase.id, token="other-worker", acquired_at=utcnow()))
        db_session.commit()

        with pytest.raises(SettlementInProgress):
            settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        assert db_session.query(Settlement).count() == 0
        assert suitcase_item_service.count_attached_items(suitcase.id) == 3
        # the other worker's lock is untouched
        assert db_session.query(SettlementLock).one().token == "other-worker"

    def test_abandoned_lock_is_taken_over(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        db_session.add(SettlementLock(suitcase_id=suitcase.id, token="crashed", acquired_at=datetime(2020, 1, 1)))
        db_session.commit()

        settlement = settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)

        assert settlement.total_sales_cents == 6000
        assert db_session.query(SettlementLock).count() == 0

    def test_lock_released_after_success(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        settlement_service.create_settlement(suitcase.id, seller.id, SETTLEMENT_DATE)
        assert db_session.query(SettlementLock).count() == 0


# =============================================================================
# QUERIES
# =============================================================================


class TestSettlementQueries:

    def test_details_include_cost_and_profit(self, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, SETTLEMENT_DATE, items_present=[item_10.id]
        )

        details = settlement_service.get_settlement_details(settlement.id)

        # costs of the 20.00 and 30.00 items: 8.00 + 10.00
        assert details["total_cost_cents"] == 1800
        assert details["net_profit_cents"] == 5000 - 1500 - 1800
        assert details["suitcase"]["code"] == suitcase.code
        assert details["seller"]["name"] == seller.name
        assert len(details["sold_items"]) == 2
        assert details["total_sales"] == "50.00"
        assert details["commission_amount"] == "15.00"

    def test_get_unknown_settlement(self, db_session):
        with pytest.raises(SettlementNotFound):
            settlement_service.get_settlement_by_id(12345)

    def test_list_filters_and_order(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        older = settlement_service.create_settlement(suitcase.id, seller.id, datetime(2026, 9, 1))
        newer = settlement_service.create_settlement(suitcase.id, seller.id, datetime(2026, 10, 1))

        listed = settlement_service.list_settlements(seller_id=seller.id)
        assert [s.id for s in listed] == [newer.id, older.id]

        ranged = settlement_service.list_settlements(date_from="2026-09-15", date_to="2026-10-31")
        assert [s.id for s in ranged] == [newer.id]

        by_suitcase = settlement_service.get_settlements_by_suitcase(suitcase.id)
        assert len(by_suitcase) == 2
