"""
Reconciliation cleanup tests.

Verifies:
- Every attached item is removed, whatever its status
- in_possession leftovers are returned to stock first
- Running it again is a no-op
- Exhausted retries raise InconsistentCleanup
"""

import pytest

from maleta.models import SuitcaseItemSale
from maleta.services import cleanup_service, inventory_service, suitcase_item_service
from maleta.services.errors import InconsistentCleanup, SuitcaseNotFound


class TestCleanupSuitcase:

    def test_removes_all_items(self, db_session, loaded_suitcase):
        suitcase, (item_10, item_20, _) = loaded_suitcase
        suitcase_item_service.mark_item_lost(item_10.id)
        suitcase_item_service.record_sale_info(item_20.id, customer_name="Ana")

        removed = cleanup_service.cleanup_suitcase(suitcase.id)

        assert removed == 3
        assert suitcase_item_service.count_attached_items(suitcase.id) == 0
        assert db_session.query(SuitcaseItemSale).count() == 0

    def test_in_possession_leftovers_are_restocked(self, db_session, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase

        cleanup_service.cleanup_suitcase(suitcase.id)

        assert inventory_service.get_available_quantity(item_10.inventory_id) == 5

    def test_lost_items_are_not_restocked(self, db_session, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        suitcase_item_service.mark_item_lost(item_10.id)

        cleanup_service.cleanup_suitcase(suitcase.id)

        assert inventory_service.get_available_quantity(item_10.inventory_id) == 4

    def test_idempotent(self, db_session, loaded_suitcase):
        suitcase, _ = loaded_suitcase

        assert cleanup_service.cleanup_suitcase(suitcase.id) == 3
        assert cleanup_service.cleanup_suitcase(suitcase.id) == 0

    def test_unknown_suitcase(self, db_session):
        with pytest.raises(SuitcaseNotFound):
            cleanup_service.cleanup_suitcase(4242)

    def test_exhausted_attempts_raise(self, db_session, loaded_suitcase, monkeypatch):
        suitcase, items = loaded_suitcase
        monkeypatch.setattr(cleanup_service, "_cleanup_pass", lambda suitcase_id: 0)

        with pytest.raises(InconsistentCleanup) as exc_info:
            cleanup_service.cleanup_suitcase(suitcase.id, max_attempts=2)

        assert exc_info.value.suitcase_id == suitcase.id
        assert sorted(exc_info.value.remaining_item_ids) == sorted(i.id for i in items)
