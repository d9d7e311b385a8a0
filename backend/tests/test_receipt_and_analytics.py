"""
Receipt generation and sales analytics tests.
"""

import os
from datetime import datetime

import pytest

from maleta.services import (
    analytics_service,
    receipt_service,
    settlement_service,
    suitcase_item_service,
)
from maleta.services.errors import SettlementNotFound, SuitcaseNotFound
from maleta.services.receipt_service import RenderedReceipt
from maleta.time_utils import utcnow


# =============================================================================
# RECEIPTS
# =============================================================================


class StubRenderer:
    def __init__(self):
        self.rendered = []

    def render(self, details):
        self.rendered.append(details)
        return RenderedReceipt(content=b"pdf", url=f"https://files.example/acerto-{details['id']}.pdf")


class TestReceipt:

    def test_not_generated_automatically(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        settlement = settlement_service.create_settlement(suitcase.id, seller.id, datetime(2026, 10, 1))
        assert settlement.receipt_url is None

    def test_renderer_url_is_stored(self, db_session, seller, loaded_suitcase):
        suitcase, _ = loaded_suitcase
        settlement = settlement_service.create_settlement(suitcase.id, seller.id, datetime(2026, 10, 1))
        renderer = StubRenderer()

        updated = receipt_service.generate_receipt(settlement.id, renderer=renderer)

        assert updated.receipt_url == f"https://files.example/acerto-{settlement.id}.pdf"
        assert renderer.rendered[0]["total_sales"] == "60.00"
        assert len(renderer.rendered[0]["sold_items"]) == 3

    def test_text_renderer_writes_file(self, app, db_session, seller, loaded_suitcase):
        suitcase, (item_10, _, _) = loaded_suitcase
        settlement = settlement_service.create_settlement(
            suitcase.id, seller.id, datetime(2026, 10, 1), items_present=[item_10.id]
        )

        updated = receipt_service.generate_receipt(settlement.id)

        filename = f"settlement-{settlement.id}.txt"
        assert updated.receipt_url == f"/receipts/{filename}"
        with open(os.path.join(app.config["RECEIPT_DIR"], filename), encoding="utf-8") as fh:
            text = fh.read()
        assert "RECIBO DE ACERTO DE MALETA" in text
        assert suitcase.code in text
        assert "Total de vendas: 50.00" in text
        assert "Comissao: 15.00" in text

    def test_unknown_settlement(self, db_session):
        with pytest.raises(SettlementNotFound):
            receipt_service.generate_receipt(999, renderer=StubRenderer())


# =============================================================================
# ANALYTICS
# =============================================================================


class TestClassifyFrequency:

    @pytest.mark.parametrize("count,expected", [
        (0, "baixa"), (2, "baixa"), (3, "média"), (5, "média"), (6, "alta"),
    ])
    def test_thresholds(self, count, expected):
        assert analytics_service.classify_frequency(count) == expected


class TestSalesAnalytics:

    def test_top_sold_items(self, db_session, seller, suitcase, make_product):
        popular = make_product(1000, quantity=10)
        rare = make_product(5000, quantity=10)
        for _ in range(3):
            suitcase_item_service.add_item_to_suitcase(suitcase.id, popular.id, 1)
            settlement_service.create_settlement(suitcase.id, seller.id, utcnow())
        suitcase_item_service.add_item_to_suitcase(suitcase.id, rare.id, 1)
        settlement_service.create_settlement(suitcase.id, seller.id, utcnow())

        top = analytics_service.get_top_sold_items(suitcase.id)

        assert [row["inventory_id"] for row in top] == [popular.id, rare.id]
        assert top[0]["count"] == 3
        assert top[0]["total_value_cents"] == 3000
        assert top[0]["product"]["sku"] == popular.sku

        frequency = analytics_service.get_item_sales_frequency(popular.id, seller.id)
        assert frequency == {"count": 3, "frequency": "média"}

        popular_items = analytics_service.get_popular_items(seller.id, limit=1)
        assert [row["inventory_id"] for row in popular_items] == [popular.id]

    def test_old_sales_fall_outside_the_window(self, db_session, seller, suitcase, make_product):
        product = make_product(1000, quantity=10)
        suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)
        settlement_service.create_settlement(suitcase.id, seller.id, datetime(2020, 1, 1))

        assert analytics_service.get_item_sales_frequency(product.id, seller.id, days=90)["count"] == 0
        assert analytics_service.get_popular_items(seller.id) == []

    def test_top_items_unknown_suitcase(self, db_session):
        with pytest.raises(SuitcaseNotFound):
            analytics_service.get_top_sold_items(999)
