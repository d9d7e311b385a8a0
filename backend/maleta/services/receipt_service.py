# Overview: Settlement receipt generation through a pluggable renderer.

"""
The receipt renderer is a collaborator: given the settlement details it
returns the rendered bytes and a reference URL. The service stores the URL
on the settlement. Receipts are never generated as part of the settlement
itself; this is an explicit follow-up action.

TextReceiptRenderer is the built-in renderer (plain text written to
RECEIPT_DIR). Document layout belongs to whatever renderer is plugged in.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Protocol

from flask import current_app

from ..models import Settlement
from .concurrency import commit_or_raise
from .settlement_service import get_settlement_by_id, get_settlement_details

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedReceipt:
    content: bytes
    url: str


class ReceiptRenderer(Protocol):
    def render(self, details: dict) -> RenderedReceipt:
        ...


class TextReceiptRenderer:
    """Plain-text receipt stored as <directory>/settlement-<id>.txt."""

    def __init__(self, directory: str, base_url: str):
        self.directory = directory
        self.base_url = base_url.rstrip("/")

    def _lines(self, details: dict) -> list[str]:
        suitcase = details.get("suitcase") or {}
        seller = details.get("seller") or {}
        lines = [
            "RECIBO DE ACERTO DE MALETA",
            f"Acerto: {details['id']}",
            f"Maleta: {suitcase.get('code') or 'N/A'}",
            f"Revendedora: {seller.get('name') or 'N/A'}",
            f"Data do acerto: {details.get('settlement_date') or 'N/A'}",
            f"Proximo acerto: {details.get('next_settlement_date') or 'N/A'}",
            "",
            "Itens vendidos:",
        ]
        for item in details.get("sold_items", []):
            product = item.get("product") or {}
            lines.append(
                f"  {product.get('sku') or '-'}  {product.get('name') or 'Produto sem nome'}  {item['price']}"
            )
        lines += [
            "",
            f"Total de vendas: {details['total_sales']}",
            f"Comissao: {details['commission_amount']}",
        ]
        return lines

    def render(self, details: dict) -> RenderedReceipt:
        filename = f"settlement-{details['id']}.txt"
        content = ("\n".join(self._lines(details)) + "\n").encode("utf-8")
        os.makedirs(self.directory, exist_ok=True)
        with open(os.path.join(self.directory, filename), "wb") as fh:
            fh.write(content)
        return RenderedReceipt(content=content, url=f"{self.base_url}/{filename}")


def default_renderer() -> TextReceiptRenderer:
    directory = current_app.config.get("RECEIPT_DIR") or os.path.join(
        current_app.instance_path, "receipts"
    )
    return TextReceiptRenderer(directory, current_app.config.get("RECEIPT_BASE_URL", "/receipts"))


def generate_receipt(settlement_id: int, renderer: ReceiptRenderer | None = None) -> Settlement:
    """
    Render the settlement's receipt and persist its reference URL.

    Raises:
        SettlementNotFound
        PersistenceFailure: the URL could not be stored
    """
    details = get_settlement_details(settlement_id)
    rendered = (renderer or default_renderer()).render(details)

    settlement = get_settlement_by_id(settlement_id)
    settlement.receipt_url = rendered.url
    commit_or_raise(f"receipt url of settlement {settlement_id}")
    logger.info(
        "Receipt for settlement %s rendered (%s bytes): %s",
        settlement_id, len(rendered.content), rendered.url,
    )
    return settlement
