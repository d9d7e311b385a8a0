from .auth import User
from .inventory import InventoryItem, InventoryMovement
from .suitcases import Seller, Suitcase, SuitcaseItem, SuitcaseItemSale
from .settlements import Settlement, SoldItemRecord, SettlementLock

__all__ = [
    'User',
    'InventoryItem', 'InventoryMovement',
    'Seller', 'Suitcase', 'SuitcaseItem', 'SuitcaseItemSale',
    'Settlement', 'SoldItemRecord', 'SettlementLock',
]
