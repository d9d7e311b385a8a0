# Overview: Domain error taxonomy shared by the suitcase and settlement services.

"""
Error taxonomy

- NotFoundError: a suitcase, seller, settlement or item does not exist.
- InvalidItemState: illegal status transition, or a mutation of an item that
  is no longer in_possession. Never retried.
- InsufficientStock: a stock checkout would drive inventory negative.
- PermissionDenied: caller is not allowed to perform the action. Never retried.
- PersistenceFailure: the underlying read/write failed. Retry only where the
  failing step is idempotent (cleanup); otherwise surface to the operator.
- SettlementInProgress: another settlement holds the suitcase slot.
- InconsistentCleanup: items are still attached to the suitcase after every
  cleanup attempt.
"""


class MaletaError(Exception):
    """Base class for domain errors."""
    pass


class NotFoundError(MaletaError):
    pass


class SuitcaseNotFound(NotFoundError):
    pass


class SellerNotFound(NotFoundError):
    pass


class SettlementNotFound(NotFoundError):
    pass


class SuitcaseItemNotFound(NotFoundError):
    pass


class InventoryItemNotFound(NotFoundError):
    pass


class InvalidItemState(MaletaError):
    """Raised when an item status transition or mutation violates the state machine."""

    def __init__(self, message: str, *, item_id: int | None = None, status: str | None = None):
        super().__init__(message)
        self.item_id = item_id
        self.status = status


class InsufficientStock(MaletaError):
    pass


class PermissionDenied(MaletaError):
    pass


class PersistenceFailure(MaletaError):
    """Raised when a database read or write fails; the original error is __cause__."""
    pass


class SettlementInProgress(PersistenceFailure):
    pass


class InconsistentCleanup(MaletaError):
    def __init__(self, message: str, *, suitcase_id: int, remaining_item_ids: list[int]):
        super().__init__(message)
        self.suitcase_id = suitcase_id
        self.remaining_item_ids = remaining_item_ids


class InvalidCommissionRate(MaletaError, ValueError):
    """A seller or default commission rate outside [0, 1]."""
    pass
