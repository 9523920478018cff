from .locations import Location, LocationType
from .suppliers import Supplier
from .inventory import InventoryItem, InventoryTransaction, TransactionType, TransactionStatus

__all__ = [
    'Location', 'LocationType',
    'Supplier',
    'InventoryItem', 'InventoryTransaction', 'TransactionType', 'TransactionStatus',
]
