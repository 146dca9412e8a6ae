from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction
from eventbooking.stores.memory_store import InMemoryInventoryStore
from eventbooking.stores.sql_store import SqlAlchemyInventoryStore

__all__ = [
    "InventoryStore",
    "InventoryTransaction",
    "InMemoryInventoryStore",
    "SqlAlchemyInventoryStore",
]
