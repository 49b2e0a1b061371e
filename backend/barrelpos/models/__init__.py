from .tenancy import Store, DocumentSequence
from .auth import User, SessionToken
from .catalog import Supplier, Product, Customer
from .orders import Order, OrderItem, Payment
from .shifts import Shift
from .inventory import InventoryTransaction
from .conversations import ConversationSessionRecord

__all__ = [
    "Store",
    "DocumentSequence",
    "User",
    "SessionToken",
    "Supplier",
    "Product",
    "Customer",
    "Order",
    "OrderItem",
    "Payment",
    "Shift",
    "InventoryTransaction",
    "ConversationSessionRecord",
]
