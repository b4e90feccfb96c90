from .accounts import User, Seller, SessionToken
from .catalog import Product
from .inventory import InventoryLogEntry
from .orders import CartItem, Order, Payment
from .loyalty import LoyaltyTransaction
from .notifications import Notification

__all__ = [
    'User', 'Seller', 'SessionToken',
    'Product',
    'InventoryLogEntry',
    'CartItem', 'Order', 'Payment',
    'LoyaltyTransaction',
    'Notification',
]
