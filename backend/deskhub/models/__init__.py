from .auth import User
from .desks import Desk
from .bookings import Booking
from .inventory import InventoryItem, PlainItem, ComboItem, ComboComponent
from .orders import Order, OrderItem
from .ledger import Transaction

__all__ = [
    'User',
    'Desk',
    'Booking',
    'InventoryItem', 'PlainItem', 'ComboItem', 'ComboComponent',
    'Order', 'OrderItem',
    'Transaction',
]
