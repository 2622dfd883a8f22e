from .auth import User, SessionToken
from .catalog import Category, Product, DiningTable
from .orders import Order, OrderItem, Payment, ReceiptSequence
from .inventory import InventoryStock, StockMovement, MovementSource, SourceKind
from .shifts import CashierShift
from .settings import Setting

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'DiningTable',
    'Order', 'OrderItem', 'Payment', 'ReceiptSequence',
    'InventoryStock', 'StockMovement', 'MovementSource', 'SourceKind',
    'CashierShift',
    'Setting',
]
