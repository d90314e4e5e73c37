from .inventory import Product
from .auth import User
from .settings import StoreSettings, CreditTerm
from .customers import Customer, CreditAdjustment
from .sales import Sale, SaleItem
from .carts import Cart, CartLine
from .holds import HoldTransaction, HoldLine
from .documents import ReturnTransaction, ReturnItem, MasterLedgerEvent

__all__ = [
    'Product',
    'User',
    'StoreSettings', 'CreditTerm',
    'Customer', 'CreditAdjustment',
    'Sale', 'SaleItem',
    'Cart', 'CartLine',
    'HoldTransaction', 'HoldLine',
    'ReturnTransaction', 'ReturnItem', 'MasterLedgerEvent',
]
