from .business import Business, Cashier
from .catalog import Department, Product
from .transactions import Transaction, TransactionItem
from .shifts import Shift

__all__ = [
    'Business', 'Cashier',
    'Department', 'Product',
    'Transaction', 'TransactionItem',
    'Shift',
]
