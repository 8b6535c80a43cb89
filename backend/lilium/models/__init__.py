from .catalog import ZONES, User, Address, Company, Category, Product
from .inventory import StockChangeRecord
from .orders import (
    ORDER_STATUSES, TERMINAL_STATUSES, PAYOUT_STATUSES, Order, OrderLine, OrderStatusHistory, DocumentSequence,
)
from .promotions import Promotion
from .payouts import PAYOUT_METHODS, PAYOUT_REQUEST_STATUSES, RELEASED_PAYOUT_STATUSES, Payout, PayoutOrder
from .carts import SavedCart

__all__ = [
    'ZONES', 'User', 'Address', 'Company', 'Category', 'Product',
    'StockChangeRecord',
    'ORDER_STATUSES', 'TERMINAL_STATUSES', 'PAYOUT_STATUSES',
    'Order', 'OrderLine', 'OrderStatusHistory', 'DocumentSequence',
    'Promotion',
    'PAYOUT_METHODS', 'PAYOUT_REQUEST_STATUSES', 'RELEASED_PAYOUT_STATUSES', 'Payout', 'PayoutOrder',
    'SavedCart',
]
