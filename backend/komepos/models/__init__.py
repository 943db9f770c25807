from .tenancy import Company, Location, DeliveryZone, delivery_zone_locations
from .auth import User
from .catalog import Product, OptionGroup, Option, AddOn
from .promotions import Promotion
from .orders import Order, OrderItem
from .shifts import Shift, CashDrawerTransaction
from .documents import DocumentSequence

__all__ = [
    'Company', 'Location', 'DeliveryZone', 'delivery_zone_locations',
    'User',
    'Product', 'OptionGroup', 'Option', 'AddOn',
    'Promotion',
    'Order', 'OrderItem',
    'Shift', 'CashDrawerTransaction',
    'DocumentSequence',
]
