from .reference import (
    Branch, TenantSettings, BranchSettings, ProductCategory, Product,
    Currency, PaymentMethod, Discount, Customer, Till,
)
from .inventory import BranchInventory, StockMovement, InventoryLoss, InventoryLossItem
from .sales import (
    Sale, SaleItem, Quotation, QuotationItem, Layby, LaybyItem,
    Payment, PaymentTarget, SaleTarget, LaybyTarget,
)
from .registers import Shift, CashMovement
from .day_end import DayEnd, DayEndShift, DayEndPayment
from .documents import DocumentSequence

__all__ = [
    'Branch', 'TenantSettings', 'BranchSettings', 'ProductCategory', 'Product',
    'Currency', 'PaymentMethod', 'Discount', 'Customer', 'Till',
    'BranchInventory', 'StockMovement', 'InventoryLoss', 'InventoryLossItem',
    'Sale', 'SaleItem', 'Quotation', 'QuotationItem', 'Layby', 'LaybyItem',
    'Payment', 'PaymentTarget', 'SaleTarget', 'LaybyTarget',
    'Shift', 'CashMovement',
    'DayEnd', 'DayEndShift', 'DayEndPayment',
    'DocumentSequence',
]
