from possync.models.connection import PosConnection
from possync.models.raw import PosOrder, PosOrderItem, PosPayment
from possync.models.rule import CategorizationRule, Category
from possync.models.sales import DailySales, UnifiedSale
from possync.models.tenant import Tenant

__all__ = [
    "CategorizationRule",
    "Category",
    "DailySales",
    "PosConnection",
    "PosOrder",
    "PosOrderItem",
    "PosPayment",
    "Tenant",
    "UnifiedSale",
]
