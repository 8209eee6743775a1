"""Purchase orders, delivery and receipt confirmation."""

from procurement_modules.purchase_order.config import PurchaseOrderConfig
from procurement_modules.purchase_order.models import (
    DeliveryConfirmation,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderRequest,
    PurchaseOrderResult,
    PurchaseOrderStatus,
    ReceiptCondition,
    ReceiptConfirmation,
    ReceivedLine,
)
from procurement_modules.purchase_order.service import PurchaseOrderService

__all__ = [
    "DeliveryConfirmation",
    "PurchaseOrder",
    "PurchaseOrderConfig",
    "PurchaseOrderLine",
    "PurchaseOrderRequest",
    "PurchaseOrderResult",
    "PurchaseOrderService",
    "PurchaseOrderStatus",
    "ReceiptCondition",
    "ReceiptConfirmation",
    "ReceivedLine",
]
