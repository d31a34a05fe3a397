# =============================================================================
# pos_core/services/__init__.py
# Service layer
# =============================================================================
"""
Service layer for the POS core.

Services return ServiceResult objects instead of raising, so screens can
render ``result.error`` inline.

Usage Example:
-------------
    from pos_core.services import OrderService

    orders = OrderService(ctx.data_service)
    result = await orders.place_order({"items": cart, "subtotal": 250})
    if result.queued:
        print("Order saved offline, it will sync when back online")
    elif not result:
        print(result.error)
"""

from .base_service import BaseService, ServiceResult
from .order_service import OrderService, ORDERS_COLLECTION, STATUS_TIME_FIELDS

__all__ = [
    "BaseService",
    "ServiceResult",
    "OrderService",
    "ORDERS_COLLECTION",
    "STATUS_TIME_FIELDS",
]
