# =============================================================================
# pos_core/services/order_service.py
# Order placement and kitchen status tracking
# =============================================================================
"""
OrderService - places orders and moves them through the kitchen workflow.

Order ids are human-readable ``MMDDXXX`` strings (month, day, and the
day's running order number), written with an upsert so the id is ours and
not the store's. Every write goes through UnifiedDataService, so orders
placed offline are queued like any other write.

Status flow:
    pending -> preparing -> ready -> completed
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pos_core.errors import DataValidationError
from pos_core.remote import Record, Subscription
from pos_core.utils import MS_PER_SECOND, Clock, iso_from_ms, now_ms
from .base_service import BaseService, ServiceResult

if TYPE_CHECKING:
    from pos_core.offline import UnifiedDataService

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"

# Status -> field stamped with the transition time
STATUS_TIME_FIELDS = {
    "preparing": "preparationStartTime",
    "ready": "readyTime",
    "completed": "completedTime",
}


def _number(value: Any, default: float = 0) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


class OrderService(BaseService):
    """
    Order workflow on top of the data façade.

    Usage:
        orders = OrderService(ctx.data_service)
        result = await orders.place_order({"items": cart, "subtotal": 250})
        if result:
            print(f"Order #{result.data['id']}")
    """

    def __init__(self, data_service: UnifiedDataService, clock: Optional[Clock] = None):
        super().__init__()
        self._data = data_service
        self._clock = clock or now_ms

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock() / MS_PER_SECOND, tz=timezone.utc)

    async def generate_order_id(self) -> str:
        """
        Next order id for today (UTC), e.g. ``0305007``.

        Scans today's orders for the highest ``MMDDXXX`` number and adds one.
        """
        now = self._now()
        prefix = now.strftime("%m%d")
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)
        start_ms = int(day_start.timestamp() * MS_PER_SECOND)
        end_ms = int(day_end.timestamp() * MS_PER_SECOND)

        todays_orders = await self._data.get_collection_once(
            ORDERS_COLLECTION,
            [
                ("createdAt", ">=", iso_from_ms(start_ms)),
                ("createdAt", "<", iso_from_ms(end_ms)),
            ],
        )

        highest = 0
        for order in todays_orders:
            order_id = str(order.get("id") or "")
            if len(order_id) == 7 and order_id.startswith(prefix) and order_id[4:].isdigit():
                highest = max(highest, int(order_id[4:]))

        return f"{prefix}{highest + 1:03d}"

    @staticmethod
    def normalize_items(items: List[Dict[str, Any]]) -> List[Record]:
        """Coerce cart lines into the stored order-item shape."""
        normalized = []
        for item in items:
            item = item or {}
            price = _number(item.get("price"))
            normalized.append({
                "itemId": item.get("id"),
                "name": item.get("name") or "Unknown Item",
                "price": price,
                "quantity": int(_number(item.get("qty") or item.get("quantity"), 1)),
                "addOns": [
                    {
                        "name": (addon or {}).get("name") or "Unknown Add-on",
                        "price": _number((addon or {}).get("price")),
                    }
                    for addon in item.get("addOns") or []
                ],
                "specialInstructions": item.get("specialInstructions") or "",
                "totalItemPrice": _number(item.get("totalItemPrice"), price),
            })
        return normalized

    async def place_order(self, order: Dict[str, Any]) -> ServiceResult:
        """
        Validate, price and store a new order with status ``pending``.

        Returns:
            ServiceResult with ``data={"id": order_id}``; ``queued`` is set
            when the order was saved offline.
        """
        async def _place() -> ServiceResult:
            if not order or not order.get("items"):
                raise DataValidationError(
                    "Order must contain at least one item", field="items", expected="non-empty list"
                )

            order_id = await self.generate_order_id()
            subtotal = _number(order.get("subtotal") or order.get("total"))
            discount = _number(order.get("discountAmount"))
            created = iso_from_ms(self._clock())

            data = dict(order)
            data.update({
                "items": self.normalize_items(order["items"]),
                "subtotal": subtotal,
                "total": max(0.0, subtotal - discount),
                "discountCode": order.get("discountCode"),
                "discountAmount": discount,
                "discountName": order.get("discountName"),
                "tableNumber": order.get("tableNumber"),
                "customerName": order.get("customerName"),
                "userId": order.get("userId"),
                "source": order.get("source") or "customer",
                "status": "pending",
                "timestamp": created,
                "createdAt": created,
            })

            with self.log_operation(f"Placing order {order_id}"):
                result = await self._data.upsert_document(ORDERS_COLLECTION, order_id, data)
            if result.success:
                result.data = {"id": order_id}
            return result

        return await self.run_guarded("place order", _place)

    async def update_status(self, order_id: str, status: str, extra: Optional[Dict[str, Any]] = None) -> ServiceResult:
        """Move an order to ``status``, stamping the matching time field."""
        payload: Dict[str, Any] = {"status": status}
        time_field = STATUS_TIME_FIELDS.get(status)
        if time_field:
            payload[time_field] = iso_from_ms(self._clock())
        payload.update(extra or {})
        logger.info(f"Order {order_id} -> {status}")
        return await self._data.update_document(ORDERS_COLLECTION, order_id, payload)

    async def update_order(self, order_id: str, updates: Dict[str, Any]) -> ServiceResult:
        payload = dict(updates)
        payload["updatedAt"] = iso_from_ms(self._clock())
        return await self._data.update_document(ORDERS_COLLECTION, order_id, payload)

    def subscribe_orders(
        self,
        on_next: Callable[[List[Record]], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
        status: Optional[str] = None,
        table_number: Optional[Any] = None,
        user_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Subscription:
        """Live order list, oldest first, optionally filtered."""
        filters = {
            "status": status,
            "tableNumber": table_number,
            "userId": user_id,
            "paymentMethod": payment_method,
        }
        conditions = [(field, "==", value) for field, value in filters.items() if value]
        return self._data.subscribe_collection(
            ORDERS_COLLECTION,
            on_next,
            on_error,
            conditions=conditions,
            order=("timestamp", "asc"),
        )
