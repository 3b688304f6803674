"""Infrastructure layer for order state."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from search_orders.application.orders import OrderContext


class OrderRepository(Protocol):
    """Storage contract for in-flight orders."""

    def next_order_id(self) -> str: ...

    def save(self, order_id: str, context: "OrderContext") -> None: ...

    def get(self, order_id: str) -> "OrderContext | None": ...

    def list_orders(self) -> list[str]: ...

    def reset(self) -> None: ...


class InMemoryOrderRepository:
    """Keeps every order in process memory; nothing survives a restart."""

    def __init__(self) -> None:
        self._orders: dict[str, OrderContext] = {}
        self._counter = 0

    def next_order_id(self) -> str:
        self._counter += 1
        return f"order-{self._counter:05d}"

    def save(self, order_id: str, context: "OrderContext") -> None:
        self._orders[order_id] = context

    def get(self, order_id: str) -> "OrderContext | None":
        return self._orders.get(order_id)

    def list_orders(self) -> list[str]:
        return sorted(self._orders)

    def reset(self) -> None:
        self._orders.clear()
        self._counter = 0
