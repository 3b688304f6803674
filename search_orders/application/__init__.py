"""Application services."""

from .orders import OrderNotFoundError, OrderService, get_order_service, reset_order_state
from .sequencer import SequenceError, Stage

__all__ = [
    "OrderNotFoundError",
    "OrderService",
    "SequenceError",
    "Stage",
    "get_order_service",
    "reset_order_state",
]
