"""Infrastructure layer exports."""

from .orders import InMemoryOrderRepository, OrderRepository
from .registries import (
    HttpRegistryClient,
    OfflineRegistryClient,
    ProviderError,
    RegistryClient,
    configure_registry_client,
    get_registry_client,
)

__all__ = [
    "HttpRegistryClient",
    "InMemoryOrderRepository",
    "OfflineRegistryClient",
    "OrderRepository",
    "ProviderError",
    "RegistryClient",
    "configure_registry_client",
    "get_registry_client",
]
