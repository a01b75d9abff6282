"""Dependency injection container for Beaver services.

Provides centralized service management and lifecycle control.
Improves testability by allowing the graph store and record store to be
replaced.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, TypeVar

from beaver_core.config import BeaverConfig
from beaver_core.storage.graph_store import GraphStore, Neo4jGraphStore
from beaver_core.storage.sqlite_store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceContainer:
    """Simple dependency injection container.

    Manages service lifecycle and provides lazy initialization.
    Services are registered as factory functions and created on first use.
    """

    def __init__(self) -> None:
        """Initialize the container with default services."""
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Callable[[], Any]] = {}
        self._singletons: set[str] = set()

        self._register_default_services()

    def _register_default_services(self) -> None:
        """Register default service factories."""
        self.register_factory("config", BeaverConfig.from_env, singleton=True)

        def create_record_store() -> RecordStore:
            return RecordStore(self.get_config().db_path)

        self.register_factory("store", create_record_store, singleton=True)

        # The driver connects lazily, so creating it never blocks on the network
        def create_graph_store() -> GraphStore:
            config = self.get_config()
            logger.info(
                f"Creating graph store for {config.neo4j_uri}",
                extra={"event": "graph_store_init", "uri": config.neo4j_uri},
            )
            return Neo4jGraphStore.from_config(config)

        self.register_factory("graph_store", create_graph_store, singleton=True)

    def register_factory(
        self,
        name: str,
        factory: Callable[[], T],
        singleton: bool = True,
    ) -> None:
        """Register a service factory.

        Args:
            name: Service name
            factory: Function that creates the service
            singleton: Whether to cache the service (default: True)
        """
        self._factories[name] = factory
        if singleton:
            self._singletons.add(name)

    def register_instance(self, name: str, instance: T) -> None:
        """Register a service instance directly.

        Useful for testing with fake graph stores.

        Args:
            name: Service name
            instance: Service instance
        """
        self._services[name] = instance

    def get(self, name: str, default: T | None = None) -> T | None:
        """Get a service by name.

        Args:
            name: Service name
            default: Default value if service not found

        Returns:
            Service instance or default

        Raises:
            KeyError: If service not found and no default provided
        """
        if name in self._services:
            return self._services[name]

        if name not in self._factories:
            if default is not None:
                return default
            raise KeyError(f"Service not found: {name}")

        instance = self._factories[name]()

        if name in self._singletons:
            self._services[name] = instance

        return instance

    def get_config(self) -> BeaverConfig:
        """Get the configuration (convenience method)."""
        return self.get("config")

    def get_store(self) -> RecordStore:
        """Get the record store (convenience method)."""
        return self.get("store")

    def get_graph_store(self) -> GraphStore:
        """Get the graph store (convenience method)."""
        return self.get("graph_store")

    @contextmanager
    def override(self, name: str, instance: Any):
        """Temporarily override a service instance.

        Args:
            name: Service name
            instance: Override instance

        Example:
            with container.override("graph_store", fake_graph):
                ...
            # Original service restored
        """
        original = self._services.get(name)

        self._services[name] = instance
        try:
            yield
        finally:
            if original is not None:
                self._services[name] = original
            else:
                del self._services[name]

    def clear(self) -> None:
        """Clear all cached services, closing the graph driver if one was created."""
        graph = self._services.get("graph_store")
        if graph is not None:
            graph.close()
        self._services.clear()

    def reset(self) -> None:
        """Reset the container to initial state.

        Clears cached services and keeps factories.
        """
        self.clear()


# Global container instance
_global_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the global service container.

    Returns:
        The global ServiceContainer instance
    """
    global _global_container
    if _global_container is None:
        _global_container = ServiceContainer()
    return _global_container


def reset_container() -> None:
    """Reset the global container.

    Useful for testing to ensure clean state between tests.
    """
    global _global_container
    if _global_container is not None:
        _global_container.reset()
    _global_container = None
