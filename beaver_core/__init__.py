# Beaver Core Package

from beaver_core.container import ServiceContainer, get_container, reset_container

__all__ = [
    "ServiceContainer",
    "get_container",
    "reset_container",
]
