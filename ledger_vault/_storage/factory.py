"""Storage factory for centralized state backend creation."""

from typing import Type, Dict, Callable
from ledger_vault.base import BaseStateStorage


class StorageFactory:
    """Factory for creating state storage backends with validation and registration."""

    _state_backends: Dict[str, Callable[[], Type[BaseStateStorage]]] = {}

    ALLOWED_STATE = {"json", "redis", "memory"}

    @classmethod
    def register_state(cls, name: str, backend_loader: Callable[[], Type[BaseStateStorage]]) -> None:
        """Register a state storage backend.

        Args:
            name: Backend name (must be in ALLOWED_STATE)
            backend_loader: Function that returns the state storage class

        Raises:
            ValueError: If backend name not in allowed list
        """
        if name not in cls.ALLOWED_STATE:
            raise ValueError(f"Backend {name} not in allowed state backends: {cls.ALLOWED_STATE}")
        cls._state_backends[name] = backend_loader

    @classmethod
    def create_state_storage(
        cls,
        backend: str,
        namespace: str,
        global_config: dict,
        **kwargs
    ) -> BaseStateStorage:
        """Create a state storage instance.

        Args:
            backend: Backend name
            namespace: Storage namespace
            global_config: Global configuration dict
            **kwargs: Additional backend-specific parameters

        Returns:
            Initialized state storage instance

        Raises:
            ValueError: If backend not registered
        """
        if backend not in cls._state_backends:
            _register_backends()
            if backend not in cls._state_backends:
                raise ValueError(f"Unknown state backend: {backend}. Available: {list(cls._state_backends.keys())}")

        backend_class = cls._state_backends[backend]()
        return backend_class(
            namespace=namespace,
            global_config=global_config,
            **kwargs
        )


def _get_json_storage():
    """Lazy loader for JSON state storage."""
    from .kv_json import JsonStateStorage
    return JsonStateStorage


def _get_redis_storage():
    """Lazy loader for Redis state storage."""
    from .kv_redis import RedisStateStorage
    return RedisStateStorage


def _get_memory_storage():
    """Lazy loader for in-memory state storage."""
    from .kv_memory import MemoryStateStorage
    return MemoryStateStorage


def _register_backends():
    """Register built-in backends with lazy loaders. Called when factory is first used."""
    if not StorageFactory._state_backends:
        StorageFactory.register_state("json", _get_json_storage)
        StorageFactory.register_state("redis", _get_redis_storage)
        StorageFactory.register_state("memory", _get_memory_storage)
