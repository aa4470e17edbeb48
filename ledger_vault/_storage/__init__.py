from .factory import StorageFactory

__all__ = ["StorageFactory"]
