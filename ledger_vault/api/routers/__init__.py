"""API routers."""

from . import auth, backup, health

__all__ = ["auth", "backup", "health"]
