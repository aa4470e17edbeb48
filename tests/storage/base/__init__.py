"""Base test suites for state storage backends."""

from .state_suite import BaseStateStorageTestSuite, StateStorageContract

__all__ = [
    "BaseStateStorageTestSuite",
    "StateStorageContract",
]
