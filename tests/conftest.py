"""Global pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ledger_vault._storage.kv_memory import MemoryStateStorage
from tests.utils import FakeClock, FakeDrive, FakeOAuthProvider, InMemoryDataset, make_token_manager


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state():
    return MemoryStateStorage(namespace="test")


@pytest.fixture
def oauth_provider():
    return FakeOAuthProvider()


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def dataset():
    return InMemoryDataset()


@pytest.fixture
def token_manager(oauth_provider, clock, state):
    return make_token_manager(oauth_provider, clock, state)
