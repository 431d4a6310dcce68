import pytest

from pinvault.vault.storage import MemoryStorage


@pytest.fixture
def storage():
    """Fresh in-memory storage backend."""
    return MemoryStorage()
