"""
Shared pytest fixtures for the BitGuard test suite.
"""

import pytest

from bitguard_core.manager import WalletManager
from bitguard_core.storage import MemoryStore
from bitguard_core.vault import VaultCipher

ABANDON_ABOUT = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


@pytest.fixture
def fast_cipher():
    """Cipher with the minimum KDF cost so tests stay quick."""
    return VaultCipher(iterations=1_000, legacy_iterations=1_000)


@pytest.fixture
def memory_store():
    """Empty in-memory persistence."""
    return MemoryStore()


@pytest.fixture
def manager(memory_store, fast_cipher):
    """Uninitialised mainnet manager over an in-memory store."""
    return WalletManager(memory_store, cipher=fast_cipher, network="main")


@pytest.fixture
def abandon_mnemonic():
    """The all-zero-entropy BIP-39 test phrase."""
    return ABANDON_ABOUT
