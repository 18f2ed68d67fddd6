"""
Wallet lifecycle for BitGuard.

``WalletManager`` is the seam between the key/vault core and whatever
front end drives it.  It owns the in-memory ``WalletRecord`` and moves
through three states:

    UNINITIALIZED --create/restore--> UNLOCKED --lock--> LOCKED
          ^                              ^                  |
          |                              +-----unlock-------+
          +------------------- wipe (from any state)

Usage:
    manager = WalletManager(FileStore("data/wallet"))
    record = manager.create("correcthorsebattery")
    manager.lock()
    manager.unlock("correcthorsebattery")
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any

from bitguard_core.errors import (
    DecryptionError,
    PasswordPolicyError,
    WalletAccessError,
    WalletStateError,
)
from bitguard_core.ledger_source import LedgerSource, NullLedgerSource, TxSummary
from bitguard_core.storage import Persistence, open_store
from bitguard_core.vault import VaultCipher
from bitguard_core.wallet import (
    WalletRecord,
    create_wallet,
    generate_mnemonic,
    get_network,
)

logger = logging.getLogger("bitguard.manager")


class WalletState(Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class WalletManager:
    """
    Creates, seals, unlocks and wipes the single wallet of a storage slot.

    All transitions hold one re-entrant lock, so at most one of them
    touches the persisted envelope at a time.
    """

    DEFAULT_STORAGE_KEY = "bitguard_wallet"

    def __init__(
        self,
        persistence: Persistence,
        cipher: VaultCipher | None = None,
        network: str = "main",
        storage_key: str = DEFAULT_STORAGE_KEY,
        min_password_length: int = 8,
        ledger: LedgerSource | None = None,
    ):
        self._persistence = persistence
        self._cipher = cipher or VaultCipher()
        self._network = get_network(network).name
        self._storage_key = storage_key
        self._min_password_length = min_password_length
        self._ledger = ledger or NullLedgerSource()
        self._lock = threading.RLock()
        self._record: WalletRecord | None = None
        if persistence.load(storage_key) is not None:
            self._state = WalletState.LOCKED
        else:
            self._state = WalletState.UNINITIALIZED

    @classmethod
    def from_config(cls, cfg: Any, persistence: Persistence | None = None,
                    ledger: LedgerSource | None = None) -> WalletManager:
        """Build a manager from a ``BitGuardConfig``."""
        return cls(
            persistence if persistence is not None else open_store(cfg.storage),
            cipher=VaultCipher(cfg.vault.kdf_iterations, cfg.vault.legacy_iterations),
            network=cfg.wallet.network,
            storage_key=cfg.wallet.storage_key,
            min_password_length=cfg.wallet.min_password_length,
            ledger=ledger,
        )

    # ---- read-only views ----

    @property
    def state(self) -> WalletState:
        return self._state

    @property
    def network(self) -> str:
        return self._network

    @property
    def record(self) -> WalletRecord | None:
        return self._record

    @property
    def address(self) -> str:
        return self._require_record().address

    @property
    def public_key(self) -> str:
        return self._require_record().public_key

    def balance(self) -> int:
        """Balance in satoshis from the injected ledger source."""
        return self._ledger.get_balance(self._require_record().address)

    def history(self) -> list[TxSummary]:
        return self._ledger.get_history(self._require_record().address)

    # ---- transitions ----

    def create(self, password: str, confirm: str | None = None) -> WalletRecord:
        """Generate a new phrase, derive the wallet and seal it."""
        with self._lock:
            self._require_state(WalletState.UNINITIALIZED, "create")
            self._check_password(password, confirm)
            return self._provision(generate_mnemonic(), password)

    def restore(self, mnemonic: str, password: str,
                confirm: str | None = None) -> WalletRecord:
        """Import an existing recovery phrase."""
        with self._lock:
            self._require_state(WalletState.UNINITIALIZED, "restore")
            self._check_password(password, confirm)
            return self._provision(mnemonic, password)

    def _provision(self, mnemonic: str, password: str) -> WalletRecord:
        record = create_wallet(mnemonic, self._network)
        envelope = self._cipher.seal(record.to_json().encode("utf-8"), password)
        self._persistence.store(self._storage_key, envelope)
        self._record = record
        self._state = WalletState.UNLOCKED
        logger.info("Wallet created on %s: %s", record.network, record.address)
        return record

    def lock(self) -> None:
        """Forget the in-memory record; only the envelope remains."""
        with self._lock:
            if self._state is WalletState.LOCKED:
                return
            self._require_state(WalletState.UNLOCKED, "lock")
            self._record = None
            self._state = WalletState.LOCKED
            logger.info("Wallet locked")

    def unlock(self, password: str) -> WalletRecord:
        """
        Open the stored envelope.

        A wrong password or damaged envelope raises ``WalletAccessError``
        and leaves the manager LOCKED.
        """
        with self._lock:
            self._require_state(WalletState.LOCKED, "unlock")
            record = self._open_stored(password)
            self._record = record
            self._state = WalletState.UNLOCKED
            logger.info("Wallet unlocked: %s", record.address)
            return record

    def wipe(self) -> None:
        """Delete the persisted envelope and return to UNINITIALIZED."""
        with self._lock:
            self._persistence.remove(self._storage_key)
            self._record = None
            self._state = WalletState.UNINITIALIZED
            logger.info("Wallet wiped")

    def change_password(self, old_password: str, new_password: str,
                        confirm: str | None = None) -> None:
        """Re-seal the wallet under a new password."""
        with self._lock:
            self._require_state(WalletState.UNLOCKED, "change password")
            record = self._open_stored(old_password)
            self._check_password(new_password, confirm)
            envelope = self._cipher.seal(record.to_json().encode("utf-8"), new_password)
            self._persistence.store(self._storage_key, envelope)
            logger.info("Wallet password changed")

    # ---- helpers ----

    def _open_stored(self, password: str) -> WalletRecord:
        envelope = self._persistence.load(self._storage_key)
        if envelope is None:
            self._record = None
            self._state = WalletState.UNINITIALIZED
            raise WalletStateError("No wallet is stored")
        try:
            plaintext = self._cipher.open(envelope, password)
            record = WalletRecord.from_json(plaintext)
            # the stored address must be the one its phrase derives
            derived = create_wallet(record.mnemonic, record.network)
        except (DecryptionError, ValueError):
            logger.warning("Unlock attempt failed")
            raise WalletAccessError() from None
        if (derived.address, derived.public_key) != (record.address, record.public_key):
            logger.warning("Unlock attempt failed")
            raise WalletAccessError()
        return record

    def _check_password(self, password: str, confirm: str | None) -> None:
        if not isinstance(password, str):
            raise TypeError("password must be a str")
        if len(password) < self._min_password_length:
            raise PasswordPolicyError(
                f"Password must be at least {self._min_password_length} characters"
            )
        if confirm is not None and confirm != password:
            raise PasswordPolicyError("Passwords do not match")

    def _require_state(self, expected: WalletState, action: str) -> None:
        if self._state is not expected:
            raise WalletStateError(f"Cannot {action} while {self._state.value}")

    def _require_record(self) -> WalletRecord:
        if self._record is None:
            raise WalletStateError("Wallet is not unlocked")
        return self._record

    def __repr__(self) -> str:
        return f"WalletManager(state={self._state.value}, network={self._network})"
