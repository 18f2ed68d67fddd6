"""
Balance and history data source seam.

The core never queries a network itself.  A front end that wants to show
a balance injects a ``LedgerSource`` into ``WalletManager``; the default
``NullLedgerSource`` reports an empty wallet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class TxSummary:
    """One history row as a display layer needs it."""
    txid: str
    amount_sat: int        # signed, negative for outgoing
    confirmations: int = 0
    timestamp: float | None = None


@runtime_checkable
class LedgerSource(Protocol):
    def get_balance(self, address: str) -> int: ...

    def get_history(self, address: str) -> list[TxSummary]: ...


class NullLedgerSource:
    """Always reports zero balance and no transactions."""

    def get_balance(self, address: str) -> int:
        return 0

    def get_history(self, address: str) -> list[TxSummary]:
        return []


class StaticLedgerSource:
    """Fixed per-address data, for tests and offline demos."""

    def __init__(self, balances: dict[str, int] | None = None,
                 history: dict[str, list[TxSummary]] | None = None):
        self._balances = dict(balances or {})
        self._history = {k: list(v) for k, v in (history or {}).items()}

    def get_balance(self, address: str) -> int:
        return self._balances.get(address, 0)

    def get_history(self, address: str) -> list[TxSummary]:
        return list(self._history.get(address, []))
