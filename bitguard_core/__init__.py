"""
BitGuard - key custody core for a single-address Bitcoin wallet.

Key features:
- BIP-39 recovery phrases (generation, validation, seed stretching)
- BIP-32 / BIP-84 derivation to one native segwit (bech32) address
- Password-sealed AES-256-GCM envelopes for wallet data at rest
- A small lifecycle manager (create / lock / unlock / wipe) over a
  pluggable key/value store
"""

__version__ = "1.0.0"
__all__ = [
    "crypto_utils",
    "errors",
    "wallet",
    "vault",
    "manager",
    "storage",
    "ledger_source",
    "config",
    "logging_config",
]
