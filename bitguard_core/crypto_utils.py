"""
Low-level cryptographic helpers for BitGuard.

  - CSPRNG access (the single place that reads ``os.urandom``)
  - SHA-256 / HASH160
  - Base58Check for extended keys (``base58``)
  - Witness-v0 segwit addresses (``bech32``, BIP-173)
"""

from __future__ import annotations

import hashlib
import os

import base58
import bech32
from Crypto.Hash import RIPEMD160

from bitguard_core.errors import EntropySourceUnavailable


# ===================================================================
#  Randomness
# ===================================================================

def random_bytes(n: int) -> bytes:
    """Return *n* bytes from the operating system CSPRNG."""
    try:
        data = os.urandom(n)
    except (NotImplementedError, OSError) as exc:
        raise EntropySourceUnavailable(f"os.urandom failed: {exc}") from exc
    if len(data) != n:
        raise EntropySourceUnavailable("short read from os.urandom")
    return data


# ===================================================================
#  Hashing
# ===================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    # hashlib's ripemd160 depends on the OpenSSL build; pycryptodome always has it
    return RIPEMD160.new(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160(SHA-256(data)) — the 20-byte key hash used in P2WPKH."""
    return ripemd160(sha256(data))


# ===================================================================
#  Base58Check
# ===================================================================

def base58check_encode(payload: bytes) -> str:
    return base58.b58encode_check(payload).decode("ascii")


def base58check_decode(s: str) -> bytes:
    """Decode and verify; ``ValueError`` on a bad character or checksum."""
    return base58.b58decode_check(s)


# ===================================================================
#  Segwit addresses (witness version 0 only)
# ===================================================================

def encode_segwit_address(hrp: str, witver: int, witprog: bytes) -> str:
    """Encode a witness program as a bech32 address."""
    if witver != 0:
        raise ValueError("Only witness version 0 is supported")
    if len(witprog) not in (20, 32):
        raise ValueError("Witness v0 program must be 20 or 32 bytes")
    addr = bech32.encode(hrp, witver, witprog)
    if addr is None:
        raise ValueError(f"Cannot encode witness program for {hrp!r}")
    return addr


def decode_segwit_address(hrp: str, addr: str) -> tuple[int, bytes]:
    """
    Decode a witness-v0 address for the expected *hrp*.

    Returns ``(witness_version, witness_program)``; raises ``ValueError``
    if the address is malformed or belongs to another network.
    """
    if not isinstance(addr, str):
        raise ValueError("Address must be a string")
    witver, prog = bech32.decode(hrp, addr)
    if witver is None:
        raise ValueError(f"Not a valid {hrp!r} bech32 address")
    if witver != 0:
        raise ValueError("Only witness version 0 is supported")
    return witver, bytes(prog)
