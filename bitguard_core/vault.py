"""
Password-based envelope encryption for wallet data at rest.

An envelope is self-contained base64 text.  Two layouts exist:

  legacy (v0)  salt[16] | nonce[12] | ciphertext | tag[16]
  v1           "BG" | 0x01 | iterations u32 BE | salt[16] | nonce[12]
               | ciphertext | tag[16]

Both use PBKDF2-HMAC-SHA256 → 256-bit key → AES-256-GCM.  In v1 the
7-byte header is bound to the tag as associated data.  ``seal`` always
writes v1; ``open`` reads both.

Usage:
    cipher = VaultCipher()
    blob = cipher.seal(b"secret", "correcthorsebattery")
    cipher.open(blob, "correcthorsebattery")  # b"secret"
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import struct

from Crypto.Cipher import AES

from bitguard_core.crypto_utils import random_bytes
from bitguard_core.errors import DecryptionError

logger = logging.getLogger("bitguard.vault")

SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

MAGIC = b"BG"
VERSION = 1
_HEADER = struct.Struct(">2sBI")
HEADER_SIZE = _HEADER.size  # 7

DEFAULT_ITERATIONS = 100_000
LEGACY_ITERATIONS = 100_000
MIN_ITERATIONS = 1_000
MAX_ITERATIONS = 10_000_000

LEGACY_MIN_SIZE = SALT_SIZE + NONCE_SIZE + TAG_SIZE
V1_MIN_SIZE = HEADER_SIZE + LEGACY_MIN_SIZE


def _check_iterations(iterations: int) -> int:
    if not isinstance(iterations, int) or isinstance(iterations, bool):
        raise TypeError("iterations must be an int")
    if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
        raise ValueError(
            f"iterations must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}"
        )
    return iterations


def _decode_envelope(envelope: str | bytes) -> bytes:
    if isinstance(envelope, (bytes, bytearray)):
        try:
            envelope = bytes(envelope).decode("ascii")
        except UnicodeDecodeError:
            raise DecryptionError() from None
    if not isinstance(envelope, str):
        raise DecryptionError()
    try:
        raw = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionError() from None
    # b64decode ignores padding bits; only the canonical text is accepted
    if base64.b64encode(raw).decode("ascii") != envelope:
        raise DecryptionError()
    return raw


def _parse_header(raw: bytes) -> int | None:
    """Iteration count of a v1 envelope, or None if *raw* is not one."""
    if len(raw) < V1_MIN_SIZE:
        return None
    magic, version, iterations = _HEADER.unpack_from(raw)
    if magic != MAGIC or version != VERSION:
        return None
    return iterations


def envelope_version(envelope: str | bytes) -> int:
    """1 for a versioned envelope, 0 for anything else."""
    try:
        raw = _decode_envelope(envelope)
    except DecryptionError:
        return 0
    return VERSION if _parse_header(raw) is not None else 0


class VaultCipher:
    """
    Seals and opens envelopes.

    Holds no secrets between calls; one instance may be shared by any
    number of threads.

    Parameters
    ----------
    iterations : int
        PBKDF2 rounds written into new (v1) envelopes.
    legacy_iterations : int
        PBKDF2 rounds assumed for unversioned envelopes.
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS,
                 legacy_iterations: int = LEGACY_ITERATIONS):
        self.iterations = _check_iterations(iterations)
        self.legacy_iterations = _check_iterations(legacy_iterations)

    # ---- key derivation ----

    @staticmethod
    def derive_key(password: str, salt: bytes, iterations: int) -> bytes:
        """PBKDF2-HMAC-SHA256 → 32-byte AES key."""
        if not isinstance(password, str):
            raise TypeError("password must be a str")
        return hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, iterations, dklen=KEY_SIZE,
        )

    # ---- AES-256-GCM ----

    @staticmethod
    def _aes_gcm_encrypt(key: bytes, nonce: bytes, data: bytes,
                         aad: bytes = b"") -> bytes:
        """Encrypt *data*; returns ciphertext with the 16-byte tag appended."""
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE)
        if aad:
            cipher.update(aad)
        ciphertext, tag = cipher.encrypt_and_digest(data)
        return ciphertext + tag

    @staticmethod
    def _aes_gcm_decrypt(key: bytes, nonce: bytes, sealed: bytes,
                         aad: bytes = b"") -> bytes | None:
        """Decrypt and verify; None on tag mismatch."""
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE)
        if aad:
            cipher.update(aad)
        try:
            return cipher.decrypt_and_verify(sealed[:-TAG_SIZE], sealed[-TAG_SIZE:])
        except ValueError:
            return None

    # ---- public API ----

    def seal(self, plaintext: bytes, password: str) -> str:
        """Encrypt *plaintext* under *password* as a v1 envelope."""
        plaintext = bytes(plaintext)
        salt = random_bytes(SALT_SIZE)
        nonce = random_bytes(NONCE_SIZE)
        header = _HEADER.pack(MAGIC, VERSION, self.iterations)
        key = self.derive_key(password, salt, self.iterations)
        sealed = self._aes_gcm_encrypt(key, nonce, plaintext, aad=header)
        logger.debug("Sealed envelope (v%d, %d iterations)", VERSION, self.iterations)
        return base64.b64encode(header + salt + nonce + sealed).decode("ascii")

    def seal_legacy(self, plaintext: bytes, password: str) -> str:
        """Encrypt in the unversioned layout written by older releases."""
        plaintext = bytes(plaintext)
        salt = random_bytes(SALT_SIZE)
        nonce = random_bytes(NONCE_SIZE)
        key = self.derive_key(password, salt, self.legacy_iterations)
        sealed = self._aes_gcm_encrypt(key, nonce, plaintext)
        return base64.b64encode(salt + nonce + sealed).decode("ascii")

    def open(self, envelope: str | bytes, password: str) -> bytes:
        """
        Recover the plaintext of *envelope*.

        Raises ``DecryptionError`` for a wrong password, a malformed or
        truncated envelope, and any tampering, without saying which.
        Envelope text must be canonical base64 with no surrounding
        whitespace.
        """
        if not isinstance(password, str):
            raise TypeError("password must be a str")
        try:
            raw = _decode_envelope(envelope)
        except DecryptionError:
            # undecodable text takes the same two layout attempts as the rest
            raw = b""

        plaintext = self._open_v1(raw, password)
        if plaintext is None:
            # a legacy salt can begin with the v1 magic, so always try it
            plaintext = self._open_legacy(raw, password)
        if plaintext is None:
            logger.debug("Envelope rejected")
            raise DecryptionError()
        return plaintext

    # Each layout attempt runs exactly one key derivation, including on
    # input it rejects by shape alone.

    def _open_v1(self, raw: bytes, password: str) -> bytes | None:
        iterations = _parse_header(raw)
        if iterations is None or not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            self.derive_key(password, bytes(SALT_SIZE), self.iterations)
            return None
        header = raw[:HEADER_SIZE]
        salt = raw[HEADER_SIZE:HEADER_SIZE + SALT_SIZE]
        nonce = raw[HEADER_SIZE + SALT_SIZE:HEADER_SIZE + SALT_SIZE + NONCE_SIZE]
        sealed = raw[HEADER_SIZE + SALT_SIZE + NONCE_SIZE:]
        key = self.derive_key(password, salt, iterations)
        return self._aes_gcm_decrypt(key, nonce, sealed, aad=header)

    def _open_legacy(self, raw: bytes, password: str) -> bytes | None:
        if len(raw) < LEGACY_MIN_SIZE:
            self.derive_key(password, bytes(SALT_SIZE), self.legacy_iterations)
            return None
        salt = raw[:SALT_SIZE]
        nonce = raw[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
        sealed = raw[SALT_SIZE + NONCE_SIZE:]
        key = self.derive_key(password, salt, self.legacy_iterations)
        return self._aes_gcm_decrypt(key, nonce, sealed)


_default_cipher = VaultCipher()


def seal(plaintext: bytes, password: str) -> str:
    """Seal with the default cipher settings."""
    return _default_cipher.seal(plaintext, password)


def open_envelope(envelope: str | bytes, password: str) -> bytes:
    """Open with the default cipher settings."""
    return _default_cipher.open(envelope, password)
