"""
Key derivation for BitGuard.

Turns a recovery phrase into the wallet's single identity:
  - BIP-39 mnemonic generation, validation and seed stretching
  - BIP-32 hierarchical derivation (private and public-only nodes)
  - BIP-84 fixed path m/84'/coin'/0'/0/0
  - Native segwit (P2WPKH, bech32) address encoding
  - Extended key import / export (xpub, zpub, tpub, vpub ...)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import struct
import unicodedata
from dataclasses import dataclass
from typing import Any

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.ellipticcurve import INFINITY
from mnemonic import Mnemonic

from bitguard_core.crypto_utils import (
    base58check_decode,
    base58check_encode,
    decode_segwit_address,
    encode_segwit_address,
    hash160,
    random_bytes,
    sha256,
)
from bitguard_core.errors import DerivationError, InvalidMnemonic

logger = logging.getLogger("bitguard.wallet")

CURVE_ORDER = SECP256k1.order


# ===================================================================
#  Networks
# ===================================================================

@dataclass(frozen=True)
class Network:
    """Parameters that differ between mainnet and testnet."""
    name: str            # "main" / "test"
    label: str           # name used in the serialised wallet record
    hrp: str             # bech32 human-readable part
    coin_type: int       # BIP-44 coin type
    xprv: int
    xpub: int
    zprv: int            # BIP-84 version bytes
    zpub: int


MAINNET = Network("main", "bitcoin", "bc", 0,
                  0x0488ADE4, 0x0488B21E, 0x04B2430C, 0x04B24746)
TESTNET = Network("test", "testnet", "tb", 1,
                  0x04358394, 0x043587CF, 0x045F18BC, 0x045F1CF6)

NETWORKS: dict[str, Network] = {
    "main": MAINNET,
    "bitcoin": MAINNET,
    "mainnet": MAINNET,
    "test": TESTNET,
    "testnet": TESTNET,
}


def get_network(network: str | Network) -> Network:
    """Resolve a network selector (``"main"``, ``"testnet"`` ...)."""
    if isinstance(network, Network):
        return network
    try:
        return NETWORKS[str(network).lower()]
    except KeyError:
        raise ValueError(f"Unknown network: {network!r}") from None


# ===================================================================
#  BIP-39 Mnemonic Support
# ===================================================================

_VALID_STRENGTHS = (128, 160, 192, 224, 256)
_VALID_WORD_COUNTS = (12, 15, 18, 21, 24)

_WORDLIST: list[str] | None = None
_WORD_INDEX: dict[str, int] | None = None


def _get_wordlist() -> list[str]:
    """The 2048-word BIP-39 English list shipped with ``mnemonic``."""
    global _WORDLIST, _WORD_INDEX
    if _WORDLIST is None:
        words = list(Mnemonic("english").wordlist)
        if len(words) != 2048:
            raise RuntimeError("BIP-39 wordlist must contain 2048 words")
        _WORD_INDEX = {w: i for i, w in enumerate(words)}
        _WORDLIST = words
    return _WORDLIST


def _get_word_index() -> dict[str, int]:
    _get_wordlist()
    assert _WORD_INDEX is not None
    return _WORD_INDEX


def normalize_mnemonic(mnemonic: str) -> str:
    """NFKD-normalise, lower-case and collapse whitespace."""
    return " ".join(unicodedata.normalize("NFKD", mnemonic).lower().split())


def _generate_entropy(strength: int = 128) -> bytes:
    """Generate random entropy for mnemonic (128/160/192/224/256 bits)."""
    if strength not in _VALID_STRENGTHS:
        raise ValueError("Strength must be 128/160/192/224/256")
    return random_bytes(strength // 8)


def entropy_to_mnemonic(entropy: bytes) -> str:
    """Convert entropy bytes to a BIP-39 mnemonic phrase."""
    if len(entropy) * 8 not in _VALID_STRENGTHS:
        raise ValueError("Entropy must be 16/20/24/28/32 bytes")
    wordlist = _get_wordlist()
    ent_bits = len(entropy) * 8
    cs_bits = ent_bits // 32
    h = sha256(entropy)
    # entropy followed by the first cs_bits of its hash, as one integer
    value = (int.from_bytes(entropy, "big") << cs_bits) | (h[0] >> (8 - cs_bits))
    total_bits = ent_bits + cs_bits

    words = []
    for shift in range(total_bits - 11, -1, -11):
        words.append(wordlist[(value >> shift) & 0x7FF])
    return " ".join(words)


def mnemonic_to_entropy(mnemonic: str) -> bytes:
    """
    Decode a phrase back to its entropy, verifying the checksum.

    Raises ``InvalidMnemonic`` on any defect.
    """
    if not isinstance(mnemonic, str):
        raise InvalidMnemonic("Mnemonic must be a string")
    words = normalize_mnemonic(mnemonic).split(" ")
    if len(words) not in _VALID_WORD_COUNTS:
        raise InvalidMnemonic(
            f"Invalid mnemonic: expected 12/15/18/21/24 words, got {len(words)}"
        )
    index = _get_word_index()
    value = 0
    for word in words:
        idx = index.get(word)
        if idx is None:
            raise InvalidMnemonic("Invalid mnemonic: unknown word")
        value = (value << 11) | idx

    total_bits = len(words) * 11
    cs_bits = total_bits // 33
    ent_bits = total_bits - cs_bits
    entropy = (value >> cs_bits).to_bytes(ent_bits // 8, "big")
    checksum = value & ((1 << cs_bits) - 1)
    if sha256(entropy)[0] >> (8 - cs_bits) != checksum:
        raise InvalidMnemonic("Invalid mnemonic: checksum mismatch")
    return entropy


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a new BIP-39 mnemonic phrase (12 words by default)."""
    return entropy_to_mnemonic(_generate_entropy(strength))


def validate_mnemonic(mnemonic: Any) -> bool:
    """True if *mnemonic* has a valid word count, words and checksum."""
    try:
        mnemonic_to_entropy(mnemonic)
    except InvalidMnemonic:
        return False
    return True


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a mnemonic phrase to a 64-byte seed (BIP-39)."""
    password = unicodedata.normalize("NFKD", mnemonic).encode("utf-8")
    salt = ("mnemonic" + unicodedata.normalize("NFKD", passphrase)).encode("utf-8")
    return hashlib.pbkdf2_hmac("sha512", password, salt, 2048, dklen=64)


# ===================================================================
#  HD Key Derivation (BIP-32)
# ===================================================================

def _pubkey_from_private(private_key: bytes) -> bytes:
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")


class HDNode:
    """
    Hierarchical Deterministic key derivation node.

    A node always has a compressed public key; ``private_key`` is None for
    public-only ("neutered") nodes, which can still derive non-hardened
    children.
    """

    HARDENED = 0x80000000
    MAX_DERIVATION_ATTEMPTS = 16

    def __init__(self, chain_code: bytes, private_key: bytes | None = None,
                 public_key: bytes | None = None, depth: int = 0,
                 index: int = 0, parent_fingerprint: bytes = b"\x00" * 4,
                 network: str | Network = MAINNET):
        if len(chain_code) != 32:
            raise ValueError("Chain code must be 32 bytes")
        if private_key is None and public_key is None:
            raise ValueError("HDNode needs a private or a public key")
        if private_key is not None:
            if len(private_key) != 32:
                raise ValueError("Private key must be 32 bytes")
            k = int.from_bytes(private_key, "big")
            if not 0 < k < CURVE_ORDER:
                raise DerivationError("Private key outside the curve order")
            derived_pub = _pubkey_from_private(private_key)
            if public_key is not None and public_key != derived_pub:
                raise ValueError("Public key does not match private key")
            public_key = derived_pub
        else:
            assert public_key is not None
            if len(public_key) != 33 or public_key[0] not in (2, 3):
                raise ValueError("Public key must be 33-byte compressed SEC1")
            try:
                VerifyingKey.from_string(public_key, curve=SECP256k1)
            except Exception as exc:  # ecdsa raises several types here
                raise ValueError(f"Invalid public key: {exc}") from exc

        self.private_key = private_key
        self.public_key = public_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index
        self.parent_fingerprint = parent_fingerprint
        self.network = get_network(network)

    # ---- construction ----

    @classmethod
    def from_seed(cls, seed: bytes, network: str | Network = MAINNET) -> HDNode:
        """Create the master node from a 16–64 byte seed."""
        if not 16 <= len(seed) <= 64:
            raise ValueError("Seed must be between 16 and 64 bytes")
        I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        il, ir = I[:32], I[32:]
        if not 0 < int.from_bytes(il, "big") < CURVE_ORDER:
            raise DerivationError("Master key is invalid for this seed")
        return cls(chain_code=ir, private_key=il, network=network)

    # ---- properties ----

    @property
    def is_private(self) -> bool:
        return self.private_key is not None

    @property
    def identifier(self) -> bytes:
        """Hash160 of the compressed public key."""
        return hash160(self.public_key)

    @property
    def fingerprint(self) -> bytes:
        """First 4 bytes of the identifier."""
        return self.identifier[:4]

    def neuter(self) -> HDNode:
        """Return a public-only copy of this node."""
        return HDNode(
            chain_code=self.chain_code,
            public_key=self.public_key,
            depth=self.depth,
            index=self.index,
            parent_fingerprint=self.parent_fingerprint,
            network=self.network,
        )

    # ---- derivation ----

    def _ckd(self, index: int) -> HDNode | None:
        """One CKD step; None when the result is an invalid key."""
        if index >= self.HARDENED:
            if self.private_key is None:
                raise DerivationError("Cannot derive a hardened child from a public node")
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self.public_key + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        il = int.from_bytes(I[:32], "big")
        if il >= CURVE_ORDER:
            return None

        common = dict(
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
            parent_fingerprint=self.fingerprint,
            network=self.network,
        )
        if self.private_key is not None:
            child_key_int = (il + int.from_bytes(self.private_key, "big")) % CURVE_ORDER
            if child_key_int == 0:
                return None
            return HDNode(private_key=child_key_int.to_bytes(32, "big"), **common)

        parent_point = VerifyingKey.from_string(self.public_key, curve=SECP256k1).pubkey.point
        point = SECP256k1.generator * il + parent_point
        if point == INFINITY:
            return None
        vk = VerifyingKey.from_public_point(point, curve=SECP256k1)
        return HDNode(public_key=vk.to_string("compressed"), **common)

    def derive_child(self, index: int) -> HDNode:
        """
        Derive the child at *index*.

        If the step yields an invalid key the next index is tried, as
        BIP-32 prescribes; ``DerivationError`` after repeated failures.
        """
        if not 0 <= index <= 0xFFFFFFFF:
            raise ValueError("Child index out of range")
        hardened = index >= self.HARDENED
        for _ in range(self.MAX_DERIVATION_ATTEMPTS):
            child = self._ckd(index)
            if child is not None:
                return child
            logger.warning("Invalid child key at index %d, trying next index", index)
            index += 1
            if index > 0xFFFFFFFF or (index >= self.HARDENED) != hardened:
                break
        raise DerivationError("Child key derivation failed")

    def derive_path(self, path: str) -> HDNode:
        """
        Derive from a path string like "m/84'/0'/0'/0/0".

        Hardened components may use ``'``, ``h`` or ``H``.
        """
        path = path.strip()
        if path in ("m", "M", ""):
            return self
        if path.startswith(("m/", "M/")):
            path = path[2:]

        node = self
        for component in path.split("/"):
            hardened = component[-1:] in ("'", "h", "H")
            digits = component[:-1] if hardened else component
            if not digits.isdigit():
                raise ValueError(f"Malformed path component: {component!r}")
            index = int(digits)
            if index >= self.HARDENED:
                raise ValueError(f"Path index too large: {component!r}")
            node = node.derive_child(index + self.HARDENED if hardened else index)
        return node

    # ---- extended keys ----

    def to_extended_key(self, private: bool = False, segwit: bool = False) -> str:
        """
        Serialise as a BIP-32 extended key.

        ``segwit=True`` uses the BIP-84 version bytes (zpub / vpub).
        """
        net = self.network
        if private:
            if self.private_key is None:
                raise ValueError("Public node has no private extended key")
            version = net.zprv if segwit else net.xprv
            key_data = b"\x00" + self.private_key
        else:
            version = net.zpub if segwit else net.xpub
            key_data = self.public_key
        payload = (
            struct.pack(">I", version)
            + bytes([self.depth])
            + self.parent_fingerprint
            + struct.pack(">I", self.index)
            + self.chain_code
            + key_data
        )
        return base58check_encode(payload)

    @classmethod
    def from_extended_key(cls, extended_key: str) -> HDNode:
        """Parse any of the mainnet/testnet x/z/t/v extended keys."""
        payload = base58check_decode(extended_key)
        if len(payload) != 78:
            raise ValueError("Extended key must decode to 78 bytes")
        version = struct.unpack(">I", payload[:4])[0]
        depth = payload[4]
        parent_fp = payload[5:9]
        index = struct.unpack(">I", payload[9:13])[0]
        chain_code = payload[13:45]
        key_data = payload[45:]

        for net in (MAINNET, TESTNET):
            if version in (net.xprv, net.zprv):
                is_private = True
                break
            if version in (net.xpub, net.zpub):
                is_private = False
                break
        else:
            raise ValueError(f"Unknown extended key version 0x{version:08x}")

        if depth == 0 and (parent_fp != b"\x00" * 4 or index != 0):
            raise ValueError("Master key with non-zero parent fingerprint or index")
        if is_private:
            if key_data[0] != 0:
                raise ValueError("Private extended key must start with 0x00")
            return cls(chain_code=chain_code, private_key=key_data[1:], depth=depth,
                       index=index, parent_fingerprint=parent_fp, network=net)
        return cls(chain_code=chain_code, public_key=key_data, depth=depth,
                   index=index, parent_fingerprint=parent_fp, network=net)

    # ---- addresses ----

    def p2wpkh_address(self) -> str:
        return p2wpkh_address(self.public_key, self.network)

    def __repr__(self) -> str:
        kind = "private" if self.is_private else "public"
        return (f"HDNode({kind}, depth={self.depth}, index={self.index}, "
                f"network={self.network.name})")


# ===================================================================
#  Addresses
# ===================================================================

def p2wpkh_address(public_key: bytes, network: str | Network = MAINNET) -> str:
    """Native segwit v0 address for a compressed public key."""
    if len(public_key) != 33:
        raise ValueError("P2WPKH requires a 33-byte compressed public key")
    net = get_network(network)
    return encode_segwit_address(net.hrp, 0, hash160(public_key))


def is_valid_address(address: str, network: str | Network = MAINNET) -> bool:
    """True for a well-formed witness-v0 bech32 address on *network*."""
    try:
        decode_segwit_address(get_network(network).hrp, address)
    except ValueError:
        return False
    return True


# ===================================================================
#  Wallet record
# ===================================================================

@dataclass(frozen=True)
class WalletRecord:
    """The wallet's externally visible identity plus its recovery phrase."""
    mnemonic: str
    address: str
    public_key: str        # lowercase hex, 33-byte compressed key
    network: str           # "main" / "test"

    def to_dict(self) -> dict[str, str]:
        return {
            "mnemonic": self.mnemonic,
            "address": self.address,
            "publicKey": self.public_key,
            "network": get_network(self.network).label,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletRecord:
        try:
            network = get_network(data.get("network", "main")).name
            return cls(
                mnemonic=str(data["mnemonic"]),
                address=str(data["address"]),
                public_key=str(data.get("publicKey", data.get("public_key"))).lower(),
                network=network,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed wallet record: {exc}") from exc

    @classmethod
    def from_json(cls, text: str | bytes) -> WalletRecord:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError("Wallet record is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ValueError("Wallet record must be a JSON object")
        return cls.from_dict(data)

    def __repr__(self) -> str:
        return f"WalletRecord({self.address}, network={self.network})"


# ===================================================================
#  Wallet creation
# ===================================================================

def derivation_path(network: str | Network = MAINNET) -> str:
    """BIP-84 path of the wallet's single receive key."""
    return f"m/84'/{get_network(network).coin_type}'/0'/0/0"


def create_wallet(mnemonic: str, network: str | Network = MAINNET,
                  passphrase: str = "") -> WalletRecord:
    """
    Derive the wallet identity for *mnemonic* on *network*.

    Raises ``InvalidMnemonic`` for a bad phrase and ``DerivationError`` if
    the derivation itself fails.
    """
    if not validate_mnemonic(mnemonic):
        raise InvalidMnemonic()
    net = get_network(network)
    phrase = normalize_mnemonic(mnemonic)

    seed = mnemonic_to_seed(phrase, passphrase)
    master = HDNode.from_seed(seed, net)
    child = master.derive_path(derivation_path(net))
    address = child.p2wpkh_address()

    logger.debug("Derived %s wallet address %s", net.name, address)
    return WalletRecord(
        mnemonic=phrase,
        address=address,
        public_key=child.public_key.hex(),
        network=net.name,
    )
