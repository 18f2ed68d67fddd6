"""
Test suite for HDNode (BIP-32 derivation).

Covers:
  - from_seed against BIP-32 test vector 1
  - derive_child hardened / normal, derive_path syntax
  - Public-only (neutered) derivation agrees with private derivation
  - Extended key export / import (xprv, xpub, zpub, tpub)
  - BIP-84 account zpub vector
  - Invalid-key retry rule and its exhaustion
  - Edge cases: bad seeds, bad paths, hardened from public node
"""

import unittest
from unittest import mock

from bitguard_core.errors import DerivationError
from bitguard_core.wallet import HDNode, mnemonic_to_seed

SEED_1 = bytes.fromhex("000102030405060708090a0b0c0d0e0f")

V1_MASTER_XPRV = (
    "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNKm"
    "PGJxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi"
)
V1_MASTER_XPUB = (
    "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjq"
    "JoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8"
)
V1_0H_XPRV = (
    "xprv9uHRZZhk6KAJC1avXpDAp4MDc3sQKNxDiPvvkX8Br5ngLNv1TxvUxt4cV1rGL5hj"
    "6KCesnDYUhd7oWgT11eZG7XnxHrnYeSvkzY7d2bhkJ7"
)
V1_0H_XPUB = (
    "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeN"
    "K1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"
)
V1_0H_1_XPUB = (
    "xpub6ASuArnXKPbfEwhqN6e3mwBcDTgzisQN1wXN9BJcM47sSikHjJf3UFHKkNAWbWMi"
    "Gj7Wf5uMash7SyYq527Hqck2AxYysAA7xmALppuCkwQ"
)

BIP84_ACCOUNT_ZPUB = (
    "zpub6rFR7y4Q2AijBEqTUquhVz398htDFrtymD9xYYfG1m4wAcvPhXNfE3EfH1r1ADqt"
    "fSdVCToUG868RvUUkgDKf31mGDtKsAYz2oz2AGutZYs"
)
ABANDON_ABOUT = "abandon " * 11 + "about"


class TestBIP32Vector1(unittest.TestCase):

    def setUp(self):
        self.master = HDNode.from_seed(SEED_1)

    def test_master_keys(self):
        self.assertEqual(
            self.master.private_key.hex(),
            "e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35",
        )
        self.assertEqual(
            self.master.chain_code.hex(),
            "873dff81c02f525623fd1fe5167eac3a55a049de3d314bb42ee227ffed37d508",
        )
        self.assertEqual(
            self.master.public_key.hex(),
            "0339a36013301597daef41fbe593a02cc513d0b55527ec2df1050e2e8ff49c85c2",
        )

    def test_master_fingerprint(self):
        self.assertEqual(self.master.fingerprint.hex(), "3442193e")

    def test_master_extended_keys(self):
        self.assertEqual(self.master.to_extended_key(private=True), V1_MASTER_XPRV)
        self.assertEqual(self.master.to_extended_key(), V1_MASTER_XPUB)

    def test_hardened_child(self):
        child = self.master.derive_path("m/0'")
        self.assertEqual(child.depth, 1)
        self.assertEqual(child.index, HDNode.HARDENED)
        self.assertEqual(child.parent_fingerprint, self.master.fingerprint)
        self.assertEqual(child.to_extended_key(private=True), V1_0H_XPRV)
        self.assertEqual(child.to_extended_key(), V1_0H_XPUB)

    def test_normal_child(self):
        child = self.master.derive_path("m/0H/1")
        self.assertEqual(child.to_extended_key(), V1_0H_1_XPUB)

    def test_public_derivation_matches(self):
        public_parent = HDNode.from_extended_key(V1_0H_XPUB)
        self.assertFalse(public_parent.is_private)
        child = public_parent.derive_child(1)
        self.assertEqual(child.to_extended_key(), V1_0H_1_XPUB)
        self.assertIsNone(child.private_key)


class TestHDNode(unittest.TestCase):

    def setUp(self):
        self.master = HDNode.from_seed(mnemonic_to_seed(ABANDON_ABOUT))

    def test_from_seed(self):
        self.assertEqual(self.master.depth, 0)
        self.assertEqual(len(self.master.private_key), 32)
        self.assertEqual(len(self.master.chain_code), 32)
        self.assertEqual(len(self.master.public_key), 33)

    def test_seed_length_bounds(self):
        with self.assertRaises(ValueError):
            HDNode.from_seed(b"\x00" * 15)
        with self.assertRaises(ValueError):
            HDNode.from_seed(b"\x00" * 65)

    def test_derive_path_depth(self):
        self.assertEqual(self.master.derive_path("84'/0'/0'/0/0").depth, 5)
        self.assertEqual(self.master.derive_path("m/84'/0'/0'/0/0").depth, 5)

    def test_derive_path_m_only(self):
        self.assertIs(self.master.derive_path("m"), self.master)

    def test_derive_path_malformed(self):
        for bad in ("m/x", "m/1''", "m//1", "m/-1", "m/2147483648"):
            with self.subTest(path=bad):
                with self.assertRaises(ValueError):
                    self.master.derive_path(bad)

    def test_hardened_suffixes_equivalent(self):
        a = self.master.derive_path("m/84'/0'")
        b = self.master.derive_path("m/84h/0H")
        self.assertEqual(a.public_key, b.public_key)

    def test_different_indices_different_keys(self):
        self.assertNotEqual(self.master.derive_child(0).private_key,
                            self.master.derive_child(1).private_key)

    def test_child_index_range(self):
        with self.assertRaises(ValueError):
            self.master.derive_child(2 ** 32)

    def test_bip84_account_zpub(self):
        account = self.master.derive_path("m/84'/0'/0'")
        self.assertEqual(account.to_extended_key(segwit=True), BIP84_ACCOUNT_ZPUB)

    def test_neutered_account_derives_receive_key(self):
        account = self.master.derive_path("m/84'/0'/0'")
        watch_only = HDNode.from_extended_key(account.to_extended_key(segwit=True))
        receive = watch_only.derive_path("0/0")
        self.assertEqual(
            receive.p2wpkh_address(), "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
        )

    def test_hardened_from_public_node_fails(self):
        with self.assertRaises(DerivationError):
            self.master.neuter().derive_child(HDNode.HARDENED)

    def test_neuter_keeps_public_data(self):
        pub = self.master.neuter()
        self.assertIsNone(pub.private_key)
        self.assertEqual(pub.public_key, self.master.public_key)
        self.assertEqual(pub.fingerprint, self.master.fingerprint)

    def test_public_node_has_no_xprv(self):
        with self.assertRaises(ValueError):
            self.master.neuter().to_extended_key(private=True)

    def test_testnet_extended_key_roundtrip(self):
        node = HDNode.from_seed(SEED_1, "test")
        tpub = node.to_extended_key()
        self.assertTrue(tpub.startswith("tpub"))
        parsed = HDNode.from_extended_key(tpub)
        self.assertEqual(parsed.network.name, "test")
        self.assertEqual(parsed.public_key, node.public_key)

    def test_extended_key_bad_checksum(self):
        corrupted = V1_MASTER_XPUB[:-1] + ("9" if V1_MASTER_XPUB[-1] != "9" else "8")
        with self.assertRaises(ValueError):
            HDNode.from_extended_key(corrupted)

    def test_mismatched_public_key_rejected(self):
        other = self.master.derive_child(0)
        with self.assertRaises(ValueError):
            HDNode(chain_code=self.master.chain_code,
                   private_key=self.master.private_key,
                   public_key=other.public_key)

    def test_zero_private_key_rejected(self):
        with self.assertRaises(DerivationError):
            HDNode(chain_code=b"\x00" * 32, private_key=b"\x00" * 32)

    def test_repr_hides_key(self):
        self.assertNotIn(self.master.private_key.hex(), repr(self.master))


class TestDerivationRetry(unittest.TestCase):

    def setUp(self):
        self.master = HDNode.from_seed(SEED_1)

    def _flaky_once(self, calls):
        real = HDNode._ckd

        def flaky(node, index):
            calls.append(index)
            return None if len(calls) == 1 else real(node, index)
        return flaky

    def test_invalid_key_moves_to_next_index(self):
        calls = []
        with mock.patch.object(HDNode, "_ckd", new=self._flaky_once(calls)):
            child = self.master.derive_child(5)
        self.assertEqual(calls, [5, 6])
        self.assertEqual(child.index, 6)
        self.assertEqual(child.public_key, self.master.derive_child(6).public_key)

    def test_hardened_retry_stays_hardened(self):
        calls = []
        with mock.patch.object(HDNode, "_ckd", new=self._flaky_once(calls)):
            child = self.master.derive_child(HDNode.HARDENED)
        self.assertEqual(child.index, HDNode.HARDENED + 1)

    def test_exhaustion_raises(self):
        with mock.patch.object(HDNode, "_ckd", new=lambda node, index: None):
            with self.assertRaises(DerivationError):
                self.master.derive_child(0)

    def test_retry_never_crosses_into_hardened(self):
        with mock.patch.object(HDNode, "_ckd", new=lambda node, index: None):
            with self.assertRaises(DerivationError):
                self.master.derive_child(HDNode.HARDENED - 1)


if __name__ == "__main__":
    unittest.main()
