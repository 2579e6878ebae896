# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
secp256k1 ECDSA keys and recoverable signatures.

This module implements the plain-signature path of verification: parsing a
65-byte ``r || s || v`` signature, recovering the signing address from a
digest, and (for signer-side code and tests) producing such signatures from a
private key.

Key Features:
- **Recoverable Signatures**: 65-byte layout with the recovery byte last
- **Strict Parsing**: length and recovery-byte validation with distinct errors
- **Address Recovery**: public key and address recovery from a digest
- **Deterministic Signing**: RFC 6979 nonces, normalized to low-s
- **Personal Messages**: EIP-191 ``personal_sign`` digests

Wire format::

    +----------------+----------------+----+
    | r (32 bytes)   | s (32 bytes)   | v  |
    +----------------+----------------+----+

The recovery byte ``v`` is 27 when the ephemeral point R has an even y
coordinate and 28 when it is odd. No other value is accepted. In particular
``0x69``, the last byte of the wrapped-signature marker, is not a recovery
byte, so a plain signature can never be mistaken for a wrapped one.

Examples:
    Signing and recovering::

        from counterfactual_sig.secp256k1_ecdsa import PrivateKey, recover_address

        private_key = PrivateKey.random()
        digest = personal_message_digest(b"Sign in to example.org")
        signature = private_key.sign_digest(digest)

        assert recover_address(
            digest, signature.r, signature.s, signature.v
        ) == private_key.address()

Note:
    This implementation uses the ecdsa library for the curve arithmetic.
"""

from __future__ import annotations

import hashlib
import unittest

from ecdsa import SECP256k1, SigningKey, VerifyingKey, util
from eth_utils import keccak

from .address import Address
from .errors import InvalidRecoveryParameter, InvalidSignatureLength, RecoveryFailure

RECOVERY_BYTE_OFFSET = 27
VALID_RECOVERY_BYTES = frozenset({27, 28})

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"


def personal_message_digest(message: bytes) -> bytes:
    """EIP-191 version 0x45 digest, as produced by ``personal_sign``."""
    preimage = PERSONAL_MESSAGE_PREFIX + str(len(message)).encode() + message
    return keccak(preimage)


class PrivateKey:
    """secp256k1 private key producing recoverable signatures.

    Attributes:
        LENGTH: The byte length of secp256k1 private keys (32)
        key: The underlying ECDSA signing key object
    """

    LENGTH: int = 32

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.key.to_string() == other.key.to_string()

    def __str__(self):
        return self.hex()

    @staticmethod
    def from_hex(value: str | bytes) -> PrivateKey:
        """Create a private key from a hex string or 32 raw bytes.

        Args:
            value: ``0x``-prefixed or bare hex string, or raw bytes.

        Raises:
            ValueError: If the key is not 32 bytes.
        """
        if isinstance(value, str):
            value = bytes.fromhex(value.removeprefix("0x"))
        if len(value) != PrivateKey.LENGTH:
            raise ValueError("Length mismatch")
        return PrivateKey(SigningKey.from_string(value, SECP256k1, hashlib.sha256))

    def hex(self) -> str:
        return f"0x{self.key.to_string().hex()}"

    def public_key(self) -> PublicKey:
        return PublicKey(self.key.verifying_key)

    def address(self) -> Address:
        return self.public_key().address()

    @staticmethod
    def random() -> PrivateKey:
        return PrivateKey(SigningKey.generate(curve=SECP256k1, hashfunc=hashlib.sha256))

    def sign_digest(self, digest: bytes) -> RecoverableSignature:
        """Sign a 32-byte digest and return a recoverable signature.

        The nonce is derived per RFC 6979, and the signature is normalized so
        that ``s <= n / 2``. The recovery byte is found by recovering both
        candidate keys and keeping the one that matches this key.

        Args:
            digest: The 32-byte message digest.

        Returns:
            A 65-byte recoverable signature with ``v`` in {27, 28}.

        Raises:
            ValueError: If the digest is not 32 bytes.
        """
        if len(digest) != 32:
            raise ValueError(f"Expected a 32 byte digest, got {len(digest)} bytes")

        sig = self.key.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=util.sigencode_string
        )
        n = SECP256k1.order
        r, s = util.sigdecode_string(sig, n)
        # The signature is valid for both s and -s, normalization ensures that only s <= n // 2 is produced
        if s > (n // 2):
            s = n - s

        r_bytes = r.to_bytes(32, "big")
        s_bytes = s.to_bytes(32, "big")
        public_key = self.public_key()
        for v in sorted(VALID_RECOVERY_BYTES):
            if recover_public_key(digest, r_bytes, s_bytes, v) == public_key:
                return RecoverableSignature(r_bytes, s_bytes, v)
        raise RecoveryFailure("Unable to determine the recovery byte")


class PublicKey:
    """secp256k1 public key."""

    LENGTH: int = 64

    key: VerifyingKey

    def __init__(self, key: VerifyingKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.key.to_string() == other.key.to_string()

    def __str__(self) -> str:
        return self.hex()

    @staticmethod
    def from_str(value: str) -> PublicKey:
        """Parse a 64-byte point, optionally prefixed with ``0x`` and the ``04`` tag."""
        value = value.removeprefix("0x")
        if len(value) == (PublicKey.LENGTH + 1) * 2 and value.startswith("04"):
            value = value[2:]
        if len(value) != PublicKey.LENGTH * 2:
            raise ValueError("Length mismatch")
        return PublicKey(
            VerifyingKey.from_string(bytes.fromhex(value), SECP256k1, hashlib.sha256)
        )

    def hex(self) -> str:
        return f"0x04{self.key.to_string().hex()}"

    def to_crypto_bytes(self) -> bytes:
        """Uncompressed SEC1 encoding, ``0x04 || x || y``."""
        return b"\x04" + self.key.to_string()

    def address(self) -> Address:
        return Address.from_key(self)


class RecoverableSignature:
    """A 65-byte ``r || s || v`` signature.

    Attributes:
        LENGTH: Encoded length (65)
        r: First 32-byte scalar
        s: Second 32-byte scalar
        v: Recovery byte, 27 or 28
    """

    LENGTH: int = 65

    r: bytes
    s: bytes
    v: int

    def __init__(self, r: bytes, s: bytes, v: int):
        self.r = r
        self.s = s
        self.v = v

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecoverableSignature):
            return NotImplemented
        return (self.r, self.s, self.v) == (other.r, other.s, other.v)

    def __str__(self) -> str:
        return self.hex()

    def hex(self) -> str:
        return f"0x{self.to_bytes().hex()}"

    @property
    def recovery_id(self) -> int:
        return self.v - RECOVERY_BYTE_OFFSET

    @staticmethod
    def from_bytes(data: bytes) -> RecoverableSignature:
        """Parse a 65-byte signature.

        Raises:
            InvalidSignatureLength: If ``data`` is not exactly 65 bytes.
            InvalidRecoveryParameter: If the last byte is not 27 or 28.
        """
        if len(data) != RecoverableSignature.LENGTH:
            raise InvalidSignatureLength(len(data))
        v = data[64]
        if v not in VALID_RECOVERY_BYTES:
            raise InvalidRecoveryParameter(v)
        return RecoverableSignature(bytes(data[0:32]), bytes(data[32:64]), v)

    def to_bytes(self) -> bytes:
        return self.r + self.s + bytes([self.v])

    def recover_address(self, digest: bytes) -> Address:
        return recover_address(digest, self.r, self.s, self.v)


def recover_public_key(digest: bytes, r: bytes, s: bytes, v: int) -> PublicKey:
    """Recover the public key that produced ``(r, s)`` over ``digest``.

    Args:
        digest: The 32-byte message digest.
        r: 32-byte big-endian scalar.
        s: 32-byte big-endian scalar.
        v: Recovery byte, 27 or 28.

    Raises:
        InvalidRecoveryParameter: If ``v`` is not 27 or 28.
        RecoveryFailure: If the inputs do not describe a recoverable signature.
    """
    if v not in VALID_RECOVERY_BYTES:
        raise InvalidRecoveryParameter(v)
    if len(digest) != 32 or len(r) != 32 or len(s) != 32:
        raise RecoveryFailure("Digest, r and s must be 32 bytes each")

    n = SECP256k1.order
    r_val = int.from_bytes(r, "big")
    s_val = int.from_bytes(s, "big")
    if not (0 < r_val < n and 0 < s_val < n):
        raise RecoveryFailure("Signature scalars are out of range")

    try:
        # Candidates are ordered by the parity of R.y, even first.
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            util.sigencode_string(r_val, s_val, n),
            digest,
            SECP256k1,
            hashfunc=hashlib.sha256,
            sigdecode=util.sigdecode_string,
        )
    except Exception as e:
        raise RecoveryFailure(f"Public key recovery failed: {e}") from e

    return PublicKey(candidates[v - RECOVERY_BYTE_OFFSET])


def recover_address(digest: bytes, r: bytes, s: bytes, v: int) -> Address:
    """Recover the address of the key that produced ``(r, s, v)`` over ``digest``."""
    return recover_public_key(digest, r, s, v).address()


class Test(unittest.TestCase):
    def test_known_addresses(self):
        self.assertEqual(
            str(PrivateKey.from_hex("0x" + "00" * 31 + "01").address()),
            "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf",
        )
        self.assertEqual(
            str(
                PrivateKey.from_hex(
                    "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
                ).address()
            ),
            "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23",
        )

    def test_sign_and_recover(self):
        private_key = PrivateKey.random()
        digest = personal_message_digest(b"test_message")

        signature = private_key.sign_digest(digest)
        self.assertIn(signature.v, VALID_RECOVERY_BYTES)
        self.assertLessEqual(int.from_bytes(signature.s, "big"), SECP256k1.order // 2)
        self.assertEqual(signature.recover_address(digest), private_key.address())

        parsed = RecoverableSignature.from_bytes(signature.to_bytes())
        self.assertEqual(parsed, signature)

    def test_deterministic(self):
        private_key = PrivateKey.from_hex("0x" + "11" * 32)
        digest = keccak(b"deterministic")
        self.assertEqual(private_key.sign_digest(digest), private_key.sign_digest(digest))

    def test_wrong_digest_recovers_other_address(self):
        private_key = PrivateKey.random()
        signature = private_key.sign_digest(keccak(b"one"))
        try:
            recovered = signature.recover_address(keccak(b"two"))
        except RecoveryFailure:
            return
        self.assertNotEqual(recovered, private_key.address())

    def test_flipped_recovery_byte(self):
        private_key = PrivateKey.random()
        digest = keccak(b"flip")
        signature = private_key.sign_digest(digest)
        flipped = 55 - signature.v
        try:
            recovered = recover_address(digest, signature.r, signature.s, flipped)
        except RecoveryFailure:
            return
        self.assertNotEqual(recovered, private_key.address())

    def test_invalid_length(self):
        with self.assertRaises(InvalidSignatureLength) as cm:
            RecoverableSignature.from_bytes(b"\x01" * 64)
        self.assertEqual(cm.exception.length, 64)
        self.assertRaises(
            InvalidSignatureLength, RecoverableSignature.from_bytes, b"\x01" * 66
        )

    def test_invalid_recovery_byte(self):
        for v in (0, 1, 26, 29, 37, 0x69):
            with self.assertRaises(InvalidRecoveryParameter):
                RecoverableSignature.from_bytes(b"\x01" * 64 + bytes([v]))

    def test_out_of_range_scalars(self):
        digest = keccak(b"range")
        zero = b"\x00" * 32
        order = SECP256k1.order.to_bytes(32, "big")
        self.assertRaises(RecoveryFailure, recover_address, digest, zero, b"\x01" * 32, 27)
        self.assertRaises(RecoveryFailure, recover_address, digest, b"\x01" * 32, order, 27)

    def test_personal_message_digest(self):
        digest = personal_message_digest(b"hello")
        self.assertEqual(len(digest), 32)
        self.assertEqual(digest, keccak(b"\x19Ethereum Signed Message:\n5hello"))
        self.assertNotEqual(digest, personal_message_digest(b"hello "))

    def test_public_key_from_str(self):
        public_key = PrivateKey.random().public_key()
        self.assertEqual(PublicKey.from_str(public_key.hex()), public_key)
        self.assertEqual(PublicKey.from_str(public_key.hex()[4:]), public_key)


if __name__ == "__main__":
    unittest.main()
