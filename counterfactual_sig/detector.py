# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Signature format classification.

Which verification strategy applies is decided by two facts, in this order:

1. whether the claimed signer already has code on chain, and
2. whether the signature ends with the wrapper marker.

Code presence wins over everything: a deployed contract's answer is
authoritative. Only without code does the marker matter, and only without the
marker is the signature treated as a plain recoverable signature.

The marker's last byte (``0x69``) is not an accepted recovery byte, so a
65-byte signature with a valid recovery byte can never end with the marker.
:func:`marker_collides_with_recovery_byte` states that relationship so it can
be checked rather than assumed.
"""

import random
import unittest
from enum import Enum
from typing import List

from .address import Address
from .chain import ChainState
from .errors import InvalidRecoveryParameter
from .secp256k1_ecdsa import VALID_RECOVERY_BYTES, RecoverableSignature
from .wrapper import MAGIC_MARKER, has_magic_marker


class SignatureFormat(Enum):
    CONTRACT_PRESENT = "contract_present"
    WRAPPED_DEPLOYMENT = "wrapped_deployment"
    PLAIN_OR_RECOVERABLE = "plain_or_recoverable"


def detect_format(code_present: bool, signature: bytes) -> SignatureFormat:
    """Classify ``signature`` given whether the signer has code."""
    if code_present:
        return SignatureFormat.CONTRACT_PRESENT
    if has_magic_marker(signature):
        return SignatureFormat.WRAPPED_DEPLOYMENT
    return SignatureFormat.PLAIN_OR_RECOVERABLE


async def classify(
    chain: ChainState, signer: Address, signature: bytes
) -> SignatureFormat:
    """Look up code presence for ``signer`` and classify ``signature``.

    The code lookup is the only side effect.
    """
    return detect_format(await chain.has_code(signer), signature)


def marker_collides_with_recovery_byte() -> bool:
    """True if a plain 65-byte signature could end with the wrapper marker."""
    return MAGIC_MARKER[-1] in VALID_RECOVERY_BYTES


class FakeChain:
    def __init__(self, code_present: bool):
        self.code_present = code_present
        self.lookups: List[Address] = []

    async def has_code(self, address: Address) -> bool:
        self.lookups.append(address)
        return self.code_present


class Test(unittest.IsolatedAsyncioTestCase):
    signer = Address.from_str("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")

    def test_detect_format(self):
        wrapped = b"\x00" * 96 + MAGIC_MARKER
        plain = b"\x01" * 64 + b"\x1b"

        self.assertEqual(
            detect_format(True, wrapped), SignatureFormat.CONTRACT_PRESENT
        )
        self.assertEqual(detect_format(True, plain), SignatureFormat.CONTRACT_PRESENT)
        self.assertEqual(
            detect_format(False, wrapped), SignatureFormat.WRAPPED_DEPLOYMENT
        )
        self.assertEqual(
            detect_format(False, plain), SignatureFormat.PLAIN_OR_RECOVERABLE
        )

    def test_short_signatures_are_not_wrapped(self):
        for length in range(4):
            self.assertEqual(
                detect_format(False, MAGIC_MARKER[4 - length :]),
                SignatureFormat.PLAIN_OR_RECOVERABLE,
            )

    def test_marker_cannot_be_recovery_byte(self):
        self.assertFalse(marker_collides_with_recovery_byte())
        self.assertNotIn(MAGIC_MARKER[-1], VALID_RECOVERY_BYTES)

    def test_random_plain_signatures_never_look_wrapped(self):
        rng = random.Random(6492)
        for _ in range(500):
            r = rng.getrandbits(256).to_bytes(32, "big")
            s = rng.getrandbits(256).to_bytes(32, "big")
            v = rng.choice(sorted(VALID_RECOVERY_BYTES))
            signature = RecoverableSignature(r, s, v).to_bytes()
            self.assertFalse(has_magic_marker(signature))
            self.assertEqual(
                detect_format(False, signature), SignatureFormat.PLAIN_OR_RECOVERABLE
            )

    def test_marker_suffix_is_rejected_as_plain(self):
        # A 65-byte value ending in the marker is never a valid plain signature.
        candidate = b"\x01" * 61 + MAGIC_MARKER
        self.assertEqual(
            detect_format(False, candidate), SignatureFormat.WRAPPED_DEPLOYMENT
        )
        with self.assertRaises(InvalidRecoveryParameter):
            RecoverableSignature.from_bytes(candidate)

    async def test_classify_is_stable(self):
        chain = FakeChain(code_present=False)
        signature = b"\x00" * 96 + MAGIC_MARKER
        first = await classify(chain, self.signer, signature)
        for _ in range(3):
            self.assertEqual(await classify(chain, self.signer, signature), first)
        self.assertEqual(first, SignatureFormat.WRAPPED_DEPLOYMENT)
        self.assertEqual(chain.lookups, [self.signer] * 4)

        chain.code_present = True
        self.assertEqual(
            await classify(chain, self.signer, signature),
            SignatureFormat.CONTRACT_PRESENT,
        )


if __name__ == "__main__":
    unittest.main()
