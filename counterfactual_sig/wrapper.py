# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Deferred-deployment signature wrapper.

A signer whose contract wallet is not deployed yet cannot be asked to validate
anything. Instead it ships everything needed to deploy it alongside the
signature the wallet will eventually validate::

    wrapped := abi.encode(address factory, bytes factoryCallInput, bytes innerSignature)
               || 0x69696969

The verifier calls ``factory`` with ``factoryCallInput`` to deploy the wallet
at the claimed signer address, then asks the fresh wallet to validate
``innerSignature``. The trailing four marker bytes make the format
recognizable without any chain access.

Examples:
    Signer side::

        from counterfactual_sig.wrapper import DeploymentDescriptor, encode_wrapped

        deployment = DeploymentDescriptor(factory, create_account_calldata)
        signature = encode_wrapped(deployment, owner_signature)

    Verifier side::

        wrapped = decode_wrapped(signature)
        wrapped.deployment.factory_address
        wrapped.inner_signature
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from .address import Address, ParseAddressError
from .errors import MalformedWrapper

MAGIC_MARKER = bytes.fromhex("69696969")

WRAPPER_ABI_TYPES = ["address", "bytes", "bytes"]


def has_magic_marker(signature: bytes) -> bool:
    """True when the last four bytes of ``signature`` are the wrapper marker."""
    return len(signature) >= len(MAGIC_MARKER) and (
        signature[-len(MAGIC_MARKER) :] == MAGIC_MARKER
    )


@dataclass(frozen=True)
class DeploymentDescriptor:
    """How to deploy a counterfactual signer.

    The target address is not part of the descriptor: the verifier already
    knows it as the claimed signer, and the factory is trusted to deploy there
    deterministically.
    """

    factory_address: Address
    factory_call_input: bytes


@dataclass(frozen=True)
class WrappedSignature:
    """Decoded form of a signature that ends in :data:`MAGIC_MARKER`."""

    deployment: DeploymentDescriptor
    inner_signature: bytes

    def to_bytes(self) -> bytes:
        return encode_wrapped(self.deployment, self.inner_signature)

    @staticmethod
    def from_bytes(signature: bytes) -> WrappedSignature:
        return decode_wrapped(signature)


def encode_wrapped(deployment: DeploymentDescriptor, inner_signature: bytes) -> bytes:
    """Build the wire form of a wrapped signature.

    Args:
        deployment: Factory and call input that deploy the signer contract.
        inner_signature: Signature the deployed contract will validate.

    Returns:
        ``abi.encode(factory, callInput, innerSignature) || MAGIC_MARKER``
    """
    payload = encode(
        WRAPPER_ABI_TYPES,
        [
            deployment.factory_address.address,
            bytes(deployment.factory_call_input),
            bytes(inner_signature),
        ],
    )
    return payload + MAGIC_MARKER


def decode_wrapped(signature: bytes) -> WrappedSignature:
    """Parse a wrapped signature.

    Raises:
        MalformedWrapper: If the marker is missing or the payload in front of
            it is not an ABI-encoded ``(address, bytes, bytes)`` tuple.
    """
    if not has_magic_marker(signature):
        raise MalformedWrapper("Signature does not end with the wrapper marker")

    payload = bytes(signature[: -len(MAGIC_MARKER)])
    try:
        factory, call_input, inner_signature = decode(WRAPPER_ABI_TYPES, payload)
        factory_address = Address.from_str_relaxed(factory)
    except (DecodingError, OverflowError, ValueError, ParseAddressError) as e:
        raise MalformedWrapper(f"Unable to decode wrapper payload: {e}") from e

    return WrappedSignature(
        DeploymentDescriptor(factory_address, call_input), inner_signature
    )


class Test(unittest.TestCase):
    factory = Address.from_str("0x4e59b44847b379578588920ca78fbf26c0b4956c")

    def test_round_trip(self):
        deployment = DeploymentDescriptor(self.factory, bytes.fromhex("deadbeef"))
        inner = b"\x01" * 65
        encoded = encode_wrapped(deployment, inner)

        self.assertTrue(encoded.endswith(MAGIC_MARKER))
        self.assertEqual(
            decode_wrapped(encoded), WrappedSignature(deployment, inner)
        )
        self.assertEqual(WrappedSignature.from_bytes(encoded).to_bytes(), encoded)

    def test_empty_fields(self):
        deployment = DeploymentDescriptor(self.factory, b"")
        decoded = decode_wrapped(encode_wrapped(deployment, b""))
        self.assertEqual(decoded.deployment, deployment)
        self.assertEqual(decoded.inner_signature, b"")

    def test_layout(self):
        deployment = DeploymentDescriptor(self.factory, b"\xaa")
        encoded = encode_wrapped(deployment, b"\xbb\xcc")
        # head: address word, two offsets; tails: length + padded data each
        self.assertEqual(len(encoded), 32 * 3 + 32 * 2 + 32 * 2 + 4)
        self.assertEqual(encoded[12:32], self.factory.address)
        self.assertEqual(int.from_bytes(encoded[32:64], "big"), 96)
        self.assertEqual(int.from_bytes(encoded[64:96], "big"), 160)

    def test_has_magic_marker(self):
        self.assertTrue(has_magic_marker(MAGIC_MARKER))
        self.assertTrue(has_magic_marker(b"\x00" * 61 + MAGIC_MARKER))
        self.assertFalse(has_magic_marker(b""))
        self.assertFalse(has_magic_marker(MAGIC_MARKER[1:]))
        self.assertFalse(has_magic_marker(MAGIC_MARKER + b"\x00"))

    def test_missing_marker(self):
        encoded = encode_wrapped(DeploymentDescriptor(self.factory, b""), b"")
        self.assertRaises(MalformedWrapper, decode_wrapped, encoded[:-4])

    def test_malformed_payload(self):
        self.assertRaises(MalformedWrapper, decode_wrapped, MAGIC_MARKER)
        self.assertRaises(MalformedWrapper, decode_wrapped, b"\x00" * 31 + MAGIC_MARKER)
        self.assertRaises(
            MalformedWrapper, decode_wrapped, b"\x01" * 65 + MAGIC_MARKER
        )

    def test_truncated_tail(self):
        deployment = DeploymentDescriptor(self.factory, b"\x01" * 40)
        encoded = encode_wrapped(deployment, b"\x02" * 65)
        self.assertRaises(
            MalformedWrapper, decode_wrapped, encoded[:-40] + MAGIC_MARKER
        )

    def test_out_of_range_offset(self):
        payload = (
            self.factory.address.rjust(32, b"\x00")
            + (2**255).to_bytes(32, "big")
            + (96).to_bytes(32, "big")
            + (0).to_bytes(32, "big")
        )
        self.assertRaises(MalformedWrapper, decode_wrapped, payload + MAGIC_MARKER)


if __name__ == "__main__":
    unittest.main()
