# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Account address handling for EVM-compatible chains.

This module provides the :class:`Address` value type used throughout the
package for claimed signers, factory contracts and recovered keys. An address
is the trailing 20 bytes of a Keccak-256 hash, either of an uncompressed
secp256k1 public key (externally-owned accounts) or of the CREATE2 preimage
(contracts deployed deterministically by a factory).

Key Features:
- **Strict Parsing**: ``0x`` + 40 hex characters, EIP-55 checksum enforced for
  mixed-case input
- **Relaxed Parsing**: optional prefix, short forms left-padded with zeroes
- **Checksum Formatting**: ``str(address)`` is always the EIP-55 form
- **Key Derivation**: address of a secp256k1 public key
- **Counterfactual Addresses**: CREATE2 prediction, so a signer can learn its
  contract address before anything is deployed

Examples:
    Parsing and formatting::

        from counterfactual_sig.address import Address

        addr = Address.from_str("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")
        print(addr)        # EIP-55 checksummed
        print(addr.hex())  # lowercase, used on the wire

    Predicting a counterfactual wallet address::

        factory = Address.from_str("0x4e59b44847b379578588920cA78FbF26c0B4956C")
        wallet = Address.for_create2(factory, salt, init_code)

See Also:
    EIP-55: https://eips.ethereum.org/EIPS/eip-55
    EIP-1014: https://eips.ethereum.org/EIPS/eip-1014
"""

from __future__ import annotations

import typing
import unittest
from dataclasses import dataclass

from eth_utils import keccak, to_checksum_address

if typing.TYPE_CHECKING:
    from .secp256k1_ecdsa import PublicKey


class ParseAddressError(Exception):
    """Exception raised when there's an error parsing an account address.

    Examples:
        Catching parse errors::

            try:
                addr = Address.from_str("invalid")
            except ParseAddressError as e:
                print(f"Failed to parse address: {e}")
    """


class Address:
    """A 20-byte account address.

    Addresses compare and hash by their raw bytes, so an address parsed from a
    checksummed string equals the same address parsed from lowercase hex.

    Attributes:
        address: The raw 20-byte address data
        LENGTH: The required byte length of all addresses (20)
    """

    address: bytes
    LENGTH: int = 20
    CREATE2_PREFIX: bytes = b"\xff"

    def __init__(self, address: bytes):
        """Initialize an Address with raw address bytes.

        Raises:
            ParseAddressError: If the address is not exactly 20 bytes.
        """
        self.address = bytes(address)

        if len(self.address) != Address.LENGTH:
            raise ParseAddressError("Expected address of length 20")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __str__(self):
        """Get the EIP-55 checksummed representation of this address."""
        return to_checksum_address(self.address)

    def __repr__(self):
        return self.__str__()

    def hex(self) -> str:
        """Lowercase ``0x``-prefixed hex, the form JSON-RPC nodes expect."""
        return f"0x{self.address.hex()}"

    def is_zero(self) -> bool:
        return self.address == b"\x00" * Address.LENGTH

    @staticmethod
    def from_str(address: str) -> Address:
        """Create an Address from a hex string with strict validation.

        The string must start with ``0x`` and contain exactly 40 hex
        characters. All-lowercase and all-uppercase input is accepted as is;
        mixed-case input must carry a valid EIP-55 checksum.

        Args:
            address: A hex string representing an account address.

        Returns:
            An Address instance.

        Raises:
            ParseAddressError: If the string is not a valid address.

        Examples:
            >>> Address.from_str("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")
            0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed
            >>> Address.from_str("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
            0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed
        """
        if not address.startswith("0x"):
            raise ParseAddressError("Hex string must start with a leading 0x.")

        body = address[2:]
        if len(body) != Address.LENGTH * 2:
            raise ParseAddressError(
                "Hex string must be exactly 40 chars long, excluding the leading 0x."
            )

        try:
            parsed = Address(bytes.fromhex(body))
        except ValueError as e:
            raise ParseAddressError(f"Invalid hex string: {address}") from e

        # Single-case input carries no checksum information.
        if body != body.lower() and body != body.upper():
            if str(parsed) != address:
                raise ParseAddressError(f"Invalid EIP-55 checksum: {address}")

        return parsed

    @staticmethod
    def from_str_relaxed(address: str) -> Address:
        """Create an Address from a hex string with relaxed validation.

        Accepts input with or without the ``0x`` prefix and of any length from
        1 to 40 hex characters. Short input is left-padded with zeroes. No
        checksum validation is performed.

        Raises:
            ParseAddressError: If the string is empty, too long or not hex.

        Examples:
            >>> Address.from_str_relaxed("0x1").hex()
            '0x0000000000000000000000000000000000000001'
        """
        addr = address[2:] if address.startswith("0x") else address

        if len(addr) < 1:
            raise ParseAddressError(
                "Hex string is too short, must be 1 to 40 chars long, excluding the "
                "leading 0x."
            )

        if len(addr) > Address.LENGTH * 2:
            raise ParseAddressError(
                "Hex string is too long, must be 1 to 40 chars long, excluding the "
                "leading 0x."
            )

        addr = addr.rjust(Address.LENGTH * 2, "0")
        try:
            return Address(bytes.fromhex(addr))
        except ValueError as e:
            raise ParseAddressError(f"Invalid hex string: {address}") from e

    @staticmethod
    def coerce(value: typing.Union[Address, str, bytes]) -> Address:
        """Accept an Address, a strict hex string or 20 raw bytes."""
        if isinstance(value, Address):
            return value
        if isinstance(value, str):
            return Address.from_str(value)
        return Address(value)

    @staticmethod
    def from_key(key: PublicKey) -> Address:
        """Derive the externally-owned account address of a public key.

        The address is the last 20 bytes of the Keccak-256 hash of the 64-byte
        uncompressed point, without the leading ``0x04`` tag.
        """
        point = key.to_crypto_bytes()
        if len(point) == 65 and point[0] == 4:
            point = point[1:]
        return Address(keccak(point)[12:])

    @staticmethod
    def for_create2(deployer: Address, salt: bytes, init_code: bytes) -> Address:
        """Predict the address of a contract deployed with CREATE2.

        A counterfactual signer is deployed by a factory through CREATE2, so
        its address is fixed before deployment:
        ``keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]``.

        Args:
            deployer: The factory performing the CREATE2.
            salt: 32-byte salt chosen by the factory.
            init_code: Contract creation code including constructor arguments.

        Raises:
            ValueError: If the salt is not 32 bytes.
        """
        if len(salt) != 32:
            raise ValueError(f"Expected a 32 byte salt, got {len(salt)} bytes")
        return Address.for_create2_with_hash(deployer, salt, keccak(init_code))

    @staticmethod
    def for_create2_with_hash(
        deployer: Address, salt: bytes, init_code_hash: bytes
    ) -> Address:
        """Same as :meth:`for_create2` when only the init code hash is known."""
        preimage = Address.CREATE2_PREFIX + deployer.address + salt + init_code_hash
        return Address(keccak(preimage)[12:])


@dataclass(init=True, frozen=True)
class TestAddresses:
    lowercase: str
    checksummed: str


CHECKSUM_VECTORS = [
    TestAddresses(
        lowercase="0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        checksummed="0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
    ),
    TestAddresses(
        lowercase="0xfb6916095ca1df60bb79ce92ce3ea74c37c5d359",
        checksummed="0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
    ),
    TestAddresses(
        lowercase="0xdbf03b407c01e7cd3cbea99509d93f8dddc8c6fb",
        checksummed="0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
    ),
    TestAddresses(
        lowercase="0xd1220a0cf47c7b9be7a2e6ba89f429762e7b9adb",
        checksummed="0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb",
    ),
]


class Test(unittest.TestCase):
    def test_checksum_formatting(self):
        for vector in CHECKSUM_VECTORS:
            self.assertEqual(str(Address.from_str(vector.lowercase)), vector.checksummed)
            self.assertEqual(Address.from_str(vector.checksummed).hex(), vector.lowercase)

    def test_from_str(self):
        upper = "0x" + CHECKSUM_VECTORS[0].lowercase[2:].upper()
        self.assertEqual(
            Address.from_str(upper), Address.from_str(CHECKSUM_VECTORS[0].lowercase)
        )

        # Missing prefix, short form and bad checksum are rejected.
        self.assertRaises(
            ParseAddressError, Address.from_str, CHECKSUM_VECTORS[0].lowercase[2:]
        )
        self.assertRaises(ParseAddressError, Address.from_str, "0x1")
        self.assertRaises(
            ParseAddressError,
            Address.from_str,
            "0x5AAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        )
        self.assertRaises(ParseAddressError, Address.from_str, "0x" + "zz" * 20)

    def test_from_str_relaxed(self):
        one = Address(b"\x00" * 19 + b"\x01")
        self.assertEqual(Address.from_str_relaxed("0x1"), one)
        self.assertEqual(Address.from_str_relaxed("1"), one)
        self.assertEqual(Address.from_str_relaxed("0x" + "0" * 39 + "1"), one)
        self.assertRaises(ParseAddressError, Address.from_str_relaxed, "0x")
        self.assertRaises(ParseAddressError, Address.from_str_relaxed, "1" * 41)

    def test_length(self):
        self.assertRaises(ParseAddressError, Address, b"\x00" * 32)
        self.assertTrue(Address(b"\x00" * 20).is_zero())

    def test_coerce(self):
        addr = Address.from_str(CHECKSUM_VECTORS[1].checksummed)
        self.assertIs(Address.coerce(addr), addr)
        self.assertEqual(Address.coerce(CHECKSUM_VECTORS[1].lowercase), addr)
        self.assertEqual(Address.coerce(addr.address), addr)

    def test_create2(self):
        zero_salt = b"\x00" * 32
        self.assertEqual(
            str(Address.for_create2(Address(b"\x00" * 20), zero_salt, b"\x00")),
            "0x4D1A2e2bB4F88F0250f26Ffff098B0b30B26BF38",
        )
        self.assertEqual(
            str(
                Address.for_create2(
                    Address.from_str("0xdeadbeef00000000000000000000000000000000"),
                    zero_salt,
                    b"\x00",
                )
            ),
            "0xB928f69Bb1D91Cd65274e3c79d8986362984fDA3",
        )
        self.assertEqual(
            str(
                Address.for_create2(
                    Address(b"\x00" * 20), zero_salt, bytes.fromhex("deadbeef")
                )
            ),
            "0x70f2b2914A2a4b783FaEFb75f459A580616Fcb5e",
        )
        self.assertRaises(
            ValueError, Address.for_create2, Address(b"\x00" * 20), b"\x00", b""
        )


if __name__ == "__main__":
    unittest.main()
