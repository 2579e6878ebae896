# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Universal signature verification.

:class:`SignatureVerifier` answers one question: is ``signature`` a valid
authorization by ``signer`` over ``digest``? It works for externally-owned
keys, deployed contract wallets, and contract wallets that have not been
deployed yet but ship their deployment data inside the signature.

Verification Order:
    1. **Code check**: if the signer has code, ask it through
       ``isValidSignature`` and stop. A deployed contract's answer is final.
    2. **Wrapper check**: without code, a signature ending in the wrapper
       marker is decoded, its factory call is executed to deploy the signer,
       and the fresh contract validates the inner signature. Any failure on
       the way is final.
    3. **Recovery**: otherwise the signature must be a 65-byte ``r || s || v``
       signature recovering to the signer.

Once a branch is chosen its result is the result. Falling back to a weaker
check after a stronger one failed would let a plain signature stand in for a
contract that rejected it.

Failure Handling:
    Every failure inside a branch (malformed wrapper, reverted deployment,
    failed validation call, bad signature length or recovery byte, collaborator
    timeout) yields :attr:`VerificationOutcome.INVALID`. The reason is logged
    on the ``counterfactual_sig.verifier`` logger and never returned.

Examples:
    Verifying against a node::

        from counterfactual_sig.async_client import JsonRpcClient, RpcChainState
        from counterfactual_sig.verifier import SignatureVerifier, VerifierConfig

        client = JsonRpcClient(NODE_URL)
        verifier = SignatureVerifier(
            RpcChainState(client), config=VerifierConfig(call_timeout=10.0)
        )

        outcome = await verifier.verify(signer, digest, signature)
        if outcome:
            print("authorized")
"""

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, List, Optional, Tuple, Type, TypeVar, Union

from eth_utils import keccak

from .address import Address
from .chain import ERC1271_MAGIC_VALUE, ChainState, RecoverAddress
from .detector import SignatureFormat, detect_format
from .errors import (
    CallFailure,
    DeploymentFailure,
    RecoveryFailure,
    VerificationError,
)
from .secp256k1_ecdsa import PrivateKey, RecoverableSignature, recover_address
from .wrapper import MAGIC_MARKER, DeploymentDescriptor, decode_wrapped, encode_wrapped

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIGEST_LENGTH = 32


class VerificationOutcome(Enum):
    VALID = "valid"
    INVALID = "invalid"

    def __bool__(self) -> bool:
        return self is VerificationOutcome.VALID


@dataclass
class VerifierConfig:
    """Configuration for :class:`SignatureVerifier`.

    Attributes:
        call_timeout: Upper bound in seconds for each collaborator call (code
            lookup, deployment, validation). A call that exceeds it makes the
            verification INVALID (default: 30.0).
    """

    call_timeout: float = 30.0


class SignatureVerifier:
    """Decides whether a signature authorizes a digest for a signer.

    The verifier holds no per-call state, so one instance can serve any number
    of concurrent :meth:`verify` calls.

    Attributes:
        chain: Code lookup, deployment and validation capabilities
        recover: Address recovery for plain signatures
        config: Verifier configuration
    """

    chain: ChainState
    recover: RecoverAddress
    config: VerifierConfig

    def __init__(
        self,
        chain: ChainState,
        recover: RecoverAddress = recover_address,
        config: VerifierConfig = VerifierConfig(),
    ):
        self.chain = chain
        self.recover = recover
        self.config = config

    async def verify(
        self,
        signer: Union[Address, str, bytes],
        digest: bytes,
        signature: bytes,
    ) -> VerificationOutcome:
        """Verify ``signature`` by ``signer`` over ``digest``.

        Args:
            signer: Claimed signer, as an Address, checksummed/lowercase hex
                string or 20 raw bytes.
            digest: 32-byte message digest.
            signature: Plain, contract-specific or wrapped signature bytes.

        Returns:
            VALID or INVALID. Verification failures are never raised.

        Raises:
            ValueError: If ``digest`` is not 32 bytes.
            ParseAddressError: If ``signer`` cannot be parsed.
        """
        signer = Address.coerce(signer)
        if len(digest) != DIGEST_LENGTH:
            raise ValueError(f"Expected a 32 byte digest, got {len(digest)} bytes")
        digest = bytes(digest)
        signature = bytes(signature)

        try:
            code_present = await self._bounded(
                CallFailure, self.chain.has_code(signer)
            )
            signature_format = detect_format(code_present, signature)
            logger.debug(f"Verifying {signer} as {signature_format.value}")

            if signature_format is SignatureFormat.CONTRACT_PRESENT:
                return await self._contract_validate(signer, digest, signature)
            if signature_format is SignatureFormat.WRAPPED_DEPLOYMENT:
                return await self._deploy_then_validate(signer, digest, signature)
            return self._recover_fallback(signer, digest, signature)
        except VerificationError as e:
            logger.info(f"Signature by {signer} is invalid: {type(e).__name__}: {e}")
            return VerificationOutcome.INVALID

    async def _contract_validate(
        self, signer: Address, digest: bytes, signature: bytes
    ) -> VerificationOutcome:
        return await self._validate(signer, digest, signature)

    async def _deploy_then_validate(
        self, signer: Address, digest: bytes, signature: bytes
    ) -> VerificationOutcome:
        wrapped = decode_wrapped(signature)
        deployment = wrapped.deployment
        logger.debug(f"Deploying {signer} through factory {deployment.factory_address}")
        await self._bounded(
            DeploymentFailure,
            self.chain.deploy(deployment.factory_address, deployment.factory_call_input),
        )
        return await self._validate(signer, digest, wrapped.inner_signature)

    def _recover_fallback(
        self, signer: Address, digest: bytes, signature: bytes
    ) -> VerificationOutcome:
        parsed = RecoverableSignature.from_bytes(signature)
        try:
            recovered = self.recover(digest, parsed.r, parsed.s, parsed.v)
        except VerificationError:
            raise
        except Exception as e:
            raise RecoveryFailure(f"Address recovery failed: {e}") from e

        if recovered != signer:
            logger.info(f"Signature for {signer} recovers to {recovered}")
            return VerificationOutcome.INVALID
        return VerificationOutcome.VALID

    async def _validate(
        self, contract: Address, digest: bytes, signature: bytes
    ) -> VerificationOutcome:
        result = await self._bounded(
            CallFailure, self.chain.is_valid_signature(contract, digest, signature)
        )
        if isinstance(result, (bytes, bytearray)) and bytes(result) == ERC1271_MAGIC_VALUE:
            return VerificationOutcome.VALID
        logger.info(f"isValidSignature on {contract} returned {result!r}")
        return VerificationOutcome.INVALID

    async def _bounded(
        self, failure: Type[VerificationError], awaitable: Awaitable[T]
    ) -> T:
        """Await a collaborator call, mapping timeouts and stray errors to ``failure``."""
        try:
            return await asyncio.wait_for(awaitable, self.config.call_timeout)
        except VerificationError:
            raise
        except asyncio.TimeoutError as e:
            raise failure(
                f"Collaborator call exceeded {self.config.call_timeout} seconds"
            ) from e
        except Exception as e:
            raise failure(f"Collaborator call failed: {e}") from e


class FakeChain:
    """In-memory ChainState with a single deployable wallet."""

    def __init__(
        self,
        deployed: bool = False,
        validation_result: bytes = ERC1271_MAGIC_VALUE,
        deploy_error: Optional[Exception] = None,
        validate_error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.deployed = deployed
        self.validation_result = validation_result
        self.deploy_error = deploy_error
        self.validate_error = validate_error
        self.delay = delay
        self.deployments: List[Tuple[Address, bytes]] = []
        self.validations: List[Tuple[Address, bytes, bytes]] = []

    async def has_code(self, address: Address) -> bool:
        await asyncio.sleep(self.delay)
        return self.deployed

    async def deploy(self, factory_address: Address, call_input: bytes) -> None:
        self.deployments.append((factory_address, call_input))
        if self.deploy_error is not None:
            raise self.deploy_error
        self.deployed = True

    async def is_valid_signature(
        self, contract: Address, digest: bytes, signature: bytes
    ) -> bytes:
        self.validations.append((contract, digest, signature))
        if not self.deployed:
            raise CallFailure("No code at address")
        if self.validate_error is not None:
            raise self.validate_error
        return self.validation_result


def signature_with_v(
    private_key: PrivateKey, v: int, label: bytes
) -> Tuple[bytes, RecoverableSignature]:
    for nonce in range(256):
        digest = keccak(label + bytes([nonce]))
        signature = private_key.sign_digest(digest)
        if signature.v == v:
            return digest, signature
    raise AssertionError(f"No signature with v={v} found")


class Test(unittest.IsolatedAsyncioTestCase):
    factory = Address.from_str("0x4e59b44847b379578588920ca78fbf26c0b4956c")
    wallet = Address.from_str("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")
    digest = keccak(b"counterfactual")
    call_input = bytes.fromhex("5fbfb9cf") + b"\x00" * 64
    inner_signature = b"\x07" * 70

    def setUp(self):
        self.recover = unittest.mock.Mock(wraps=recover_address)
        self.private_key = PrivateKey.from_hex("0x" + "42" * 32)

    def wrapped(self, inner_signature: Optional[bytes] = None) -> bytes:
        return encode_wrapped(
            DeploymentDescriptor(self.factory, self.call_input),
            self.inner_signature if inner_signature is None else inner_signature,
        )

    def verifier(self, chain: FakeChain, timeout: float = 30.0) -> SignatureVerifier:
        return SignatureVerifier(chain, self.recover, VerifierConfig(call_timeout=timeout))

    async def test_deployed_contract_accepts(self):
        chain = FakeChain(deployed=True)
        outcome = await self.verifier(chain).verify(self.wallet, self.digest, b"\x01\x02")
        self.assertIs(outcome, VerificationOutcome.VALID)
        self.assertTrue(outcome)
        self.assertEqual(chain.validations, [(self.wallet, self.digest, b"\x01\x02")])
        self.assertEqual(chain.deployments, [])

    async def test_deployed_contract_rejection_is_final(self):
        signer = self.private_key.address()
        digest, signature = signature_with_v(self.private_key, 27, b"deployed")
        self.assertEqual(recover_address(digest, signature.r, signature.s, 27), signer)

        for result in (b"\xff\xff\xff\xff", b"", ERC1271_MAGIC_VALUE + b"\x00"):
            chain = FakeChain(deployed=True, validation_result=result)
            outcome = await self.verifier(chain).verify(
                signer, digest, signature.to_bytes()
            )
            self.assertIs(outcome, VerificationOutcome.INVALID)
        self.recover.assert_not_called()

    async def test_deployed_contract_call_failure(self):
        chain = FakeChain(deployed=True, validate_error=CallFailure("reverted"))
        outcome = await self.verifier(chain).verify(self.wallet, self.digest, b"")
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.recover.assert_not_called()

    async def test_deployed_contract_receives_raw_signature(self):
        chain = FakeChain(deployed=True)
        wrapped = self.wrapped()
        outcome = await self.verifier(chain).verify(self.wallet, self.digest, wrapped)
        self.assertIs(outcome, VerificationOutcome.VALID)
        self.assertEqual(chain.validations[0][2], wrapped)
        self.assertEqual(chain.deployments, [])

    async def test_counterfactual_deploys_then_validates(self):
        chain = FakeChain()
        outcome = await self.verifier(chain).verify(
            self.wallet, self.digest, self.wrapped()
        )
        self.assertIs(outcome, VerificationOutcome.VALID)
        self.assertEqual(chain.deployments, [(self.factory, self.call_input)])
        self.assertEqual(
            chain.validations, [(self.wallet, self.digest, self.inner_signature)]
        )
        self.recover.assert_not_called()

    async def test_counterfactual_deployment_reverts(self):
        chain = FakeChain(deploy_error=DeploymentFailure("reverted"))
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(chain).verify(
                self.wallet, self.digest, self.wrapped()
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("DeploymentFailure", "".join(logs.output))
        self.assertEqual(chain.validations, [])
        self.recover.assert_not_called()

    async def test_counterfactual_deployment_unexpected_error(self):
        chain = FakeChain(deploy_error=RuntimeError("node exploded"))
        outcome = await self.verifier(chain).verify(
            self.wallet, self.digest, self.wrapped()
        )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.recover.assert_not_called()

    async def test_counterfactual_rejected_after_deployment(self):
        chain = FakeChain(validation_result=b"\x00\x00\x00\x00")
        outcome = await self.verifier(chain).verify(
            self.wallet, self.digest, self.wrapped()
        )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertEqual(len(chain.deployments), 1)
        self.recover.assert_not_called()

    async def test_counterfactual_call_failure_after_deployment(self):
        chain = FakeChain(validate_error=CallFailure("out of gas"))
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(chain).verify(
                self.wallet, self.digest, self.wrapped()
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("CallFailure", "".join(logs.output))

    async def test_malformed_wrapper_is_final(self):
        chain = FakeChain()
        # A plain signature from the signer, with the marker appended.
        signer = self.private_key.address()
        digest, signature = signature_with_v(self.private_key, 27, b"malformed")
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(chain).verify(
                signer, digest, signature.to_bytes() + MAGIC_MARKER
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("MalformedWrapper", "".join(logs.output))
        self.assertEqual(chain.deployments, [])
        self.recover.assert_not_called()

    async def test_plain_signature(self):
        signer = self.private_key.address()
        digest, signature = signature_with_v(self.private_key, 27, b"plain")
        chain = FakeChain()
        outcome = await self.verifier(chain).verify(signer, digest, signature.to_bytes())
        self.assertIs(outcome, VerificationOutcome.VALID)
        self.recover.assert_called_once_with(digest, signature.r, signature.s, 27)
        self.assertEqual(chain.validations, [])

    async def test_plain_signature_other_signer(self):
        digest, signature = signature_with_v(self.private_key, 28, b"other")
        outcome = await self.verifier(FakeChain()).verify(
            self.wallet, digest, signature.to_bytes()
        )
        self.assertIs(outcome, VerificationOutcome.INVALID)

    async def test_plain_signature_accepts_string_signer(self):
        digest, signature = signature_with_v(self.private_key, 28, b"string")
        outcome = await self.verifier(FakeChain()).verify(
            str(self.private_key.address()), digest, signature.to_bytes()
        )
        self.assertIs(outcome, VerificationOutcome.VALID)

    async def test_plain_signature_wrong_length(self):
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(FakeChain()).verify(
                self.wallet, self.digest, b"\x01" * 64
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("InvalidSignatureLength", "".join(logs.output))
        self.recover.assert_not_called()

    async def test_plain_signature_bad_recovery_byte(self):
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(FakeChain()).verify(
                self.wallet, self.digest, b"\x01" * 64 + b"\x00"
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("InvalidRecoveryParameter", "".join(logs.output))

    async def test_recovery_failure(self):
        self.recover.side_effect = ValueError("not on curve")
        with self.assertLogs("counterfactual_sig.verifier", level="INFO") as logs:
            outcome = await self.verifier(FakeChain()).verify(
                self.wallet, self.digest, b"\x01" * 64 + b"\x1b"
            )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertIn("RecoveryFailure", "".join(logs.output))

    async def test_code_lookup_timeout(self):
        chain = FakeChain(deployed=True, delay=1.0)
        outcome = await self.verifier(chain, timeout=0.01).verify(
            self.wallet, self.digest, b""
        )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertEqual(chain.validations, [])
        self.recover.assert_not_called()

    async def test_deployment_timeout(self):
        class SlowDeployChain(FakeChain):
            async def deploy(self, factory_address: Address, call_input: bytes) -> None:
                await asyncio.sleep(1.0)

        chain = SlowDeployChain()
        outcome = await self.verifier(chain, timeout=0.01).verify(
            self.wallet, self.digest, self.wrapped()
        )
        self.assertIs(outcome, VerificationOutcome.INVALID)
        self.assertEqual(chain.validations, [])

    async def test_invalid_digest(self):
        with self.assertRaises(ValueError):
            await self.verifier(FakeChain()).verify(self.wallet, b"\x00" * 31, b"")

    async def test_concurrent_verifications(self):
        signer = self.private_key.address()
        digest, signature = signature_with_v(self.private_key, 27, b"concurrent")
        verifier = self.verifier(FakeChain())
        outcomes = await asyncio.gather(
            verifier.verify(signer, digest, signature.to_bytes()),
            verifier.verify(signer, digest, b"\x01" * 64),
            verifier.verify(signer, digest, signature.to_bytes()),
        )
        self.assertEqual(
            outcomes,
            [
                VerificationOutcome.VALID,
                VerificationOutcome.INVALID,
                VerificationOutcome.VALID,
            ],
        )


if __name__ == "__main__":
    unittest.main()
