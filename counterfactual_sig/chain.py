# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Capabilities the verifier needs from the outside world.

Verification touches unknown factory and wallet contracts. Rather than handing
the verifier a general-purpose node client, it is given exactly these
operations, each with a fixed failure contract:

- ``has_code(address)``: does the account have deployed code
- ``deploy(factory, call_input)``: state-mutating call that makes code exist,
  raising :class:`DeploymentFailure` when it does not succeed
- ``is_valid_signature(contract, digest, signature)``: raw ``bytes4`` returned
  by the contract's ``isValidSignature(bytes32,bytes)``, raising
  :class:`CallFailure` when the call cannot be executed
- a :data:`RecoverAddress` callable for plain signatures

:class:`counterfactual_sig.async_client.RpcChainState` implements
:class:`ChainState` on top of a JSON-RPC node. Tests use in-memory fakes.
"""

from typing import Callable

from typing_extensions import Protocol

from .address import Address

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
IS_VALID_SIGNATURE_SELECTOR = bytes.fromhex("1626ba7e")
# Returned by isValidSignature when the signature is accepted.
ERC1271_MAGIC_VALUE = IS_VALID_SIGNATURE_SELECTOR

RecoverAddress = Callable[[bytes, bytes, bytes, int], Address]


class ChainState(Protocol):
    async def has_code(self, address: Address) -> bool:
        ...

    async def deploy(self, factory_address: Address, call_input: bytes) -> None:
        """Invoke the factory; raise DeploymentFailure unless it succeeds."""
        ...

    async def is_valid_signature(
        self, contract: Address, digest: bytes, signature: bytes
    ) -> bytes:
        """Return the raw bytes4 result; raise CallFailure if the call fails."""
        ...
