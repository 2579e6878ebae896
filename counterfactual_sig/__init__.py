# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
counterfactual-sig - Universal signature verification for EVM accounts.

Decides whether a byte string is a valid authorization by an account over a
32-byte digest, uniformly for three kinds of signer:

- **Externally-owned keys**: plain 65-byte ``r || s || v`` secp256k1
  signatures, checked by address recovery
- **Deployed contract wallets**: checked through the wallet's
  ``isValidSignature(bytes32,bytes)`` entry point
- **Counterfactual contract wallets**: not deployed yet; the signature carries
  the factory call that deploys the wallet, which the verifier executes before
  asking the wallet to validate the inner signature

Modules:
- ``verifier``: :class:`SignatureVerifier`, the verification state machine
- ``detector``: signature format classification
- ``wrapper``: encoding and decoding of deferred-deployment signatures
- ``secp256k1_ecdsa``: keys, recoverable signatures and address recovery
- ``address``: 20-byte addresses, EIP-55 and CREATE2 prediction
- ``chain``: the capability protocol the verifier consumes
- ``async_client``: JSON-RPC client and the node-backed capability
- ``errors``: internal failure taxonomy

Quick Start:
    Verifying against a node::

        import asyncio
        from counterfactual_sig.async_client import ClientConfig, JsonRpcClient, RpcChainState
        from counterfactual_sig.verifier import SignatureVerifier

        async def main():
            client = JsonRpcClient(
                "http://127.0.0.1:8545",
                ClientConfig(sender="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"),
            )
            verifier = SignatureVerifier(RpcChainState(client))

            outcome = await verifier.verify(signer, digest, signature)
            print(f"Signature is {outcome.value}")

            await client.close()

        asyncio.run(main())

    Producing a counterfactual signature::

        from counterfactual_sig.wrapper import DeploymentDescriptor, encode_wrapped

        signature = encode_wrapped(
            DeploymentDescriptor(factory, create_account_calldata),
            owner_signature,
        )

Security Considerations:
    - **Side Effects**: counterfactual verification sends a real deployment
      transaction; use a fork or development node to discard it
    - **Timeouts**: every chain call is bounded by ``VerifierConfig.call_timeout``
      and a timeout is an INVALID result
    - **Ordering**: a deployed contract's rejection is never overridden by
      address recovery

Requirements:
    - Python 3.9 or higher
    - httpx for JSON-RPC transport
    - ecdsa for secp256k1 recovery and signing
    - eth-abi and eth-utils for ABI encoding, Keccak-256 and EIP-55

License:
    Apache License 2.0
"""
