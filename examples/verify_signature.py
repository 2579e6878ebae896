# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Verify signatures from an externally-owned key and from an arbitrary account.

Without arguments, a fresh key signs a personal message and the signature is
verified; the signer has no code, so verification goes through address
recovery.

With arguments, the given signature is verified for the given signer. If the
signer is a deployed contract wallet its ``isValidSignature`` decides::

    python -m examples.verify_signature <signer> <message> <signature hex>
"""

import asyncio
import sys

from counterfactual_sig.address import Address
from counterfactual_sig.async_client import ClientConfig, JsonRpcClient, RpcChainState
from counterfactual_sig.secp256k1_ecdsa import PrivateKey, personal_message_digest
from counterfactual_sig.verifier import SignatureVerifier, VerifierConfig

from .common import CALL_TIMEOUT, RPC_API_KEY, RPC_URL


async def main(argv):
    client = JsonRpcClient(RPC_URL, ClientConfig(api_key=RPC_API_KEY))
    verifier = SignatureVerifier(
        RpcChainState(client), config=VerifierConfig(call_timeout=CALL_TIMEOUT)
    )

    if len(argv) == 3:
        signer = Address.from_str(argv[0])
        digest = personal_message_digest(argv[1].encode())
        signature = bytes.fromhex(argv[2].removeprefix("0x"))
    else:
        private_key = PrivateKey.random()
        signer = private_key.address()
        digest = personal_message_digest(b"Hello, counterfactual world")
        signature = private_key.sign_digest(digest).to_bytes()

    print(f"Chain id: {await client.chain_id()}")
    print(f"Signer: {signer}")
    print(f"Signature: 0x{signature.hex()}")

    outcome = await verifier.verify(signer, digest, signature)
    print(f"Outcome: {outcome.value}")

    await client.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
