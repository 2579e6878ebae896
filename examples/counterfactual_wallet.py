# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Sign for a wallet that does not exist yet.

The owner key signs the digest, the signature is wrapped with the factory call
that deploys the owner's wallet, and the verifier deploys the wallet before
asking it to validate. ``WALLET_FACTORY`` must point at a factory exposing
``createAccount(address owner, uint256 salt)`` and ``getAddress(address owner,
uint256 salt)``, the interface common to ERC-4337 account factories.

Usage::

    WALLET_FACTORY=0x... python -m examples.counterfactual_wallet
"""

import asyncio

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from counterfactual_sig.address import Address
from counterfactual_sig.async_client import ClientConfig, JsonRpcClient, RpcChainState
from counterfactual_sig.secp256k1_ecdsa import PrivateKey, personal_message_digest
from counterfactual_sig.verifier import SignatureVerifier, VerifierConfig
from counterfactual_sig.wrapper import DeploymentDescriptor, encode_wrapped

from .common import CALL_TIMEOUT, RPC_API_KEY, RPC_SENDER, RPC_URL, WALLET_FACTORY

SALT = 0


async def main():
    if WALLET_FACTORY is None:
        raise SystemExit("Set WALLET_FACTORY to a wallet factory address")

    client = JsonRpcClient(
        RPC_URL, ClientConfig(api_key=RPC_API_KEY, sender=RPC_SENDER)
    )
    chain = RpcChainState(client)
    verifier = SignatureVerifier(chain, config=VerifierConfig(call_timeout=CALL_TIMEOUT))

    factory = Address.from_str(WALLET_FACTORY)
    owner = PrivateKey.random()
    args = encode(["address", "uint256"], [owner.address().address, SALT])

    # :!:>section_1
    predicted = await client.call(
        factory,
        function_signature_to_4byte_selector("getAddress(address,uint256)") + args,
    )
    (wallet_address,) = decode(["address"], predicted)
    wallet = Address.from_str_relaxed(wallet_address)
    print(f"Owner: {owner.address()}")
    print(f"Wallet (not deployed): {wallet}")
    print(f"Has code: {await chain.has_code(wallet)}")
    # <:!:section_1

    # :!:>section_2
    digest = personal_message_digest(b"Signed before the wallet existed")
    deployment = DeploymentDescriptor(
        factory,
        function_signature_to_4byte_selector("createAccount(address,uint256)") + args,
    )
    signature = encode_wrapped(deployment, owner.sign_digest(digest).to_bytes())
    # <:!:section_2

    outcome = await verifier.verify(wallet, digest, signature)
    print(f"Outcome: {outcome.value}")
    print(f"Has code: {await chain.has_code(wallet)}")

    await client.close()


if __name__ == "__main__":
    asyncio.run(main())
