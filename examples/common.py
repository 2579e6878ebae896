# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Common configuration for counterfactual-sig examples.

Environment Variables:
    RPC_URL: JSON-RPC endpoint of an Ethereum-compatible node
    RPC_API_KEY: Optional bearer token for hosted providers
    RPC_SENDER: Node-managed account used to send deployment transactions
    WALLET_FACTORY: Factory that deploys counterfactual wallets
    CALL_TIMEOUT: Seconds allowed for each chain call during verification

Defaults target a local development node (anvil, hardhat) with its first
unlocked account.
"""

import os

RPC_URL = os.getenv("RPC_URL", "http://127.0.0.1:8545")

RPC_API_KEY = os.getenv("RPC_API_KEY")

RPC_SENDER = os.getenv("RPC_SENDER", "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266")

WALLET_FACTORY = os.getenv("WALLET_FACTORY")

CALL_TIMEOUT = float(os.getenv("CALL_TIMEOUT", "30"))
