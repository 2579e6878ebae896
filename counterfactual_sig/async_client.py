# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous JSON-RPC client for Ethereum-compatible nodes.

This module provides the network side of verification:

- :class:`JsonRpcClient`: a thin async wrapper over the handful of JSON-RPC
  methods verification needs (``eth_chainId``, ``eth_getCode``, ``eth_call``,
  ``eth_sendTransaction``, ``eth_getTransactionReceipt``)
- :class:`RpcChainState`: the :class:`counterfactual_sig.chain.ChainState`
  implementation the verifier consumes, translating transport and JSON-RPC
  errors into :class:`CallFailure` and :class:`DeploymentFailure`

Deployment is a real, state-mutating transaction sent from
``ClientConfig.sender`` (an account the node manages). Point the client at a
fork or development node when the deployment side effect must be discarded.

Examples:
    Verifying against a local node::

        from counterfactual_sig.async_client import ClientConfig, JsonRpcClient, RpcChainState
        from counterfactual_sig.verifier import SignatureVerifier

        client = JsonRpcClient(
            "http://127.0.0.1:8545",
            ClientConfig(sender="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"),
        )
        verifier = SignatureVerifier(RpcChainState(client))
        outcome = await verifier.verify(signer, digest, signature)
        await client.close()

Note:
    The client uses httpx with HTTP/2 and connection pooling enabled by
    default.
"""

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from eth_abi import encode
from eth_utils import decode_hex, to_hex

from .address import Address
from .chain import ERC1271_MAGIC_VALUE, IS_VALID_SIGNATURE_SELECTOR
from .errors import CallFailure, DeploymentFailure
from .metadata import Metadata

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Configuration parameters for :class:`JsonRpcClient`.

    Transaction Parameters:
        sender: Node-managed account that sends deployment transactions
            (default: None, deployments fail)
        gas: Gas limit for deployment transactions, estimated by the node when
            None (default: None)
        transaction_wait_in_seconds: Timeout for a deployment receipt
            (default: 20)
        poll_interval: Seconds between receipt polls (default: 1.0)

    Network Parameters:
        http2: Enable HTTP/2 for better performance (default: True)
        api_key: Optional API key sent as a bearer token (default: None)

    Examples:
        Development node with an unlocked account::

            config = ClientConfig(sender="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266")

        Hosted provider, read-only::

            config = ClientConfig(api_key="your-api-key-here")
    """

    http2: bool = True
    api_key: Optional[str] = None
    sender: Optional[str] = None
    gas: Optional[int] = None
    transaction_wait_in_seconds: int = 20
    poll_interval: float = 1.0


class JsonRpcClient:
    """Async JSON-RPC 2.0 client over HTTP.

    Attributes:
        base_url: Node endpoint every request is posted to
        client: Underlying ``httpx.AsyncClient``
        client_config: Client configuration
    """

    _chain_id: Optional[int]
    _request_id: int
    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str

    def __init__(self, base_url: str, client_config: ClientConfig = ClientConfig()):
        self.base_url = base_url
        # Default limits
        limits = httpx.Limits()
        # Default timeouts but do not set a pool timeout, since the idea is that jobs will wait as
        # long as progress is being made.
        timeout = httpx.Timeout(60.0, pool=None)
        # Default headers
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
        )
        self.client_config = client_config
        self._chain_id = None
        self._request_id = 0
        if client_config.api_key:
            self.client.headers["Authorization"] = f"Bearer {client_config.api_key}"

    async def close(self):
        """
        Close the underlying HTTP client connection.
        """
        await self.client.aclose()

    async def chain_id(self) -> int:
        """
        Get the chain ID of the network, cached after the first call.

        :return: The numeric chain ID (e.g., 1 for mainnet)
        :raises ApiError: If the request fails
        :raises RpcError: If the node returns a JSON-RPC error
        """
        if not self._chain_id:
            self._chain_id = int(await self._rpc("eth_chainId", []), 16)
        return self._chain_id

    #
    # State accessors
    #

    async def get_code(self, address: Address, block: str = "latest") -> bytes:
        """
        Fetch the runtime code deployed at an address.

        :param address: Account to inspect.
        :param block: Block tag or hex number, defaults to "latest".
        :return: The code, empty for accounts without code.
        """
        return decode_hex(await self._rpc("eth_getCode", [address.hex(), block]))

    async def call(self, to: Address, data: bytes, block: str = "latest") -> bytes:
        """
        Execute a read-only message call and return its output.

        Reverts surface as :class:`RpcError`, usually with code 3 and the
        revert data in ``data``.
        """
        result = await self._rpc(
            "eth_call", [{"to": to.hex(), "data": to_hex(data)}, block]
        )
        return decode_hex(result)

    #
    # Transactions
    #

    async def send_transaction(
        self,
        sender: Address,
        to: Address,
        data: bytes,
        gas: Optional[int] = None,
    ) -> str:
        """
        Send a transaction from a node-managed account.

        :return: The transaction hash.
        """
        transaction: Dict[str, Any] = {
            "from": sender.hex(),
            "to": to.hex(),
            "data": to_hex(data),
        }
        if gas is not None:
            transaction["gas"] = hex(gas)
        return await self._rpc("eth_sendTransaction", [transaction])

    async def transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a transaction receipt, None while the transaction is pending.
        """
        return await self._rpc("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """
        Waits up to the duration specified in client_config for a transaction to be mined.

        :raises TimeoutError: If no receipt appears in time.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.client_config.transaction_wait_in_seconds
        while True:
            receipt = await self.transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            if loop.time() >= deadline:
                raise TimeoutError(f"transaction {tx_hash} timed out")
            await asyncio.sleep(self.client_config.poll_interval)

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        response = await self._post(
            {
                "jsonrpc": "2.0",
                "id": self._request_id,
                "method": method,
                "params": params,
            }
        )
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {method}", response.status_code)
        body = response.json()
        if "error" in body:
            error = body["error"]
            raise RpcError(
                error.get("message", "unknown error"),
                error.get("code", 0),
                error.get("data"),
            )
        return body.get("result")

    async def _post(self, data: Dict[str, Any]) -> httpx.Response:
        return await self.client.post(
            url=self.base_url,
            headers={"Content-Type": "application/json"},
            json=data,
        )


class RpcChainState:
    """:class:`ChainState` backed by a :class:`JsonRpcClient`."""

    client: JsonRpcClient

    def __init__(self, client: JsonRpcClient):
        self.client = client

    async def has_code(self, address: Address) -> bool:
        try:
            code = await self.client.get_code(address)
        except (ApiError, RpcError, httpx.HTTPError) as e:
            raise CallFailure(f"eth_getCode for {address} failed: {e}") from e
        return len(code) > 0

    async def deploy(self, factory_address: Address, call_input: bytes) -> None:
        config = self.client.client_config
        if config.sender is None:
            raise DeploymentFailure("No sender configured for deployment transactions")

        try:
            tx_hash = await self.client.send_transaction(
                Address.from_str_relaxed(config.sender),
                factory_address,
                call_input,
                config.gas,
            )
        except (ApiError, RpcError, httpx.HTTPError) as e:
            logger.info(f"Deployment via {factory_address} was rejected: {e}")
            raise DeploymentFailure(f"Deployment transaction rejected: {e}") from e

        try:
            receipt = await self.client.wait_for_transaction(tx_hash)
        except (ApiError, RpcError, httpx.HTTPError, TimeoutError) as e:
            raise DeploymentFailure(f"No receipt for {tx_hash}: {e}", tx_hash) from e

        if int(receipt.get("status", "0x0"), 16) != 1:
            raise DeploymentFailure(f"Deployment transaction {tx_hash} reverted", tx_hash)

    async def is_valid_signature(
        self, contract: Address, digest: bytes, signature: bytes
    ) -> bytes:
        data = IS_VALID_SIGNATURE_SELECTOR + encode(
            ["bytes32", "bytes"], [digest, signature]
        )
        try:
            result = await self.client.call(contract, data)
        except (ApiError, RpcError, httpx.HTTPError) as e:
            logger.info(f"isValidSignature on {contract} failed: {e}")
            raise CallFailure(f"isValidSignature call failed: {e}") from e

        # bytes4 is returned left-aligned in a single 32 byte word
        if len(result) < 32:
            raise CallFailure(f"Unexpected return data of {len(result)} bytes")
        return result[:4]


class ApiError(Exception):
    """The node returned a non-success HTTP status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.status_code = status_code


class RpcError(Exception):
    """The node answered with a JSON-RPC error object"""

    code: int
    data: Any

    def __init__(self, message: str, code: int, data: Any = None):
        # Call the base class constructor with the parameters it needs
        super().__init__(message)
        self.code = code
        self.data = data


def rpc_result(result: Any) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


def rpc_error(code: int, message: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}},
    )


class Test(unittest.IsolatedAsyncioTestCase):
    wallet = Address.from_str("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")
    factory = Address.from_str("0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359")
    sender = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"

    async def asyncSetUp(self):
        self.client = JsonRpcClient(
            "http://127.0.0.1:8545",
            ClientConfig(http2=False, sender=self.sender, poll_interval=0),
        )

    async def asyncTearDown(self):
        await self.client.close()

    async def test_request_shape(self):
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result("0x6001")
        ) as post:
            code = await self.client.get_code(self.wallet)
        self.assertEqual(code, b"\x60\x01")
        payload = post.call_args.args[0]
        self.assertEqual(payload["jsonrpc"], "2.0")
        self.assertEqual(payload["method"], "eth_getCode")
        self.assertEqual(payload["params"], [self.wallet.hex(), "latest"])

    async def test_chain_id_cached(self):
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result("0x1")
        ) as post:
            self.assertEqual(await self.client.chain_id(), 1)
            self.assertEqual(await self.client.chain_id(), 1)
        self.assertEqual(post.call_count, 1)

    async def test_errors(self):
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=httpx.Response(503, text="busy")
        ):
            with self.assertRaises(ApiError) as cm:
                await self.client.get_code(self.wallet)
            self.assertEqual(cm.exception.status_code, 503)

        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_error(3, "execution reverted")
        ):
            with self.assertRaises(RpcError) as rpc_cm:
                await self.client.call(self.wallet, b"")
            self.assertEqual(rpc_cm.exception.code, 3)

    async def test_has_code(self):
        chain = RpcChainState(self.client)
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result("0x")
        ):
            self.assertFalse(await chain.has_code(self.wallet))
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result("0x6080")
        ):
            self.assertTrue(await chain.has_code(self.wallet))
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=httpx.Response(502, text="bad gateway")
        ):
            with self.assertRaises(CallFailure):
                await chain.has_code(self.wallet)

    async def test_is_valid_signature(self):
        chain = RpcChainState(self.client)
        word = "0x" + ERC1271_MAGIC_VALUE.hex() + "00" * 28
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result(word)
        ) as post:
            result = await chain.is_valid_signature(self.wallet, b"\x01" * 32, b"\x02")
        self.assertEqual(result, ERC1271_MAGIC_VALUE)

        call = post.call_args.args[0]["params"][0]
        self.assertEqual(call["to"], self.wallet.hex())
        self.assertTrue(call["data"].startswith("0x1626ba7e"))

    async def test_is_valid_signature_failures(self):
        chain = RpcChainState(self.client)
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_error(3, "execution reverted")
        ):
            with self.assertRaises(CallFailure):
                await chain.is_valid_signature(self.wallet, b"\x01" * 32, b"")
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_result("0x")
        ):
            with self.assertRaises(CallFailure):
                await chain.is_valid_signature(self.wallet, b"\x01" * 32, b"")

    async def test_deploy(self):
        chain = RpcChainState(self.client)
        responses = [
            rpc_result("0xabc"),
            rpc_result(None),
            rpc_result({"transactionHash": "0xabc", "status": "0x1"}),
        ]
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", side_effect=responses
        ) as post:
            await chain.deploy(self.factory, b"\xde\xad")

        transaction = post.call_args_list[0].args[0]["params"][0]
        self.assertEqual(transaction["from"], self.sender.lower())
        self.assertEqual(transaction["to"], self.factory.hex())
        self.assertEqual(transaction["data"], "0xdead")

    async def test_deploy_reverted(self):
        chain = RpcChainState(self.client)
        responses = [
            rpc_result("0xabc"),
            rpc_result({"transactionHash": "0xabc", "status": "0x0"}),
        ]
        with unittest.mock.patch.object(JsonRpcClient, "_post", side_effect=responses):
            with self.assertRaises(DeploymentFailure) as cm:
                await chain.deploy(self.factory, b"")
        self.assertEqual(cm.exception.tx_hash, "0xabc")

    async def test_deploy_rejected(self):
        chain = RpcChainState(self.client)
        with unittest.mock.patch.object(
            JsonRpcClient, "_post", return_value=rpc_error(-32000, "insufficient funds")
        ):
            with self.assertRaises(DeploymentFailure):
                await chain.deploy(self.factory, b"")

    async def test_deploy_timeout(self):
        self.client.client_config.transaction_wait_in_seconds = 0
        chain = RpcChainState(self.client)
        with unittest.mock.patch.object(
            JsonRpcClient,
            "_post",
            side_effect=[rpc_result("0xabc"), rpc_result(None)],
        ):
            with self.assertRaises(DeploymentFailure):
                await chain.deploy(self.factory, b"")

    async def test_deploy_without_sender(self):
        client = JsonRpcClient("http://127.0.0.1:8545", ClientConfig(http2=False))
        with self.assertRaises(DeploymentFailure):
            await RpcChainState(client).deploy(self.factory, b"")
        await client.close()


if __name__ == "__main__":
    unittest.main()
