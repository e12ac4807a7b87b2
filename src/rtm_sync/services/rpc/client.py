"""Raptoreum node JSON-RPC client.

One request per call with an explicit timeout. The client never retries:
retry and backoff belong to the ingestion loop.
"""

import itertools
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from rtm_sync.services.exceptions import (
    RPCAuthError,
    RPCConnectionError,
    RPCError,
    RPCProtocolError,
    RPCResponseError,
)

logger = structlog.get_logger(__name__)


@dataclass
class NodeHealth:
    """Result of a node health probe."""

    status: str  # "connected" or "error"
    message: str
    blocks: int | None = None
    headers: int | None = None
    chain: str | None = None
    verification_progress: float | None = None

    @property
    def is_connected(self) -> bool:
        return self.status == "connected"


class RaptoreumRPCClient:
    """JSON-RPC 1.0 over HTTP with basic auth."""

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize RPC client.

        Args:
            url: Node RPC endpoint (e.g. "http://127.0.0.1:10225")
            user: rpcuser from raptoreum.conf
            password: rpcpassword from raptoreum.conf
            timeout: Per-request timeout in seconds
            client: Optional preconfigured httpx client (tests inject a MockTransport)
        """
        self.url = url
        self.timeout = timeout
        self._auth = httpx.BasicAuth(user, password)
        self._client = client
        self._owns_client = client is None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        """Issue one JSON-RPC request and return its ``result``.

        Args:
            method: RPC method name (e.g. "getblockhash")
            params: Positional parameters

        Returns:
            The ``result`` member of the response

        Raises:
            RPCConnectionError: Node unreachable or timeout
            RPCAuthError: Credentials rejected (401, 403)
            RPCProtocolError: Non-success status without JSON-RPC body, or malformed JSON
            RPCResponseError: Response carries a JSON-RPC error object
        """
        payload = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        try:
            response = await self._get_client().post(
                self.url, json=payload, auth=self._auth, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise RPCConnectionError(f"Request timeout after {self.timeout}s: {e}", method) from e
        except httpx.HTTPError as e:
            raise RPCConnectionError(f"Network error: {e}", method) from e

        if response.status_code in (401, 403):
            raise RPCAuthError(
                f"Unauthorized ({response.status_code}). "
                "Check RTM_RPC_USER / RTM_RPC_PASSWORD against raptoreum.conf",
                method,
            )

        # bitcoind-family nodes answer RPC errors with HTTP 500 and a JSON body
        try:
            data = response.json()
        except ValueError as e:
            raise RPCProtocolError(
                f"HTTP {response.status_code} with non-JSON body: {response.text[:200]}", method
            ) from e

        if not isinstance(data, dict):
            raise RPCProtocolError(f"Unexpected response shape: {type(data).__name__}", method)

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise RPCResponseError(
                    str(error.get("message", "unknown error")), error.get("code"), method
                )
            raise RPCResponseError(str(error), None, method)

        if not response.is_success:
            raise RPCProtocolError(f"HTTP {response.status_code}: {response.text[:200]}", method)

        if "result" not in data:
            raise RPCProtocolError("Response has no result member", method)

        return data["result"]

    async def get_blockchain_info(self) -> dict[str, Any]:
        return await self.rpc_call("getblockchaininfo")

    async def get_block_hash(self, height: int) -> str:
        return await self.rpc_call("getblockhash", [height])

    async def get_block(self, hash_or_height: str | int, verbosity: int = 2) -> dict[str, Any]:
        """Fetch a block; verbosity 2 inlines decoded transactions."""
        return await self.rpc_call("getblock", [hash_or_height, verbosity])

    async def get_raw_transaction(self, txid: str, verbose: bool = True) -> dict[str, Any]:
        return await self.rpc_call("getrawtransaction", [txid, 1 if verbose else 0])

    async def get_asset_details_by_name(self, name: str) -> dict[str, Any] | None:
        """Asset details from the node, or None when the node does not know it."""
        try:
            return await self.rpc_call("getassetdetailsbyname", [name])
        except RPCResponseError:
            logger.warning("rpc.asset_not_found", asset_name=name)
            return None

    async def get_asset_details_by_id(self, asset_id: str) -> dict[str, Any] | None:
        """Asset details by creation txid, or None when unknown."""
        try:
            return await self.rpc_call("getassetdetailsbyid", [asset_id])
        except RPCResponseError:
            logger.warning("rpc.asset_not_found", asset_id=asset_id)
            return None

    async def check_health(self) -> NodeHealth:
        """Probe the node with getblockchaininfo; never raises."""
        try:
            info = await self.get_blockchain_info()
        except RPCError as e:
            logger.error("rpc.health_check_failed", error=str(e), url=self.url)
            return NodeHealth(status="error", message=str(e))

        return NodeHealth(
            status="connected",
            message="Blockchain connection healthy",
            blocks=info.get("blocks"),
            headers=info.get("headers"),
            chain=info.get("chain"),
            verification_progress=info.get("verificationprogress"),
        )
