"""
Bitcoin Core style JSON-RPC backend for SCASH nodes.
Uses RPC calls but NOT wallet functionality: UTXOs come from scantxoutset.

Several endpoints may be configured. They are tried in order and the next one
is used only when the current one cannot be reached or answers with a non-JSON
or HTTP error; a JSON-RPC method error is returned to the caller as is.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from scashwallet.backends.base import BlockchainBackend, TxStatus
from scashwallet.config import RpcEndpoint
from scashwallet.errors import BroadcastRejected, InvalidFeeRate, RpcError, RpcUnavailable
from scashwallet.units import to_decimal
from scashwallet.wallet.models import Unspent

DEFAULT_RPC_TIMEOUT = 8.0

# scantxoutset walks the whole UTXO set
SCAN_RPC_TIMEOUT = 120.0

# Retries while another scantxoutset holds the node's single scan slot
SCAN_MAX_RETRIES = 10
SCAN_BASE_DELAY = 0.5

RPC_SCAN_IN_PROGRESS = -8
RPC_INVALID_ADDRESS_OR_KEY = -5


class BitcoinCoreBackend(BlockchainBackend):
    """
    Blockchain backend using node RPC.
    Does NOT use the node wallet.
    """

    def __init__(
        self,
        endpoints: Sequence[RpcEndpoint],
        timeout: float = DEFAULT_RPC_TIMEOUT,
        scan_timeout: float = SCAN_RPC_TIMEOUT,
    ):
        if not endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.scan_timeout = scan_timeout
        self.client = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def _rpc_call(
        self,
        method: str,
        params: list | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Make an RPC call, failing over across the configured endpoints.

        Args:
            method: RPC method name
            params: Method parameters
            timeout: Per-request timeout (defaults to the client timeout)

        Returns:
            RPC result, with JSON numbers with a fraction parsed as Decimal

        Raises:
            RpcError: On a JSON-RPC method error from any endpoint
            RpcUnavailable: If every endpoint failed at transport/HTTP level
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        failures: list[str] = []
        for endpoint in self.endpoints:
            try:
                response = await self.client.post(
                    endpoint.url,
                    json=payload,
                    auth=(endpoint.user, endpoint.password),
                    timeout=timeout if timeout is not None else self.timeout,
                )
            except httpx.TimeoutException:
                logger.warning(f"RPC {method} timed out on {endpoint.url}")
                failures.append(f"[{endpoint.url}] timeout")
                continue
            except httpx.HTTPError as e:
                logger.warning(f"RPC {method} failed on {endpoint.url}: {type(e).__name__}")
                failures.append(f"[{endpoint.url}] {type(e).__name__}")
                continue

            try:
                data = response.json(parse_float=Decimal)
            except ValueError:
                logger.warning(
                    f"RPC {method} on {endpoint.url}: non-JSON HTTP {response.status_code}"
                )
                failures.append(f"[{endpoint.url}] non-JSON response, HTTP {response.status_code}")
                continue

            error = data.get("error") if isinstance(data, dict) else None
            if error:
                if isinstance(error, dict):
                    raise RpcError(error.get("code", "unknown"), error.get("message", str(error)))
                raise RpcError("unknown", str(error))

            if response.is_error:
                failures.append(f"[{endpoint.url}] HTTP {response.status_code}")
                continue

            return data.get("result")

        details = " ; ".join(failures) or "no details"
        logger.error(f"RPC {method} failed on all endpoints: {details}")
        raise RpcUnavailable(f"All RPC endpoints failed: {details}")

    async def _scantxoutset(self, address: str) -> dict[str, Any]:
        descriptors = [{"desc": f"addr({address})"}]
        for attempt in range(SCAN_MAX_RETRIES):
            try:
                return await self._rpc_call(
                    "scantxoutset", ["start", descriptors], timeout=self.scan_timeout
                )
            except RpcError as e:
                if e.code != RPC_SCAN_IN_PROGRESS or attempt == SCAN_MAX_RETRIES - 1:
                    raise
                delay = SCAN_BASE_DELAY * (2**attempt) + random.uniform(0, 0.5)
                logger.debug(
                    f"Scan in progress, retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{SCAN_MAX_RETRIES})"
                )
                await asyncio.sleep(delay)

        raise RpcUnavailable(f"scantxoutset failed after {SCAN_MAX_RETRIES} attempts")

    async def _is_spent_in_mempool(self, txid: str, vout: int) -> bool:
        # gettxout with include_mempool=True returns null for outputs that a
        # mempool transaction already spends
        return await self._rpc_call("gettxout", [txid, vout, True]) is None

    async def get_utxos(self, address: str) -> list[Unspent]:
        tip_height = await self.get_block_height()
        result = await self._scantxoutset(address)

        utxos: list[Unspent] = []
        for utxo_data in (result or {}).get("unspents", []):
            height = utxo_data.get("height") or 0
            confirmations = tip_height - height + 1 if height > 0 else 0
            txid = utxo_data["txid"]
            vout = utxo_data["vout"]

            utxos.append(
                Unspent(
                    txid=txid,
                    vout=vout,
                    amount=to_decimal(utxo_data["amount"]),
                    scriptpubkey=utxo_data.get("scriptPubKey", ""),
                    height=height or None,
                    confirmations=confirmations,
                    is_usable=confirmations > 0,
                    in_mempool=await self._is_spent_in_mempool(txid, vout),
                )
            )

        logger.debug(f"Found {len(utxos)} UTXO(s) at height {tip_height}")
        return utxos

    async def estimate_fee(self, conf_target: int) -> Decimal:
        result = await self._rpc_call("estimatesmartfee", [conf_target])
        feerate = (result or {}).get("feerate")
        if feerate is None:
            errors = (result or {}).get("errors", [])
            raise InvalidFeeRate(f"Fee estimation unavailable for {conf_target} blocks: {errors}")

        rate = to_decimal(feerate)
        logger.debug(f"Estimated fee for {conf_target} blocks: {rate}/kB")
        return rate

    async def broadcast_transaction(self, tx_hex: str) -> str:
        try:
            txid = await self._rpc_call("sendrawtransaction", [tx_hex])
        except RpcError as e:
            logger.error(f"Transaction rejected by node: {e}")
            raise BroadcastRejected(e.code, e.message) from e

        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def get_transaction(self, txid: str) -> TxStatus | None:
        try:
            tx_data = await self._rpc_call("getrawtransaction", [txid, True])
        except RpcError as e:
            if e.code == RPC_INVALID_ADDRESS_OR_KEY:
                return None
            raise

        if not tx_data:
            return None

        blockhash = tx_data.get("blockhash")
        block_height = None
        if blockhash:
            header = await self._rpc_call("getblockheader", [blockhash])
            block_height = header.get("height")

        return TxStatus(
            txid=txid,
            confirmations=tx_data.get("confirmations", 0),
            blockhash=blockhash,
            block_height=block_height,
        )

    async def get_block_height(self) -> int:
        info = await self._rpc_call("getblockchaininfo", [])
        height = info.get("blocks", 0)
        logger.debug(f"Current block height: {height}")
        return height

    async def close(self) -> None:
        await self.client.aclose()
