"""
Block explorer client for address history.

GET {base}/address/{address}/txs returns ``{"list": [...]}``. Responses are
cached per address for a short TTL so that repeated refreshes do not hammer
the explorer.
"""

from __future__ import annotations

import time

import httpx
from loguru import logger
from pydantic import ValidationError

from scashwallet.wallet.history import HistoryRecord, classify
from scashwallet.wallet.models import ClassifiedTransaction

DEFAULT_EXPLORER_URL = "https://explorer.scash.network/api/explorer"
DEFAULT_TIMEOUT = 60.0
DEFAULT_CACHE_TTL = 30.0


class ExplorerClient:
    def __init__(
        self,
        base_url: str = DEFAULT_EXPLORER_URL,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: float = DEFAULT_CACHE_TTL,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache_ttl = cache_ttl
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
        self._cache: dict[str, tuple[float, list[HistoryRecord]]] = {}

    async def get_address_transactions(self, address: str) -> list[HistoryRecord]:
        """
        Transactions touching ``address``, newest first as served.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx status
            ValueError: If the response is not the expected shape
        """
        cached = self._cache.get(address)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl:
            logger.debug(f"Explorer cache hit for {address}")
            return list(cached[1])

        response = await self.client.get(f"/address/{address}/txs")
        response.raise_for_status()

        body = response.json()
        entries = body.get("list") if isinstance(body, dict) else None
        if not isinstance(entries, list):
            raise ValueError("Explorer response has no transaction list")

        try:
            records = [HistoryRecord.model_validate(entry) for entry in entries]
        except ValidationError as e:
            raise ValueError(f"Malformed explorer transaction: {e.error_count()} error(s)") from e

        self._cache[address] = (time.monotonic(), records)
        logger.debug(f"Fetched {len(records)} transaction(s) for {address}")
        return list(records)

    async def get_classified_transactions(self, address: str) -> list[ClassifiedTransaction]:
        return [classify(tx, address) for tx in await self.get_address_transactions(address)]

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        await self.client.aclose()
