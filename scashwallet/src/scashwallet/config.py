"""
Configuration for the SCASH wallet.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from scashwallet.network import NetworkParams, get_network_params


class RpcEndpoint(BaseModel):
    """A single node RPC endpoint."""

    url: str
    user: str
    password: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    bitcoin_rpc_is_testnet: bool = False

    # Comma separated "url|user|password" entries, tried in order
    bitcoin_rpc_endpoints: str = ""
    bitcoin_rpc_timeout: float = 8.0

    explorer_api_url: str = "https://explorer.scash.network/api/explorer"
    explorer_timeout: float = 60.0
    explorer_cache_ttl: float = 30.0

    fee_conf_target: int = Field(default=6, ge=1)
    engrave_platform_fee: Decimal = Field(default=Decimal("0.05"), ge=0)
    charge_send_platform_fee: bool = True

    # "module:attribute" of a PayloadCodec factory, empty = engraving disabled
    payload_codec: str = ""

    data_dir: Path = Path.home() / ".scash"
    log_level: str = "INFO"

    def get_network(self) -> NetworkParams:
        return get_network_params(self.bitcoin_rpc_is_testnet)

    def get_rpc_endpoints(self) -> list[RpcEndpoint]:
        """Parse ``bitcoin_rpc_endpoints``.

        Raises:
            ValueError: If an entry is not of the form url|user|password
        """
        endpoints = []
        for position, entry in enumerate(self.bitcoin_rpc_endpoints.split(","), 1):
            entry = entry.strip()
            if not entry:
                continue
            parts = entry.split("|")
            # Never echo the entry itself: it contains the password
            if len(parts) != 3 or not all(p.strip() for p in parts):
                raise ValueError(f"RPC endpoint #{position} must be url|user|password")
            url, user, password = (p.strip() for p in parts)
            endpoints.append(RpcEndpoint(url=url, user=user, password=password))
        return endpoints

    @property
    def wallet_file(self) -> Path:
        name = "scash-wallet-testnet.json" if self.bitcoin_rpc_is_testnet else "scash-wallet.json"
        return self.data_dir / name

    @property
    def pending_file(self) -> Path:
        return self.data_dir / "pending.json"


def get_settings() -> Settings:
    return Settings()
