"""
Network configuration (contract addresses, RPC, endpoints) published by megacorp.global.
"""

import os
import logging
from dataclasses import dataclass

import requests

from . import config as cfg

logger = logging.getLogger("Network")

DEFAULT_CONTRACTS_URL = "https://megacorp.global/contracts.json"

DEFAULT_ENDPOINTS = {
    "relay": "wss://relay.megacorp.global/ws",
    "capability": "https://cap.megacorp.global",
}


def contracts_url():
    return os.getenv("CONTRACTS_URL", DEFAULT_CONTRACTS_URL)


def endpoints():
    """Service endpoints, with CAPABILITY_ENDPOINT overriding the default."""
    return {
        "relay": DEFAULT_ENDPOINTS["relay"],
        "capability": os.getenv("CAPABILITY_ENDPOINT", DEFAULT_ENDPOINTS["capability"]),
    }


@dataclass
class NetworkConfig:
    name: str
    chain_id: int
    rpc_url: str
    ws_url: str
    explorer: str
    megacube_address: str
    license_address: str
    artifact_address: str
    cubed_address: str
    relay_endpoint: str
    capability_endpoint: str

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkConfig":
        network = data.get("network") or {}
        contracts = data.get("contracts") or {}

        if not network.get("rpcUrl") or not network.get("chainId"):
            raise ValueError("Invalid network config: missing network.rpcUrl or network.chainId")
        if not (contracts.get("MegaCubeV5") or {}).get("address"):
            raise ValueError("Invalid network config: missing contracts.MegaCubeV5.address")
        if not (contracts.get("OperatorLicense") or {}).get("address"):
            raise ValueError("Invalid network config: missing contracts.OperatorLicense.address")

        urls = endpoints()
        return cls(
            name=network.get("name", ""),
            chain_id=int(network["chainId"]),
            rpc_url=network["rpcUrl"],
            ws_url=network.get("wsUrl", ""),
            explorer=network.get("explorer", ""),
            megacube_address=contracts["MegaCubeV5"]["address"],
            license_address=contracts["OperatorLicense"]["address"],
            artifact_address=(contracts.get("ArtifactNFT") or {}).get("address", ""),
            cubed_address=(contracts.get("Cubed") or {}).get("address", ""),
            relay_endpoint=urls["relay"],
            capability_endpoint=urls["capability"],
        )


class NetworkConfigCache:
    """Fetches contracts.json once and keeps it for the lifetime of the object."""

    def __init__(self, url=None, timeout=None):
        self.url = url or contracts_url()
        self.timeout = cfg.REQUEST_TIMEOUT if timeout is None else timeout
        self._config = None

    def get(self) -> NetworkConfig:
        if self._config is not None:
            return self._config

        logger.debug(f"Fetching network config from {self.url}")
        resp = requests.get(self.url, timeout=self.timeout)
        if not resp.ok:
            raise ConnectionError(f"Failed to fetch network config: {resp.status_code} {resp.reason}")

        self._config = NetworkConfig.from_dict(resp.json())
        return self._config

    def clear(self):
        self._config = None
