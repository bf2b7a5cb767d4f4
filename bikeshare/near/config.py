"""Per-network endpoints and contract names."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from bikeshare.core.errors import ConfigError
from bikeshare.settings import settings


@dataclass(frozen=True)
class NetworkConfig:
    networkId: str
    nodeUrl: str
    bikeContractName: str
    ftContractName: str
    walletUrl: Optional[str] = None
    helperUrl: Optional[str] = None
    explorerUrl: Optional[str] = None
    keyPath: Optional[str] = None
    masterAccount: Optional[str] = None


def _public(network: str) -> NetworkConfig:
    return NetworkConfig(
        networkId=network,
        nodeUrl=f"https://rpc.{network}.near.org",
        bikeContractName=settings.BIKE_CONTRACT_NAME,
        ftContractName=settings.FT_CONTRACT_NAME,
        walletUrl=f"https://wallet.{network}.near.org" if network != "mainnet" else "https://wallet.near.org",
        helperUrl=f"https://helper.{network}.near.org",
        explorerUrl=f"https://explorer.{network}.near.org",
    )


def get_config(env: str) -> NetworkConfig:
    if env in ("production", "mainnet"):
        return _public("mainnet")
    if env in ("development", "testnet"):
        return _public("testnet")
    if env == "betanet":
        return _public("betanet")
    if env == "local":
        return NetworkConfig(
            networkId="local",
            nodeUrl="http://localhost:3030",
            keyPath=os.path.join(os.path.expanduser("~"), ".near", "validator_key.json"),
            walletUrl="http://localhost:4000/wallet",
            bikeContractName=settings.BIKE_CONTRACT_NAME,
            ftContractName=settings.FT_CONTRACT_NAME,
        )
    if env in ("test", "ci"):
        return NetworkConfig(
            networkId="shared-test",
            nodeUrl="https://rpc.ci-testnet.near.org",
            bikeContractName=settings.BIKE_CONTRACT_NAME,
            ftContractName=settings.FT_CONTRACT_NAME,
            masterAccount="test.near",
        )
    if env == "ci-betanet":
        return NetworkConfig(
            networkId="shared-test-staging",
            nodeUrl="https://rpc.ci-betanet.near.org",
            bikeContractName=settings.BIKE_CONTRACT_NAME,
            ftContractName=settings.FT_CONTRACT_NAME,
            masterAccount="test.near",
        )
    raise ConfigError(f"Unconfigured environment '{env}'. Can be configured via NEAR_ENV.")
