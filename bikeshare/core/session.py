"""
Session context and initial evaluation.

create_session_context() is called once by the composition root; every
component receives the context instead of reaching for module globals.
initialize_session() is the single entry point that produces the initial
snapshot, registration status and phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from bikeshare.core import state_machine as sm
from bikeshare.core.errors import RpcError, SnapshotUnavailable
from bikeshare.core.models import Identity, RegistrationStatus, Snapshot
from bikeshare.core.registration import RegistrationGate
from bikeshare.core.snapshot import SnapshotBuilder
from bikeshare.gateways.resource import ResourceGateway
from bikeshare.gateways.token import TokenGateway
from bikeshare.near.config import NetworkConfig, get_config
from bikeshare.near.rpc import NearRpc
from bikeshare.near.wallet import WalletConnection
from bikeshare.observability.logging import log
from bikeshare.settings import settings


@dataclass
class SessionContext:
    network: NetworkConfig
    rpc: NearRpc
    wallet: WalletConnection
    resources: ResourceGateway
    tokens: TokenGateway

    @property
    def identity(self) -> Identity:
        return self.wallet.get_account_id() if self.wallet.is_signed_in() else ""

    @property
    def resource_contract(self) -> str:
        return self.resources.contract_id

    async def aclose(self) -> None:
        await self.rpc.aclose()
        await self.wallet.aclose()


@dataclass(frozen=True)
class SessionInit:
    identity: Identity
    phase: str
    registration: RegistrationStatus
    snapshot: Snapshot
    feeAmount: int
    rewardAmount: int
    builder: SnapshotBuilder


def create_session_context(
    env: Optional[str] = None,
    *,
    wallet: Optional[WalletConnection] = None,
    rpc: Optional[NearRpc] = None,
) -> SessionContext:
    network = get_config(env or settings.NEAR_ENV)
    rpc = rpc or NearRpc(network.nodeUrl)
    wallet = wallet or WalletConnection(network.walletUrl or "")
    log(
        event="session_context_created",
        networkId=network.networkId,
        bikeContract=network.bikeContractName,
        ftContract=network.ftContractName,
        accountId=wallet.get_account_id(),
    )
    return SessionContext(
        network=network,
        rpc=rpc,
        wallet=wallet,
        resources=ResourceGateway(rpc, wallet, network.bikeContractName),
        tokens=TokenGateway(rpc, wallet, network.ftContractName),
    )


async def initialize_session(ctx: SessionContext, gate: Optional[RegistrationGate] = None) -> SessionInit:
    """
    Fee, reward, full snapshot, then registration. Any read failure raises
    SnapshotUnavailable and nothing from this run is returned.
    """
    identity = ctx.identity
    try:
        fee = int(await ctx.resources.fee_amount())
        reward = int(await ctx.resources.reward_amount())
    except (RpcError, httpx.HTTPError, ValueError, TypeError) as e:
        raise SnapshotUnavailable(f"could not read fee configuration: {e}") from e

    builder = SnapshotBuilder(ctx.resources, identity)
    snapshot = await builder.build_snapshot()

    if identity:
        gate = gate or RegistrationGate(ctx.tokens, ctx.resources)
        registration = await gate.check_registration(identity)
    else:
        registration = RegistrationStatus.UNKNOWN

    phase = sm.evaluate_initial_phase(
        signed_in=bool(identity),
        registered=registration == RegistrationStatus.REGISTERED,
    )
    log(
        event="session_initialized",
        accountId=identity,
        phase=phase,
        registration=registration.value,
        bikes=len(snapshot),
        feeAmount=fee,
    )
    return SessionInit(
        identity=identity,
        phase=phase,
        registration=registration,
        snapshot=snapshot,
        feeAmount=fee,
        rewardAmount=reward,
        builder=builder,
    )
