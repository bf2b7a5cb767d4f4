"""
Registration Gate
-----------------
An identity must pay the token contract's one-time storage deposit before it
can hold or receive tokens. Until then every bike action is vetoed.

register() is a two-step write:
  1) storage_deposit on the token contract (signed by the identity)
  2) transfer_ft_to_new_user on the bike contract, seeding one fee's worth
Step 2 only runs after step 1 succeeded. A failed step 2 cannot roll back
step 1, so it is reported as a RegistrationIncomplete warning on the receipt.
"""

from __future__ import annotations

import httpx

from bikeshare.core.errors import (
    RegistrationIncomplete,
    RpcError,
    SnapshotUnavailable,
    TransactionRejected,
)
from bikeshare.core.models import Identity, RegistrationReceipt, RegistrationStatus
from bikeshare.gateways.resource import ResourceGateway
from bikeshare.gateways.token import TokenGateway
from bikeshare.observability.logging import log


def status_from_storage_balance(balance) -> RegistrationStatus:
    # storage_balance_of returns null for accounts that never registered
    if balance is None:
        return RegistrationStatus.UNREGISTERED
    return RegistrationStatus.REGISTERED


class RegistrationGate:
    def __init__(self, tokens: TokenGateway, resources: ResourceGateway):
        self.tokens = tokens
        self.resources = resources

    async def check_registration(self, identity: Identity) -> RegistrationStatus:
        if not identity:
            return RegistrationStatus.UNKNOWN
        try:
            balance = await self.tokens.storage_balance_of(identity)
        except (RpcError, httpx.HTTPError, ValueError, TypeError) as e:
            raise SnapshotUnavailable(f"could not read storage balance of {identity}: {e}") from e
        status = status_from_storage_balance(balance)
        log(event="registration_checked", accountId=identity, storageBalance=balance, status=status.value)
        return status

    async def register(self, identity: Identity) -> RegistrationReceipt:
        if not identity:
            raise TransactionRejected("storage_deposit", "not signed in")

        # Raises TransactionRejected; the seed transfer must not run in that case
        deposit = await self.tokens.register_storage()
        log(event="registration_deposit_ok", accountId=identity, txHash=deposit.txHash)

        try:
            seed = await self.resources.transfer_to_new_user(identity)
        except TransactionRejected as e:
            warning = RegistrationIncomplete(
                f"{identity} is registered but the initial tokens were not transferred: {e.reason}"
            )
            log(event="registration_seed_failed", accountId=identity, error=str(e)[:300])
            return RegistrationReceipt(deposit=deposit, seed=None, warning=warning)

        log(event="registration_seed_ok", accountId=identity, txHash=seed.txHash)
        return RegistrationReceipt(deposit=deposit, seed=seed)
