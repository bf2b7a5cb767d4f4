from typing import Optional

from bikeshare.core.models import Identity, Receipt
from bikeshare.near.rpc import NearRpc
from bikeshare.near.wallet import WalletConnection
from bikeshare.settings import settings


class TokenGateway:
    """
    Fungible-token contract (NEP-141 balances, NEP-145 storage registration).

    Amounts are U128 decimal strings on the wire and ints here.
    """

    def __init__(self, rpc: NearRpc, wallet: WalletConnection, contract_id: str):
        self.rpc = rpc
        self.wallet = wallet
        self.contract_id = contract_id

    async def balance_of(self, account_id: Identity) -> int:
        return int(await self.rpc.view(self.contract_id, "ft_balance_of", {"account_id": account_id}) or 0)

    async def storage_balance_of(self, account_id: Identity) -> Optional[int]:
        """None means the account never paid the storage deposit."""
        res = await self.rpc.view(self.contract_id, "storage_balance_of", {"account_id": account_id})
        if res is None:
            return None
        if isinstance(res, dict):
            return int(res.get("total") or 0)
        return int(res)

    async def register_storage(self) -> Receipt:
        # Empty args: registers the signing account
        return await self.wallet.function_call(
            self.contract_id,
            "storage_deposit",
            {},
            gas=settings.FT_CALL_GAS,
            deposit=settings.STORAGE_DEPOSIT_YOCTO,
        )

    async def unregister_storage(self, force: bool = False) -> Receipt:
        # force=True burns whatever balance the account still holds
        return await self.wallet.function_call(
            self.contract_id,
            "storage_unregister",
            {"force": bool(force)},
            gas=settings.FT_CALL_GAS,
            deposit=settings.ONE_YOCTO,
        )

    async def transfer(self, receiver_id: Identity, amount: int) -> Receipt:
        return await self.wallet.function_call(
            self.contract_id,
            "ft_transfer",
            {"receiver_id": receiver_id, "amount": str(int(amount))},
            gas=settings.FT_CALL_GAS,
            deposit=settings.ONE_YOCTO,
        )

    async def transfer_and_invoke(self, receiver_id: Identity, amount: int, payload: str) -> Receipt:
        return await self.wallet.function_call(
            self.contract_id,
            "ft_transfer_call",
            {"receiver_id": receiver_id, "amount": str(int(amount)), "msg": payload},
            gas=settings.FT_CALL_GAS,
            deposit=settings.ONE_YOCTO,
        )
