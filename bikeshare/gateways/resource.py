from typing import Optional

from bikeshare.core.models import Identity, Receipt
from bikeshare.near.rpc import NearRpc
from bikeshare.near.wallet import WalletConnection


def _identity_or_none(value) -> Optional[Identity]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


class ResourceGateway:
    """Bike-ledger contract: availability, holder, inspector and fee."""

    def __init__(self, rpc: NearRpc, wallet: WalletConnection, contract_id: str):
        self.rpc = rpc
        self.wallet = wallet
        self.contract_id = contract_id

    # --- reads ---

    async def resource_count(self) -> int:
        return int(await self.rpc.view(self.contract_id, "num_of_bikes"))

    async def is_available(self, index: int) -> bool:
        return bool(await self.rpc.view(self.contract_id, "is_available", {"index": index}))

    async def current_holder(self, index: int) -> Optional[Identity]:
        return _identity_or_none(await self.rpc.view(self.contract_id, "who_is_using", {"index": index}))

    async def current_inspector(self, index: int) -> Optional[Identity]:
        return _identity_or_none(await self.rpc.view(self.contract_id, "who_is_inspecting", {"index": index}))

    async def fee_amount(self) -> int:
        return int(await self.rpc.view(self.contract_id, "amount_to_use_bike"))

    async def reward_amount(self) -> int:
        return int(await self.rpc.view(self.contract_id, "amount_reward_for_inspections"))

    # --- writes ---

    async def inspect(self, index: int) -> Receipt:
        return await self.wallet.function_call(self.contract_id, "inspect_bike", {"index": index})

    async def return_resource(self, index: int) -> Receipt:
        return await self.wallet.function_call(self.contract_id, "return_bike", {"index": index})

    async def transfer_to_new_user(self, new_user_id: Identity) -> Receipt:
        return await self.wallet.function_call(
            self.contract_id, "transfer_ft_to_new_user", {"new_user_id": new_user_id}
        )
