"""
View projection: turns orchestrator state into response models.
Pure reads; the only mutable thing here is the notice buffer.
"""
from collections import deque
from typing import Deque, List

from bikeshare.api.schemas import BalanceView, BikeView, NoticeView, OutcomeResponse, StateResponse
from bikeshare.core import state_machine as sm
from bikeshare.core.models import ActionOutcome, Notice, RegistrationReceipt
from bikeshare.core.orchestrator import TransactionOrchestrator


class NoticeBoard:
    """Notifier sink. Notices are shown once: reading the state drains them."""

    def __init__(self, maxlen: int = 50):
        self._items: Deque[Notice] = deque(maxlen=maxlen)

    def __call__(self, notice: Notice) -> None:
        self._items.append(notice)

    def drain(self) -> List[Notice]:
        items = list(self._items)
        self._items.clear()
        return items


def project_state(orch: TransactionOrchestrator, notices: NoticeBoard) -> StateResponse:
    idle = orch.phase == sm.HOME and not orch.guard.busy
    bikes = [
        BikeView(
            index=i,
            **record.to_dict(),
            canReserve=idle and record.available,
            canInspect=idle and record.available,
            canReturn=idle and record.returnable,
        )
        for i, record in enumerate(orch.snapshot)
    ]
    balance = None
    if orch.balance is not None:
        balance = BalanceView(accountId=orch.balance.accountId, amount=orch.balance.amount)
    return StateResponse(
        phase=orch.phase,
        accountId=orch.identity,
        registration=orch.registration.value,
        feeAmount=orch.fee_amount,
        rewardAmount=orch.reward_amount,
        bikeContract=orch.ctx.resource_contract,
        inFlight=orch.guard.holder,
        bikes=bikes,
        balance=balance,
        notices=[NoticeView(level=n.level, code=n.code, message=n.message) for n in notices.drain()],
    )


def project_outcome(outcome: ActionOutcome, orch: TransactionOrchestrator, notices: NoticeBoard) -> OutcomeResponse:
    receipt = outcome.receipt
    seeded = receipt.seeded if isinstance(receipt, RegistrationReceipt) else None
    tx_hash = receipt.deposit.txHash if isinstance(receipt, RegistrationReceipt) else getattr(receipt, "txHash", "")
    return OutcomeResponse(
        action=outcome.action,
        index=outcome.index,
        ok=outcome.ok,
        settled=outcome.settled,
        txHash=tx_hash or "",
        error=outcome.error,
        seeded=seeded,
        state=project_state(orch, notices),
    )
