"""
Transaction Orchestrator
------------------------
Owns the phase, the current snapshot and every state-changing action.

Each action follows one template:
  1) pre-check (registration, and balance >= fee for reserve). No write on veto.
  2) phase HOME -> TRANSACTION
  3) submit exactly one write
  4) settle: re-query ground truth, on success and on failure alike
  5) phase TRANSACTION -> HOME

INVARIANT: one action in flight globally. The in-flight guard is taken
before the pre-check and released on every exit path; a second request
while it is held is refused with ActionRejected, never queued.
INVARIANT: write failures (TransactionRejected) stop here. They are
notified and recorded on the outcome, never raised to the caller.
INVARIANT: the snapshot is only ever replaced wholesale. A failed settle
keeps the previous snapshot.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional

import httpx

from bikeshare.core import state_machine as sm
from bikeshare.core.errors import (
    ActionRejected,
    BikeshareError,
    InsufficientBalance,
    NotRegistered,
    RpcError,
    SnapshotUnavailable,
    TransactionRejected,
    UnknownResource,
)
from bikeshare.core.models import (
    ActionOutcome,
    BalanceInfo,
    Identity,
    Notice,
    Receipt,
    RegistrationStatus,
    Snapshot,
)
from bikeshare.core.registration import RegistrationGate
from bikeshare.core.session import SessionContext, initialize_session
from bikeshare.core.snapshot import SnapshotBuilder
from bikeshare.observability import metrics
from bikeshare.observability.logging import log
from bikeshare.utils.lock import InFlightGuard
from bikeshare.utils.time import elapsed_ms, monotonic_ms

Notifier = Callable[[Notice], None]
SnapshotListener = Callable[[Snapshot], None]


def _log_notice(notice: Notice) -> None:
    log(event="notice", level=notice.level, code=notice.code, message=notice.message)


class TransactionOrchestrator:
    def __init__(self, ctx: SessionContext, *, notifier: Optional[Notifier] = None):
        self.ctx = ctx
        self.notifier = notifier or _log_notice
        self.gate = RegistrationGate(ctx.tokens, ctx.resources)
        self.machine = sm.PhaseMachine(sm.HOME)
        self.guard = InFlightGuard()

        self.identity: Identity = ""
        self.registration = RegistrationStatus.UNKNOWN
        self.snapshot = Snapshot()
        self.fee_amount = 0
        self.reward_amount = 0
        self.balance: Optional[BalanceInfo] = None
        self.builder: Optional[SnapshotBuilder] = None
        self._listeners: List[SnapshotListener] = []

    # ------------------------------------------------------------------
    # View-facing state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> str:
        return self.machine.current

    def subscribe(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def _publish(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        for listener in self._listeners:
            listener(snapshot)

    def _notify(self, level: str, error: BaseException) -> None:
        code = getattr(error, "code", "error")
        self.notifier(Notice(level=level, code=code, message=str(error)))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        return await self.reload()

    async def reload(self) -> bool:
        """Re-evaluate everything from scratch. On failure the prior state stays."""
        async with self.guard.hold("reload"):
            return await self._load()

    async def _load(self) -> bool:
        try:
            init = await initialize_session(self.ctx, self.gate)
        except SnapshotUnavailable as e:
            self._notify("error", e)
            self._follow_identity()
            return False
        self.identity = init.identity
        self.registration = init.registration
        self.fee_amount = init.feeAmount
        self.reward_amount = init.rewardAmount
        self.builder = init.builder
        self.balance = None
        self.machine.reset(init.phase)
        self._publish(init.snapshot)
        return True

    def _follow_identity(self) -> None:
        """
        After a failed load the wallet may already hold another identity
        (sign-in / sign-out). Identity, registration and phase follow the
        wallet; the last snapshot and fee are kept until a reload succeeds.
        """
        identity = self.ctx.identity
        if identity == self.identity:
            return
        self.identity = identity
        self.registration = RegistrationStatus.UNKNOWN
        self.balance = None
        self.builder = SnapshotBuilder(self.ctx.resources, identity)
        self.machine.reset(sm.evaluate_initial_phase(signed_in=bool(identity), registered=False))
        log(event="identity_changed_without_reload", accountId=identity, phase=self.machine.current)

    def request_sign_in(self) -> str:
        return self.ctx.wallet.request_sign_in(self.ctx.resource_contract)

    async def complete_sign_in(self, account_id: Identity) -> bool:
        async with self.guard.hold("sign_in"):
            self.ctx.wallet.complete_sign_in(account_id)
            return await self._load()

    async def sign_out(self) -> bool:
        async with self.guard.hold("sign_out"):
            self.ctx.wallet.sign_out()
            return await self._load()

    # ------------------------------------------------------------------
    # Template
    # ------------------------------------------------------------------

    def _require_phase(self, action: str, phase: str) -> None:
        if self.machine.current != phase:
            raise ActionRejected(action, f"not allowed in phase '{self.machine.current}'")

    def _require_index(self, index: int) -> None:
        if not 0 <= index < len(self.snapshot):
            raise UnknownResource(index, len(self.snapshot))

    async def _require_registered(self) -> None:
        if self.registration != RegistrationStatus.REGISTERED:
            self.registration = await self.gate.check_registration(self.identity)
        if self.registration != RegistrationStatus.REGISTERED:
            raise NotRegistered(f"{self.identity or 'anonymous'} has not paid the storage deposit")

    async def _read_balance(self, account_id: Identity) -> int:
        try:
            return int(await self.ctx.tokens.balance_of(account_id))
        except (RpcError, httpx.HTTPError, ValueError, TypeError) as e:
            raise SnapshotUnavailable(f"could not read balance of {account_id}: {e}") from e

    @asynccontextmanager
    async def _in_flight(self, action: str):
        self.machine.transition(sm.TRANSACTION)
        log(event="phase_changed", action=action, phase=sm.TRANSACTION)
        try:
            yield
        finally:
            self.machine.transition(sm.HOME)
            log(event="phase_changed", action=action, phase=sm.HOME)

    async def _run(
        self,
        action: str,
        submit: Callable[[], Awaitable[Receipt]],
        settle: Callable[[], Awaitable[None]],
        *,
        index: Optional[int] = None,
        precheck: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> ActionOutcome:
        start = monotonic_ms()
        metrics.increment(action, "attempt")
        outcome = ActionOutcome(action=action, index=index)
        try:
            self._require_phase(action, sm.HOME)
            async with self.guard.hold(action):
                if precheck is not None:
                    await precheck()
                async with self._in_flight(action):
                    try:
                        outcome = replace(outcome, receipt=await submit())
                    except TransactionRejected as e:
                        outcome = outcome.failed(e)
                        self._notify("error", e)
                    try:
                        await settle()
                    except SnapshotUnavailable as e:
                        outcome = outcome.unsettled(e)
                        self._notify("error", e)
        except BikeshareError as e:
            metrics.increment(action, "rejected")
            log(event="action_rejected", action=action, index=index, code=e.code, error=str(e)[:300])
            self._notify("warning" if isinstance(e, ActionRejected) else "error", e)
            raise
        finally:
            metrics.record_latency(action, elapsed_ms(start))

        metrics.increment(action, "success" if outcome.ok else "failure")
        log(
            event="action_settled",
            action=action,
            index=index,
            ok=outcome.ok,
            settled=outcome.settled,
            txHash=getattr(outcome.receipt, "txHash", ""),
            elapsedMs=elapsed_ms(start),
        )
        return outcome

    async def _settle_index(self, index: int) -> None:
        record = await self.builder.refresh_one(index)
        self._publish(self.snapshot.replace(index, record))

    async def _settle_full(self) -> None:
        self._publish(await self.builder.build_snapshot())

    async def _settle_own_balance(self) -> None:
        amount = await self._read_balance(self.identity)
        self.balance = BalanceInfo(accountId=self.identity, amount=amount)

    # ------------------------------------------------------------------
    # Bike actions
    # ------------------------------------------------------------------

    async def reserve(self, index: int) -> ActionOutcome:
        """
        Pay the fee and take the bike in one ft_transfer_call; the bike
        contract reads the index from msg. The signing flow reloads the
        session afterwards, so settle rebuilds the whole snapshot.
        """
        self._require_index(index)
        fee = self.fee_amount

        async def precheck():
            await self._require_registered()
            balance = await self._read_balance(self.identity)
            if balance < fee:
                raise InsufficientBalance(balance, fee)

        return await self._run(
            "reserve",
            lambda: self.ctx.tokens.transfer_and_invoke(self.ctx.resource_contract, fee, str(index)),
            self._settle_full,
            index=index,
            precheck=precheck,
        )

    async def inspect(self, index: int) -> ActionOutcome:
        self._require_index(index)
        return await self._run(
            "inspect",
            lambda: self.ctx.resources.inspect(index),
            lambda: self._settle_index(index),
            index=index,
            precheck=self._require_registered,
        )

    async def return_resource(self, index: int) -> ActionOutcome:
        self._require_index(index)
        return await self._run(
            "return",
            lambda: self.ctx.resources.return_resource(index),
            lambda: self._settle_index(index),
            index=index,
            precheck=self._require_registered,
        )

    # ------------------------------------------------------------------
    # Token actions
    # ------------------------------------------------------------------

    async def unregister(self) -> ActionOutcome:
        """storage_unregister(force=True): burns the remaining balance."""

        async def settle():
            self.registration = await self.gate.check_registration(self.identity)
            self.balance = None

        return await self._run("unregister", lambda: self.ctx.tokens.unregister_storage(force=True), settle)

    async def transfer(self, receiver_id: Identity, amount: Optional[int] = None) -> ActionOutcome:
        amount = self.fee_amount if amount is None else int(amount)
        if not receiver_id:
            raise ActionRejected("transfer", "receiver is required")
        if amount <= 0:
            raise ActionRejected("transfer", "amount must be positive")
        return await self._run(
            "transfer",
            lambda: self.ctx.tokens.transfer(receiver_id, amount),
            self._settle_own_balance,
        )

    async def check_balance(self, account_id: Optional[Identity] = None) -> Optional[BalanceInfo]:
        """Overwrites the last BalanceInfo. None (and a notice) if the read failed."""
        account_id = account_id or self.identity
        action = "balance"
        start = monotonic_ms()
        metrics.increment(action, "attempt")
        try:
            self._require_phase(action, sm.HOME)
            async with self.guard.hold(action):
                async with self._in_flight(action):
                    try:
                        amount = await self._read_balance(account_id)
                    except SnapshotUnavailable as e:
                        metrics.increment(action, "failure")
                        self._notify("error", e)
                        return None
        except ActionRejected as e:
            metrics.increment(action, "rejected")
            self._notify("warning", e)
            raise
        finally:
            metrics.record_latency(action, elapsed_ms(start))
        self.balance = BalanceInfo(accountId=account_id, amount=amount)
        metrics.increment(action, "success")
        log(event="balance_checked", accountId=account_id, amount=amount)
        return self.balance

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self) -> ActionOutcome:
        """
        REGISTRY -> HOME on a successful deposit. A failed seed transfer is a
        warning; a failed deposit leaves the phase at REGISTRY.
        """
        action = "register"
        start = monotonic_ms()
        metrics.increment(action, "attempt")
        try:
            self._require_phase(action, sm.REGISTRY)
            async with self.guard.hold(action):
                try:
                    receipt = await self.gate.register(self.identity)
                except TransactionRejected as e:
                    metrics.increment(action, "failure")
                    self._notify("error", e)
                    return ActionOutcome(action=action, ok=False, error=str(e))

                if receipt.warning is not None:
                    self._notify("warning", receipt.warning)

                outcome = ActionOutcome(action=action, receipt=receipt)
                try:
                    self.registration = await self.gate.check_registration(self.identity)
                    await self._settle_own_balance()
                except SnapshotUnavailable as e:
                    # The deposit receipt is proof enough
                    self.registration = RegistrationStatus.REGISTERED
                    outcome = outcome.unsettled(e)
                    self._notify("error", e)
                self.machine.transition(sm.HOME)
        except ActionRejected as e:
            metrics.increment(action, "rejected")
            self._notify("warning", e)
            raise
        finally:
            metrics.record_latency(action, elapsed_ms(start))

        metrics.increment(action, "success")
        log(event="registration_settled", accountId=self.identity, seeded=receipt.seeded, registration=self.registration.value)
        return outcome
