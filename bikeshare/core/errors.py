"""Error taxonomy shared by the gateways, the gate and the orchestrator."""

from __future__ import annotations

from typing import Optional


class BikeshareError(Exception):
    code = "error"


class ConfigError(BikeshareError):
    code = "config_error"


class RpcError(BikeshareError):
    """Transport or protocol failure on a read (view) call."""

    code = "rpc_error"


class SnapshotUnavailable(BikeshareError):
    """A read-side query failed while building or refreshing local state."""

    code = "snapshot_unavailable"

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.index = index


class InsufficientBalance(BikeshareError):
    code = "insufficient_balance"

    def __init__(self, balance: int, required: int):
        super().__init__(f"{required}ft is required to use the bike (balance: {balance})")
        self.balance = balance
        self.required = required


class TransactionRejected(BikeshareError):
    """A state-changing call failed: signing declined, contract panic, or transport error."""

    code = "transaction_rejected"

    def __init__(self, action: str, reason: str):
        super().__init__(f"{action} rejected: {reason}")
        self.action = action
        self.reason = reason


class RegistrationIncomplete(BikeshareError):
    """Storage deposit went through but the seed transfer did not. Warning only."""

    code = "registration_incomplete"


class ActionRejected(BikeshareError):
    code = "action_rejected"

    def __init__(self, action: str, reason: str):
        super().__init__(f"{action} refused: {reason}")
        self.action = action
        self.reason = reason


class NotRegistered(BikeshareError):
    code = "not_registered"


class UnknownResource(BikeshareError):
    code = "unknown_resource"

    def __init__(self, index: int, count: int):
        super().__init__(f"bike {index} does not exist (known bikes: {count})")
        self.index = index
        self.count = count
