from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

# Opaque account handle. "" before sign-in.
Identity = str


class RegistrationStatus(str, Enum):
    UNKNOWN = "unknown"
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


@dataclass(frozen=True)
class ResourceRecord:
    """
    Local view of one bike, folded relative to the active identity.

    available:   the contract reports the bike free AND this identity holds
                 neither role on it
    heldBy:      current holder as reported by the contract (any identity)
    inspectedBy: current inspector as reported by the contract (any identity)
    inUse:       heldBy is the active identity
    inspecting:  inspectedBy is the active identity (and inUse is not)
    """
    available: bool = False
    heldBy: Optional[Identity] = None
    inspectedBy: Optional[Identity] = None
    inUse: bool = False
    inspecting: bool = False

    @property
    def returnable(self) -> bool:
        return self.inUse or self.inspecting

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "heldBy": self.heldBy,
            "inspectedBy": self.inspectedBy,
            "inUse": self.inUse,
            "inspecting": self.inspecting,
        }


@dataclass(frozen=True)
class Snapshot:
    """Ordered, immutable sequence of ResourceRecord. Updates produce a new Snapshot."""
    records: Tuple[ResourceRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> ResourceRecord:
        return self.records[index]

    def __iter__(self) -> Iterator[ResourceRecord]:
        return iter(self.records)

    def replace(self, index: int, record: ResourceRecord) -> "Snapshot":
        if not 0 <= index < len(self.records):
            raise IndexError(index)
        records = list(self.records)
        records[index] = record
        return Snapshot(records=tuple(records))


@dataclass(frozen=True)
class BalanceInfo:
    accountId: Identity
    amount: int


@dataclass(frozen=True)
class Receipt:
    """Outcome of one signed function-call transaction."""
    method: str
    receiverId: str
    txHash: str = ""
    value: Any = None


@dataclass(frozen=True)
class RegistrationReceipt:
    deposit: Receipt
    seed: Optional[Receipt] = None
    # RegistrationIncomplete when the seed transfer failed after the deposit
    warning: Optional[Exception] = None

    @property
    def seeded(self) -> bool:
        return self.seed is not None


@dataclass(frozen=True)
class Notice:
    level: str  # info / warning / error
    code: str
    message: str


@dataclass(frozen=True)
class ActionOutcome:
    action: str
    index: Optional[int] = None
    ok: bool = True
    # False when the post-action re-query failed and local state may be stale
    settled: bool = True
    receipt: Optional[Any] = None
    error: Optional[str] = None

    def failed(self, error: Exception) -> "ActionOutcome":
        return replace(self, ok=False, error=str(error))

    def unsettled(self, error: Exception) -> "ActionOutcome":
        return replace(self, settled=False, error=self.error or str(error))
