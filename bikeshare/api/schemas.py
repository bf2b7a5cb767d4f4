from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Level = Literal["info", "warning", "error"]

class BikeView(BaseModel):
    index: int
    available: bool
    heldBy: Optional[str] = None
    inspectedBy: Optional[str] = None
    inUse: bool
    inspecting: bool
    # Button enablement, derived from the record and the phase
    canReserve: bool
    canInspect: bool
    canReturn: bool

class BalanceView(BaseModel):
    accountId: str
    amount: int

class NoticeView(BaseModel):
    level: Level
    code: str
    message: str

class StateResponse(BaseModel):
    phase: str
    accountId: str
    registration: str
    feeAmount: int
    rewardAmount: int
    bikeContract: str
    inFlight: Optional[str] = None
    bikes: List[BikeView] = Field(default_factory=list)
    balance: Optional[BalanceView] = None
    notices: List[NoticeView] = Field(default_factory=list)

class OutcomeResponse(BaseModel):
    action: str
    index: Optional[int] = None
    ok: bool
    settled: bool
    txHash: str = ""
    error: Optional[str] = None
    seeded: Optional[bool] = None
    state: StateResponse

class BalanceRequest(BaseModel):
    accountId: Optional[str] = None

class TransferRequest(BaseModel):
    receiverId: str
    amount: Optional[int] = Field(default=None, gt=0)

class SignInResponse(BaseModel):
    url: str
