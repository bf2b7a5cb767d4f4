from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from bikeshare.api.auth import require_api_key
from bikeshare.api.projector import NoticeBoard, project_outcome, project_state
from bikeshare.api.schemas import (
    BalanceRequest,
    OutcomeResponse,
    SignInResponse,
    StateResponse,
    TransferRequest,
)
from bikeshare.core.orchestrator import TransactionOrchestrator

router = APIRouter(dependencies=[Depends(require_api_key)])


def get_orchestrator(request: Request) -> TransactionOrchestrator:
    return request.app.state.orchestrator


def get_notices(request: Request) -> NoticeBoard:
    return request.app.state.notices


@router.get("/state", response_model=StateResponse)
def get_state(orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_state(orch, notices)


@router.post("/reload", response_model=StateResponse)
async def reload_session(orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    await orch.reload()
    return project_state(orch, notices)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@router.post("/signin", response_model=SignInResponse)
def sign_in(orch=Depends(get_orchestrator)):
    return SignInResponse(url=orch.request_sign_in())


@router.get("/signin/callback", response_model=StateResponse)
async def sign_in_callback(
    account_id: str = Query(..., min_length=1),
    orch=Depends(get_orchestrator),
    notices=Depends(get_notices),
):
    await orch.complete_sign_in(account_id)
    return project_state(orch, notices)


@router.post("/signout", response_model=StateResponse)
async def sign_out(orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    await orch.sign_out()
    return project_state(orch, notices)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
@router.post("/register", response_model=OutcomeResponse)
async def register(orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.register(), orch, notices)


@router.post("/unregister", response_model=OutcomeResponse)
async def unregister(orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.unregister(), orch, notices)


# ---------------------------------------------------------------------------
# Bikes
# ---------------------------------------------------------------------------
@router.post("/bikes/{index}/reserve", response_model=OutcomeResponse)
async def reserve_bike(index: int, orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.reserve(index), orch, notices)


@router.post("/bikes/{index}/inspect", response_model=OutcomeResponse)
async def inspect_bike(index: int, orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.inspect(index), orch, notices)


@router.post("/bikes/{index}/return", response_model=OutcomeResponse)
async def return_bike(index: int, orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.return_resource(index), orch, notices)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
@router.post("/balance", response_model=StateResponse)
async def check_balance(
    payload: Optional[BalanceRequest] = Body(None),
    orch=Depends(get_orchestrator),
    notices=Depends(get_notices),
):
    account_id = payload.accountId if payload is not None else None
    await orch.check_balance(account_id)
    return project_state(orch, notices)


@router.post("/transfer", response_model=OutcomeResponse)
async def transfer(payload: TransferRequest, orch=Depends(get_orchestrator), notices=Depends(get_notices)):
    return project_outcome(await orch.transfer(payload.receiverId, payload.amount), orch, notices)
