from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bikeshare.api.admin_routes import router as admin_router
from bikeshare.api.projector import NoticeBoard
from bikeshare.api.routes import router
from bikeshare.core.errors import (
    ActionRejected,
    BikeshareError,
    InsufficientBalance,
    NotRegistered,
    SnapshotUnavailable,
    UnknownResource,
)
from bikeshare.core.orchestrator import TransactionOrchestrator
from bikeshare.core.session import create_session_context
from bikeshare.observability.logging import log
from bikeshare.settings import settings

STATUS_BY_ERROR = (
    (ActionRejected, 409),
    (InsufficientBalance, 402),
    (NotRegistered, 403),
    (UnknownResource, 404),
    (SnapshotUnavailable, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Composition root: one session context per process
    ctx = create_session_context()
    notices = NoticeBoard()
    orchestrator = TransactionOrchestrator(ctx, notifier=notices)
    app.state.notices = notices
    app.state.orchestrator = orchestrator
    ok = await orchestrator.start()
    log(event="boot", networkId=ctx.network.networkId, phase=orchestrator.phase, initialized=ok)
    try:
        yield
    finally:
        await ctx.aclose()


app = FastAPI(title="Bikeshare Client", lifespan=lifespan)

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(BikeshareError)
async def bikeshare_error_handler(request: Request, exc: BikeshareError):
    status = 400
    for cls, code in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            status = code
            break
    return JSONResponse(
        status_code=status,
        content={"status": "error", "code": exc.code, "message": str(exc)},
    )
