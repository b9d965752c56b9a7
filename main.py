# main.py (lifespan-based)
from __future__ import annotations

import asyncio, logging, contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from tortoise import Tortoise
from tortoise.exceptions import IntegrityError

from routers import (
    auth, users, admin_tasks,
    customers, wholesalers,
    bills, payments, invoices,
    reports,
)

# Background pieces
from scheduler import Scheduler
from services import config
from services.background import run_resync
from services.balances import EntityNotFound, EntityTypeMismatch, LedgerDataUnavailable
from services.ledger import LedgerError
from services.seeder import seed_admin

logger = logging.getLogger("uvicorn")


# ----- scheduled jobs -----
async def _job_resync():
    await run_resync()


# ----- lifespan -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1) DB init
    await Tortoise.init(
        db_url=config.DB_URL,
        modules={"models": ["models"]},
    )
    if config.GENERATE_SCHEMAS:
        await Tortoise.generate_schemas()

    # 2) Seeds
    if config.SEED_ADMIN:
        await seed_admin(logger=logger.info)

    # 3) Scheduler
    sched = Scheduler()
    app.state.scheduler = sched
    sched_task = None
    if config.BALANCE_RESYNC_SECONDS > 0:
        sched.every(config.BALANCE_RESYNC_SECONDS, _job_resync)
        sched_task = asyncio.create_task(sched.run_forever())
    try:
        yield
    finally:
        if sched_task and not sched_task.done():
            sched_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sched_task
        await Tortoise.close_connections()


# ----- app & routers -----
app = FastAPI(lifespan=lifespan, title="Shop Ledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Total-Count"],
)


# ----- error mapping -----
@app.exception_handler(EntityNotFound)
async def entity_not_found(request: Request, exc: EntityNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(LedgerDataUnavailable)
async def ledger_unavailable(request: Request, exc: LedgerDataUnavailable):
    # never answer with zero totals when the records could not be read
    logger.warning(f"[ledger] {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Ledger data temporarily unavailable"})


@app.exception_handler(LedgerError)
async def ledger_error(request: Request, exc: LedgerError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(EntityTypeMismatch)
async def entity_type_mismatch(request: Request, exc: EntityTypeMismatch):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(IntegrityError)
async def integrity_error(request: Request, exc: IntegrityError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate or conflicting record"})


# Auth / admin
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(admin_tasks.router)

# Shop
app.include_router(customers.router)
app.include_router(wholesalers.router)
app.include_router(bills.router)
app.include_router(payments.router)
app.include_router(invoices.router)
app.include_router(reports.router)


@app.get("/healthz", tags=["health"])
async def healthz():
    return {"status": "ok"}


# print routes
for route in app.routes:
    if isinstance(route, APIRoute):
        logger.info("%s -> %s", list(route.methods), route.path)
