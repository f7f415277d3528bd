from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.logging import configure_logging
from app import database
from app.models import AuditLog, EventOutbox, Job, JobMutation, PriceMatrixEntry  # noqa: F401
from app.routers.auth import router as auth_router
from app.routers.jobs import router as jobs_router
from app.routers.outbox import router as outbox_router
from app.routers.pricing import router as pricing_router
from app.services.audit_log_immutability import install_audit_log_immutability
from app.services.outbox_worker import start_outbox_worker_task

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    database.configure_database()
    install_audit_log_immutability(database.engine)

    task = start_outbox_worker_task()
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # worker crash during shutdown; already logged.
                pass


app = FastAPI(
    title="Trucking Job Core",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled exception",
            extra={"method": request.method, "path": request.url.path},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(jobs_router)
app.include_router(pricing_router)
app.include_router(outbox_router)


@app.get("/")
def root():
    return {"status": "Trucking Job Core running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
