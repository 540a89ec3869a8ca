import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from app.config import get_settings, reload_settings

reload_settings()
from app.database import get_pool, close_pool
from app.modules.vault.errors import VaultError
from app.modules.vault.queue import processing_queue
from app.vault.api import router as vault_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await get_pool()
    yield
    if processing_queue.in_flight:
        logger.info("Waiting for %d documents still processing", processing_queue.in_flight)
    await processing_queue.drain()
    await close_pool()


settings = get_settings()

app = FastAPI(
    title="Vault",
    description="Document vault: upload, classification, versioning and deadline reminders",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(vault_router, prefix="/vault", tags=["vault"])


@app.get("/health")
async def health():
    return {"status": "ok", "environment": settings.environment}
