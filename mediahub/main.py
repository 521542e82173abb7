import asyncio
import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from fastapi import FastAPI, Request
from mediahub.core.config import settings
from mediahub.core.db import init_models, SessionLocal
from mediahub.core.errors import register_error_handlers
from mediahub.core.logging import setup_logging, request_id_ctx
from mediahub.api.router import api_router
from mediahub.modules.events.outbox import run_outbox_relay

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    task = None
    if settings.OUTBOX_RELAY_ENABLED:
        task = asyncio.create_task(run_outbox_relay(SessionLocal, settings.OUTBOX_POLL_INTERVAL_SECONDS))
    try:
        yield
    finally:
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
register_error_handlers(app)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    token = request_id_ctx.set(request.headers.get("x-request-id", "-"))
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    return response

app.include_router(api_router, prefix=settings.API_PREFIX)
