import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from rnb.api.rpc import router as rpc_router
from rnb.logging_config import configure_logging
from rnb.telemetry import emit_app_startup_event

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="R Notebook Service")
app.include_router(rpc_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"
