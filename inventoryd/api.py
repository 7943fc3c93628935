"""
HTTP transport for inventoryd.

Every route maps onto one NodeService accessor; there is no pipeline logic
here. Errors from explicit refresh and reload calls are returned verbatim.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import DaemonConfig
from .errors import IdentityError, InventoryError
from .logging_config import correlation_id_var
from .rate_limit import RateLimiter
from .scheduler import RefreshScheduler
from .service import NodeService

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
STALE_HEADER = "X-Report-Stale"


def create_app(
    service: NodeService,
    config: Optional[DaemonConfig] = None,
    background: bool = True
) -> FastAPI:
    """
    Build the FastAPI application around ``service``.

    Args:
        service: the node service to expose
        config: daemon configuration (defaults when None)
        background: run identity load, cache load and the refresh scheduler
            in the application lifespan
    """
    config = config or DaemonConfig()
    refresh_limiter = RateLimiter(config.refresh_rpm)
    scheduler = RefreshScheduler(service, config.report.refresh_interval_secs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not background:
            yield
            return
        await asyncio.to_thread(service.load_identity)
        await service.load_from_disk()
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()

    app = FastAPI(title="inventoryd", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.state.scheduler = scheduler

    @app.middleware("http")
    async def correlation_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = correlation_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.get("/health")
    def health():
        envelope = service.cached_report()
        identity = service.identity()
        return {
            "status": "ok",
            "version": __version__,
            "hostname": identity.hostname if identity else None,
            "identity_loaded": identity is not None,
            "report_cached": envelope is not None,
            "report_stale": service.is_stale(),
            "report_age_secs": envelope.age_seconds() if envelope else None,
        }

    @app.get("/ready")
    def ready():
        envelope = service.cached_report()
        if envelope is None:
            raise HTTPException(503, "REPORT_NOT_READY")
        return {"status": "ready", "checksum": envelope.checksum}

    @app.get("/api/v1/identity")
    def get_identity():
        redacted = service.redacted_identity()
        if redacted is None:
            raise HTTPException(404, "IDENTITY_NOT_LOADED")
        return redacted.to_dict()

    @app.post("/api/v1/identity/reload")
    async def reload_identity():
        try:
            identity = await service.reload_identity()
        except IdentityError as exc:
            raise HTTPException(500, str(exc))
        return {"status": "reloaded", "hostname": identity.hostname}

    @app.get("/api/v1/report")
    def get_report():
        envelope = service.cached_report()
        if envelope is None:
            raise HTTPException(503, "REPORT_NOT_READY")
        stale = "true" if service.is_stale() else "false"
        return JSONResponse(envelope.model_dump(mode="json"), headers={STALE_HEADER: stale})

    @app.post("/api/v1/report/refresh")
    async def refresh_report():
        limit = refresh_limiter.check("refresh")
        if not limit.allowed:
            retry_after = str(int(limit.retry_after or 0) + 1)
            raise HTTPException(429, "RATE_LIMIT", headers={"Retry-After": retry_after})
        try:
            envelope = await service.refresh("manual")
        except (InventoryError, OSError, ValueError) as exc:
            raise HTTPException(500, str(exc))
        return envelope.model_dump(mode="json")

    return app
