"""
FastAPI + Uvicorn ASGI application — the synchronous HTTP gateway.

Exposes the CertificateStore operations over HTTP for clients that do not
speak the message protocol, and hosts the Pub/Sub channel in the same
process. Both share one CertificateStore instance.

  GET    /healthz                            → 200 "ok" (always)
  POST   /certificates/upload                → {success}
  GET    /certificates                       → {productIds, total}
  GET    /certificates/{productId}           → {certificates} (404 when empty)
  DELETE /certificates/{productId}/{certId}  → {success}
  DELETE /certificates/{productId}           → {success}

Store calls are blocking (HTTP to the registry, GCS, Firestore), so every
endpoint runs them via asyncio.to_thread to keep the event loop free.

Entry point for production: uvicorn cert_gateway.asgi:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict
from railway import ErrorCode, ErrorResponse, HttpStatusMapper

from cert_gateway import __version__
from cert_gateway.channel import MessageChannelAdapter
from cert_gateway.config import AppSettings
from cert_gateway.main import configure_structlog, create_channel, create_store
from cert_gateway.store import CertificateStore

log = structlog.get_logger()

# Every way an upload can be refused is the caller's 400; only storage is a 500.
_UPLOAD_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.BUSINESS_RULE_ERROR: 400,
    ErrorCode.EXTERNAL_SERVICE_ERROR: 400,
    ErrorCode.TIMEOUT_ERROR: 400,
    ErrorCode.DATABASE_ERROR: 500,
}

_DELETE_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 400,
}


class UploadBody(BaseModel):
    """Upload request; all fields optional so that a missing one is a 400, not a 422."""

    model_config = ConfigDict(extra="ignore")

    productId: str | int | None = None
    file: str | None = None
    certificateId: str | int | None = None


# Bound on how long shutdown waits for a channel setup still in flight.
CHANNEL_SETUP_JOIN_SECONDS = 5.0


def _start_channel(channel: MessageChannelAdapter) -> None:
    started = channel.start()
    log.info("asgi.channel", started=started)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager — runs on startup and shutdown.

    Startup: build store and channel from settings (unless injected), then start
    the channel in a background thread so /healthz answers while Pub/Sub setup
    is still running (or never finishes).
    Shutdown: stop the channel's streaming pull.

    A store that cannot be built leaves app.state.store as None: store routes
    answer 503 and the liveness probe keeps answering.
    """
    if app.state.store is None:
        settings = AppSettings()
        configure_structlog(settings.log_level)
        try:
            app.state.store = create_store(settings)
            app.state.channel = create_channel(settings, app.state.store)
        except Exception as e:
            log.error("asgi.init_error", error=str(e), error_type=type(e).__name__)
            app.state.store = None
            app.state.channel = None

    channel: MessageChannelAdapter | None = app.state.channel
    starter: threading.Thread | None = None
    if channel is not None:
        starter = threading.Thread(target=_start_channel, args=(channel,), name="channel-setup", daemon=True)
        starter.start()
    app.state.channel_starter = starter

    log.info("asgi.startup_complete", store=app.state.store is not None, channel=channel is not None)

    yield  # ← App is running here; Uvicorn handles requests

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    if starter is not None:
        await asyncio.to_thread(starter.join, CHANNEL_SETUP_JOIN_SECONDS)
    if channel is not None:
        await asyncio.to_thread(channel.stop)
    log.info("asgi.shutdown_complete")


router = APIRouter()


def _store(request: Request) -> CertificateStore | None:
    return request.app.state.store


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "unavailable", "reason": "Store not initialized"},
    )


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> str:
    """Liveness probe — answers regardless of store or channel health."""
    return "ok"


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "certificate-validation service running\n"


@router.post("/certificates/upload")
async def upload_certificate(body: UploadBody, request: Request) -> JSONResponse:
    """
    Verify and store a base64 document for a product.

    Returns 200 {"success": true} when stored; 400 when a field is missing,
    the file is not base64, or the registry does not confirm the certificate;
    500 when storage fails or something unexpected happens.
    """
    store = _store(request)
    if store is None:
        return _unavailable()
    try:
        result = await asyncio.to_thread(
            store.upload_encoded_result, body.productId, body.file, body.certificateId
        )
    except Exception as e:
        log.error("asgi.upload_exception", error=str(e))
        return JSONResponse(status_code=500, content={"success": False})

    if result.is_success():
        return JSONResponse(status_code=200, content={"success": True, "certificateId": result.value().id})

    failure = result.error()
    return JSONResponse(
        status_code=HttpStatusMapper.map_failure(failure, _UPLOAD_STATUS),
        content={"success": False, "error": ErrorResponse.from_failure(failure).to_dict()},
    )


@router.get("/certificates")
async def list_products(request: Request) -> JSONResponse:
    store = _store(request)
    if store is None:
        return _unavailable()
    result = await asyncio.to_thread(store.list_result)
    if result.is_failure():
        return JSONResponse(status_code=500, content={"productIds": [], "total": 0})
    product_ids = result.value()
    return JSONResponse(status_code=200, content={"productIds": product_ids, "total": len(product_ids)})


@router.get("/certificates/{product_id}")
async def list_product_certificates(product_id: str, request: Request) -> JSONResponse:
    """200 with the product's certificates, 404 when it has none."""
    store = _store(request)
    if store is None:
        return _unavailable()
    certificates = await asyncio.to_thread(store.list_for_product, product_id)
    return JSONResponse(
        status_code=200 if certificates else 404,
        content={"certificates": [c.to_document() for c in certificates]},
    )


@router.delete("/certificates/{product_id}/{certificate_id}")
async def delete_certificate(product_id: str, certificate_id: str, request: Request) -> JSONResponse:
    store = _store(request)
    if store is None:
        return _unavailable()
    result = await asyncio.to_thread(store.delete_certificate_result, product_id, certificate_id)
    if result.is_success():
        return JSONResponse(status_code=200, content={"success": True})
    return JSONResponse(
        status_code=HttpStatusMapper.map_failure(result.error(), _DELETE_STATUS),
        content={"success": False},
    )


@router.delete("/certificates/{product_id}")
async def delete_product(product_id: str, request: Request) -> JSONResponse:
    store = _store(request)
    if store is None:
        return _unavailable()
    deleted = await asyncio.to_thread(store.delete_product, product_id)
    return JSONResponse(status_code=200 if deleted else 500, content={"success": deleted})


async def _invalid_request(request: Request, exc: Exception) -> JSONResponse:
    log.warning("asgi.invalid_request", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {"error_code": ErrorCode.VALIDATION_ERROR.value, "message": "invalid request body"},
        },
    )


def create_app(
    store: CertificateStore | None = None,
    channel: MessageChannelAdapter | None = None,
) -> FastAPI:
    """
    Build the gateway.

    With no store the lifespan builds store and channel from AppSettings;
    tests inject their own store (and optionally a channel).
    """
    app = FastAPI(
        title="cert-gateway",
        description="Product certificate upload and registry validation gateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.channel = channel
    app.state.channel_starter = None
    app.include_router(router)
    app.add_exception_handler(RequestValidationError, _invalid_request)
    return app


app = create_app()
