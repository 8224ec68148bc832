from contextlib import asynccontextmanager
import asyncio
import os

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from backend import get_pairing_store
from constants import EXPIRY_SWEEP_INTERVAL_SECONDS, REAPER_INTERVAL_SECONDS
from errors import SignalingError
from logging_config import get_logger, setup_logging
from routers.pairing import pairing_router
from signaling.hub import SignalingHub
from signaling.push import PushDispatcher
from signaling.reaper import run_periodically
from signaling.transport import WebSocketTransport

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

# All live rendezvous state. Only touched from the event loop, one event at a time.
hub = SignalingHub(push=PushDispatcher(get_pairing_store))


def _sweep_expired_pendings():
    return get_pairing_store().sweep_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks = [
        asyncio.create_task(run_periodically(REAPER_INTERVAL_SECONDS, hub.reap_stale, "stale-connection-reaper")),
        asyncio.create_task(run_periodically(EXPIRY_SWEEP_INTERVAL_SECONDS, _sweep_expired_pendings,
                                             "expired-pending-sweep", in_executor=True)),
    ]
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Background sweeps stopped")


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pairing_router)

logger.info("FastAPI application initialized")


@app.exception_handler(SignalingError)
async def signaling_error_handler(request: Request, exc: SignalingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}")
    content = {"error": exc.code}
    if exc.status_code == 400:
        content["message"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"{request.method} {request.url.path} rejected: invalid request body")
    return JSONResponse(status_code=400, content={"error": "invalid_request", "detail": jsonable_encoder(exc.errors())})


@app.get("/", response_class=PlainTextResponse)
async def index():
    return "WebRTC Signaling Server is active."


@app.get("/health")
async def health():
    return {"status": "ok", **hub.stats()}


@app.websocket("/ws")
@app.websocket("/")
async def websocket_endpoint(websocket: WebSocket):
    """Signaling socket. One JSON object per message, discriminated by `type`."""
    await websocket.accept()
    transport = WebSocketTransport(websocket)
    transport.start()
    connection_id = hub.connect(transport)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # Text and binary frames both carry one JSON object
            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""
            hub.handle_raw(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        transport.mark_closed()
        hub.disconnect(connection_id)
        await transport.close()
