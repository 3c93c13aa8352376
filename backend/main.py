"""
PeerDesk — FastAPI application entry point.

Builds the coordination services on startup, serves the local REST API
the browser UI drives, and pushes coordination events to it over
WebSocket.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from api.dependencies import ClientServices
from api.routes import router
from config import API_HOST, API_PORT, APP_NAME, BACKEND_URL, FRONTEND_DIST, LOG_LEVEL
from errors import PeerDeskError

# --- Logging ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: ClientServices | None = None) -> FastAPI:
    """Build the app around an explicitly owned set of services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop background services."""
        logger.info(f"Starting {APP_NAME} against backend {BACKEND_URL}...")
        try:
            try:
                await app.state.services.directory.check_liveness()
                app.state.services.discovery.schedule_refresh()
            except PeerDeskError as e:
                logger.warning(f"Backend not available at startup: {e.message}")
            logger.info(f"{APP_NAME} ready — API: {API_HOST}:{API_PORT}")
            yield
        finally:
            logger.info(f"Shutting down {APP_NAME} services...")
            await app.state.services.shutdown()

    app = FastAPI(title=APP_NAME, version="1.0.0", lifespan=lifespan)
    app.state.services = services or ClientServices.build()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173", "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PeerDeskError)
    async def peerdesk_error_handler(request: Request, exc: PeerDeskError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "detail": exc.message},
        )

    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        events = app.state.services.events
        await events.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect browser messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await events.disconnect(websocket)
        except Exception:
            await events.disconnect(websocket)

    # --- Static Files (Frontend) ---
    if FRONTEND_DIST.exists():
        app.mount("/assets", StaticFiles(directory=FRONTEND_DIST / "assets"), name="assets")

        @app.get("/")
        async def read_index():
            return FileResponse(FRONTEND_DIST / "index.html")
    else:
        logger.warning(f"Frontend dist not found at {FRONTEND_DIST}. API only mode.")

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(
        create_app(),
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
