"""FastAPI server: one WebSocket connection per client session.

Run:
    python server.py
or:
    uvicorn server:create_app --factory --port 3002

Protocol (JSON text frames):
    client → server   {"event": "startProcess", "data": {"csvData": "url,name,tag,..."}}
    server → client   {"event": "<name>", "data": {...}}

Connecting creates no session; ``startProcess`` starts a job in the
background; disconnecting removes the session record, while any stage
process still running is left to finish on its own.
"""
import asyncio
import logging
import threading
import uuid
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError

from pipeline.errors import SessionBusyError
from pipeline.events import PROCESS_ERROR
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.session_store import SessionStore
from settings import Settings

logger = logging.getLogger(__name__)

START_PROCESS = "startProcess"


class ClientMessage(BaseModel):
    event: str
    data: dict[str, Any] | None = None


class ConnectionManager:
    """EventSink that queues events for each connected WebSocket.

    ``publish`` may be called from any thread: it hands the event to the
    connection's event loop with ``call_soon_threadsafe``, which keeps the
    per-session order. Events for unknown sessions are dropped.
    """

    def __init__(self) -> None:
        self._queues: dict[str, tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}
        self._lock = threading.Lock()

    def connect(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._queues[session_id] = (asyncio.get_running_loop(), queue)
        return queue

    def disconnect(self, session_id: str) -> None:
        with self._lock:
            self._queues.pop(session_id, None)

    def publish(self, session_id: str, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            target = self._queues.get(session_id)
        if target is None:
            return
        loop, queue = target
        loop.call_soon_threadsafe(queue.put_nowait, {"event": event_name, "data": payload})

    def __len__(self) -> int:
        with self._lock:
            return len(self._queues)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = SessionStore()
        connections = ConnectionManager()
        app.state.settings = settings
        app.state.store = store
        app.state.connections = connections
        app.state.orchestrator = PipelineOrchestrator(settings, store, connections)
        app.state.jobs = set()
        _log_environment(settings)

        yield

        pending = [job for job in app.state.jobs if not job.done()]
        if pending:
            logger.warning("Shutting down with %d job(s) still running", len(pending))
            for job in pending:
                job.cancel()

    app = FastAPI(
        title="Print-Panel Pipeline",
        description="Runs the image and PDF stages per client session and streams their progress",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # ─────────────────────────────────────────────────────────────
    # Session channel
    # ─────────────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def session_socket(websocket: WebSocket):
        await websocket.accept()
        session_id = str(uuid.uuid4())
        connections: ConnectionManager = websocket.app.state.connections
        queue = connections.connect(session_id)
        sender = asyncio.create_task(_forward_events(websocket, queue))
        logger.info("Client connected: %s", session_id)

        try:
            while True:
                raw = await websocket.receive_text()
                _handle_message(websocket.app, session_id, raw)
        except WebSocketDisconnect:
            logger.info("Client disconnected: %s", session_id)
        finally:
            websocket.app.state.store.delete(session_id)
            connections.disconnect(session_id)
            sender.cancel()

    # ─────────────────────────────────────────────────────────────
    # REST
    # ─────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "printpanel-pipeline",
            "connections": len(app.state.connections),
            "sessions": len(app.state.store),
        }

    @app.get("/sessions")
    async def list_sessions():
        return {
            "sessions": [s.model_dump(mode="json") for s in app.state.store.list_sessions()]
        }

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str):
        session = app.state.store.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session.model_dump(mode="json")

    # Registered last so the routes above take precedence
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


def _handle_message(app: FastAPI, session_id: str, raw: str) -> None:
    connections: ConnectionManager = app.state.connections
    try:
        message = ClientMessage.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Session %s: malformed message: %s", session_id, exc)
        connections.publish(session_id, PROCESS_ERROR, {"status": "error", "message": "Malformed message"})
        return

    if message.event != START_PROCESS:
        logger.warning("Session %s: ignoring unknown event %r", session_id, message.event)
        return

    logger.info("Session %s: start process request received", session_id)
    job = asyncio.create_task(_submit(app, session_id, (message.data or {}).get("csvData")))
    app.state.jobs.add(job)
    job.add_done_callback(app.state.jobs.discard)


async def _submit(app: FastAPI, session_id: str, csv_data: Any) -> None:
    orchestrator: PipelineOrchestrator = app.state.orchestrator
    try:
        await orchestrator.submit(session_id, csv_data)
    except SessionBusyError as exc:
        logger.warning("%s", exc)
        app.state.connections.publish(session_id, PROCESS_ERROR, {"status": "error", "message": str(exc)})


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


def _log_environment(settings: Settings) -> None:
    logger.info("Environment check:")
    logger.info("- AWS_ACCESS_KEY_ID: %s", "Set" if settings.aws_access_key_id else "Not set")
    logger.info("- AWS_SECRET_ACCESS_KEY: %s", "Set" if settings.aws_secret_access_key else "Not set")
    logger.info("- AWS_REGION: %s", settings.aws_region)
    logger.info("- Stage scripts: %s", settings.scripts_dir.resolve())


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    logger.info("Server running on port %d", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
