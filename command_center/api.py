"""
FastAPI application for Command Center.
"""

from __future__ import annotations

import importlib.metadata
import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth.routes import router as auth_router
from .center import CommandCenter, build_command_center, seed_demo_data
from .config import Settings, get_settings
from .core.broadcaster import GLOBAL_TOPIC, execution_topic
from .exceptions import CommandCenterError
from .logging_config import configure_logging
from .tracker.routes import claude_router, issues_router, projects_router

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    center: Optional[CommandCenter] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Defaults to the process settings
        center: Pre-built container; when omitted one is built at startup
            and closed at shutdown
    """
    settings = settings or (center.settings if center is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("command_center_starting", environment=settings.environment)
        owns_center = center is None
        app.state.center = center or build_command_center(settings)

        try:
            if settings.seed_demo_data:
                await seed_demo_data(app.state.center)
        except Exception as e:
            logger.error("command_center_start_failed", error=str(e))
            raise

        yield

        logger.info("command_center_shutting_down")
        if owns_center:
            await app.state.center.close()
        else:
            await app.state.center.orchestrator.stop()
            await app.state.center.engine.shutdown()
        logger.info("command_center_shutdown_complete")

    app = FastAPI(
        title=settings.app_name,
        description="Issue tracking with Claude execution automation",
        version=importlib.metadata.version("command-center"),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CommandCenterError)
    async def command_center_error_handler(
        request: Request, exc: CommandCenterError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "error": exc.to_dict()},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "status": "error",
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": {"errors": jsonable_encoder(exc.errors())},
                },
            },
        )

    @app.get("/health", tags=["system"])
    async def health() -> Dict[str, Any]:
        """Basic health check endpoint."""
        return {"status": "ok"}

    @app.get("/version", tags=["system"])
    def version() -> Dict[str, str]:
        """Return the version of the application."""
        return {"version": importlib.metadata.version("command-center")}

    @app.websocket("/ws")
    async def realtime(websocket: WebSocket) -> None:
        """Realtime event stream.

        Every connection receives global events. Clients join or leave an
        execution's progress stream with
        ``{"action": "subscribe" | "unsubscribe", "executionId": ...}``.
        """
        broadcaster = websocket.app.state.center.broadcaster

        async def deliver(message: Dict[str, Any]) -> None:
            await websocket.send_json(message)

        await websocket.accept()
        broadcaster.subscribe(GLOBAL_TOPIC, deliver)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    message = None
                if not isinstance(message, dict):
                    await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                    continue

                action = message.get("action")
                execution_id = message.get("executionId")
                if action == "ping":
                    await websocket.send_json({"event": "pong"})
                elif action in ("subscribe", "unsubscribe") and execution_id:
                    topic = execution_topic(str(execution_id))
                    if action == "subscribe":
                        broadcaster.subscribe(topic, deliver)
                    else:
                        broadcaster.unsubscribe(topic, deliver)
                    await websocket.send_json({"event": f"{action}d", "topic": topic})
                else:
                    await websocket.send_json(
                        {"event": "error", "data": {"message": f"Unsupported action: {action}"}}
                    )
        except WebSocketDisconnect:
            logger.debug("websocket_disconnected")
        finally:
            broadcaster.unsubscribe_all(deliver)

    app.include_router(auth_router)
    app.include_router(issues_router)
    app.include_router(projects_router)
    app.include_router(claude_router)

    return app


settings = get_settings()
configure_logging(settings.log_level, settings.log_format)

app = create_app(settings)
