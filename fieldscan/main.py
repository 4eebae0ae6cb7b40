"""FastAPI entry-point for the fieldscan controller."""
from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from . import __version__
from .config import OperatorConfig, Settings, get_settings
from .controller import ScanController
from .logging_config import configure_logging
from .state import ControllerEvent

logger = logging.getLogger(__name__)


class ScanRequest(BaseModel):
    text: str


class SettingsRequest(BaseModel):
    endpoint_url: str = ""
    credential: Optional[str] = None
    category: Optional[str] = None
    volunteer_code: Optional[str] = None
    clear_credential: bool = False


class ConfirmationRequest(BaseModel):
    decision: Literal["confirm", "cancel"]


def _event_payload(event: ControllerEvent) -> dict:
    payload = {"type": event.type, "status": event.status.value, "data": event.data}
    if event.error:
        payload["error"] = event.error
    return payload


def _settings_view(config: OperatorConfig) -> dict:
    return {
        "endpoint_url": config.endpoint_url,
        "category": config.category,
        "volunteer_code": config.volunteer_code,
        "credential_set": bool(config.credential),
    }


def create_app(controller: ScanController) -> FastAPI:
    app = FastAPI(title="fieldscan-controller", version=__version__)
    app.state.controller = controller

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Catch-all exception handler to prevent application crashes."""
        logger.exception("Unhandled exception in %s: %s", request.url.path, exc)
        return PlainTextResponse(
            f"Internal server error: {str(exc)}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors gracefully."""
        logger.warning("Validation error in %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        await controller.start()
        logger.info("Application started successfully")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        try:
            await controller.stop()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.exception("Error during shutdown: %s", e)

    @app.get("/healthz")
    async def healthcheck() -> JSONResponse:
        return JSONResponse({"ok": True, "version": __version__, **controller.describe()})

    @app.post("/scan")
    async def scan(payload: ScanRequest) -> JSONResponse:
        """Decoded text from the camera; repeated frames of the same code are expected."""
        decision = controller.on_scan(payload.text)
        return JSONResponse({"admitted": decision.admitted, "status": controller.current_status.value})

    @app.post("/reset")
    async def reset() -> JSONResponse:
        controller.reset()
        return JSONResponse({"status": controller.current_status.value})

    @app.get("/settings")
    async def read_settings() -> JSONResponse:
        return JSONResponse(_settings_view(controller.config))

    @app.put("/settings")
    async def write_settings(payload: SettingsRequest) -> JSONResponse:
        saved = controller.save_config(
            OperatorConfig(**payload.model_dump(exclude={"clear_credential"})),
            clear_credential=payload.clear_credential,
        )
        return JSONResponse(_settings_view(saved))

    @app.get("/confirmation")
    async def pending_confirmation() -> JSONResponse:
        order = controller.confirmation.pending
        if order is None:
            raise HTTPException(status_code=404, detail="No confirmation pending")
        return JSONResponse(order.to_payload())

    @app.post("/confirmation")
    async def decide_confirmation(payload: ConfirmationRequest) -> JSONResponse:
        if not controller.resolve_confirmation(payload.decision):
            raise HTTPException(status_code=409, detail="No confirmation pending")
        return JSONResponse({"decision": payload.decision})

    @app.websocket("/ws/ui")
    async def ui_socket(ws: WebSocket) -> None:
        await ws.accept()
        queue = controller.register_ui()

        async def forward_events() -> None:
            while True:
                event = await queue.get()
                try:
                    await ws.send_json(_event_payload(event))
                except Exception as e:
                    logger.debug("WebSocket send failed (client disconnected): %s", e)
                    return

        forwarder: Optional[asyncio.Task[None]] = None
        try:
            await ws.send_json(_event_payload(controller.status.snapshot()))
            forwarder = asyncio.create_task(forward_events(), name="ui-socket-forwarder")
            # Incoming messages are ignored; reading only detects the disconnect
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("Unexpected error in UI websocket: %s", e)
        finally:
            if forwarder is not None:
                forwarder.cancel()
            controller.unregister_ui(queue)
            try:
                await ws.close()
            except Exception:
                pass

    return app


def build_default_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    return create_app(ScanController(settings=settings))
