"""FastAPI application factory for the earnings and subscription API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from ..errors import NotFoundError, UpstreamError, ValidationError
from ..monitoring.logger import get_logger
from .state import ServiceState

logger = get_logger(__name__)


class SubscribeRequest(BaseModel):
    deviceToken: Optional[str] = None
    wallet: Optional[str] = None
    platform: str = "ios"


class NotificationTestRequest(BaseModel):
    deviceToken: Optional[str] = None


def create_api_app(state: ServiceState) -> FastAPI:
    cfg = state.config

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if cfg.api.start_monitor and cfg.monitor.enabled:
            state.services.monitor.start(cfg.monitor.interval_minutes)
        try:
            yield
        finally:
            state.services.monitor.stop()

    app = FastAPI(title="Bags Earnings API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(UpstreamError)
    async def _upstream_error(_: Request, exc: UpstreamError) -> JSONResponse:
        logger.error("Upstream failure: %s", exc)
        return JSONResponse({"error": "Failed to fetch stats", "message": str(exc)}, status_code=502)

    def _require_device(token: Optional[str]) -> str:
        if not token:
            raise ValidationError("Missing device token")
        return token

    @app.get("/health")
    def healthcheck() -> Dict[str, Any]:
        return state.health()

    @app.get("/metrics", response_class=PlainTextResponse)
    def prometheus_metrics() -> str:
        return state.metrics.export_prometheus()

    @app.get("/api/wallet/{address}/stats")
    def wallet_stats(address: str) -> Dict[str, Any]:
        return state.wallet_stats(address)

    @app.post("/api/subscriptions", status_code=201)
    def subscribe(body: SubscribeRequest) -> Dict[str, Any]:
        return state.subscribe(body.deviceToken or "", body.wallet or "", body.platform)

    @app.get("/api/subscriptions")
    def list_subscriptions(
        device_token: Optional[str] = Header(default=None, alias="X-Device-Token"),
    ) -> Dict[str, Any]:
        return state.subscriptions(_require_device(device_token))

    @app.delete("/api/subscriptions/{wallet}")
    def unsubscribe(
        wallet: str,
        device_token: Optional[str] = Header(default=None, alias="X-Device-Token"),
    ) -> Dict[str, Any]:
        return state.unsubscribe(_require_device(device_token), wallet)

    @app.get("/api/subscriptions/{wallet}/stats")
    def wallet_history(wallet: str) -> Dict[str, Any]:
        return state.wallet_history(wallet)

    @app.get("/api/subscriptions/{wallet}/notifications")
    def wallet_notifications(
        wallet: str,
        limit: int = Query(50, ge=1, le=500),
    ) -> List[Dict[str, Any]]:
        return state.notifications(wallet, limit)

    @app.post("/api/notifications/test")
    def test_notification(body: NotificationTestRequest) -> Dict[str, Any]:
        if cfg.is_production:
            raise HTTPException(status_code=404, detail="Not found")
        return state.send_test(_require_device(body.deviceToken))

    return app


__all__ = ["SubscribeRequest", "create_api_app"]
