"""FastAPI application exposing the WhatsApp webhook."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from vfbridge.audit.logger import RelayAuditLogger
from vfbridge.config import REQUIRED_SETTINGS, BridgeConfig
from vfbridge.dialogue.client import DialogueClient
from vfbridge.dispatch.dispatcher import TraceDispatcher
from vfbridge.logging_config import configure_logging
from vfbridge.models import InboundEvent, RelayEvent, RelayEventType
from vfbridge.outbound.whatsapp import WhatsAppSender
from vfbridge.relay import RelayPipeline
from vfbridge.scheduler import RelayScheduler
from vfbridge.webhook.rate_limiter import SenderRateLimiter
from vfbridge.webhook.whatsapp import WhatsAppWebhook

logger = logging.getLogger(__name__)

_MAX_WEBHOOK_BODY_SIZE = 1024 * 1024  # 1MB
_DRAIN_TIMEOUT_SECONDS = 30.0

SERVICE_NAME = "WhatsApp Voiceflow bridge"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    config = BridgeConfig.from_env()
    configure_logging(config.log_level)
    audit_logger = (
        RelayAuditLogger.from_env(config.audit_log_path) if config.audit_log_path else None
    )
    return create_app(config, audit_logger=audit_logger)


def create_app(
    config: BridgeConfig,
    audit_logger: RelayAuditLogger | None = None,
    dialogue: DialogueClient | None = None,
    sender: WhatsAppSender | None = None,
    scheduler: RelayScheduler | None = None,
) -> FastAPI:
    """Create the bridge app. Collaborators can be injected for tests."""
    sender = sender or WhatsAppSender(config, audit_logger=audit_logger)
    dialogue = dialogue or DialogueClient(config, audit_logger=audit_logger)
    scheduler = scheduler or RelayScheduler()
    pipeline = RelayPipeline(
        dialogue=dialogue,
        dispatcher=TraceDispatcher(sender, message_delay=config.message_delay),
        sender=sender,
        accept_media=config.accept_media,
        typing_indicator=config.typing_indicator,
        audit_logger=audit_logger,
    )
    webhook = WhatsAppWebhook(
        verify_token=config.verify_token,
        app_secret=config.app_secret,
        max_message_age_seconds=config.max_message_age_seconds,
    )
    rate_limiter = SenderRateLimiter(max_messages=config.sender_rate_limit)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("%s ready", SERVICE_NAME)
        yield
        await scheduler.drain(timeout=_DRAIN_TIMEOUT_SECONDS)

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.scheduler = scheduler
    app.state.pipeline = pipeline

    def throttle(event: InboundEvent) -> None:
        logger.warning(
            "Dropping message %s from %s: sender over rate limit",
            event.message_id, event.sender_id,
        )
        if audit_logger:
            audit_logger.log(RelayEvent(
                event_type=RelayEventType.MESSAGE_SKIPPED,
                sender_id=event.sender_id,
                action="relay",
                result="skipped",
                details={"message_id": event.message_id, "reason": "rate_limited"},
            ))

    def reject(request: Request, status_code: int, error: str) -> JSONResponse:
        source_ip = request.client.host if request.client else None
        logger.warning("Webhook rejected from %s: %s", source_ip, error)
        if audit_logger:
            audit_logger.log(RelayEvent(
                event_type=RelayEventType.WEBHOOK_REJECTED,
                source_ip=source_ip,
                action=f"{request.method} {request.url.path}",
                result="failure",
                details={"status_code": status_code, "error": error},
            ))
        return JSONResponse({"error": error}, status_code=status_code)

    @app.get("/")
    async def status() -> dict[str, str]:
        return {
            "status": f"{SERVICE_NAME} is running",
            "service": "vfbridge",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/health")
    async def health() -> JSONResponse:
        missing = config.missing_settings()
        checks = {var: var not in missing for var in REQUIRED_SETTINGS.values()}
        return JSONResponse(
            {
                "status": "ok" if not missing else "misconfigured",
                "checks": checks,
                "pending_relays": scheduler.pending,
            },
            status_code=200 if not missing else 503,
        )

    @app.get("/webhook")
    async def verify(request: Request) -> Response:
        status_code, content = webhook.handle_verification(dict(request.query_params))
        return PlainTextResponse(content, status_code=status_code)

    @app.post("/webhook")
    async def receive(request: Request) -> Response:
        body = await request.body()
        if len(body) > _MAX_WEBHOOK_BODY_SIZE:
            return reject(request, 413, "Request body too large")

        if not webhook.verify_signature(dict(request.headers), body):
            return reject(request, 401, "Invalid webhook signature")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return reject(request, 400, "Invalid JSON body")
        if not isinstance(payload, dict):
            return reject(request, 400, "Invalid webhook payload")

        events = webhook.extract_events(payload)
        accepted = 0
        for event in events:
            if not rate_limiter.allow(event.sender_id):
                throttle(event)
                continue
            scheduler.submit(pipeline.handle(event), name=f"relay-{event.message_id}")
            accepted += 1

        # Acknowledge now; relays finish in the background.
        return JSONResponse({
            "status": "received",
            "messages": accepted,
            "throttled": len(events) - accepted,
        })

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    return app
