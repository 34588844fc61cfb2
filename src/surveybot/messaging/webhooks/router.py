"""
FastAPI router for the bot's HTTP endpoints.

- ``/``                  Telegram webhook (POST) and liveness (GET)
- ``/dispatch-delayed``  callback target of the push-schedule service
- ``/cron``              drains the delayed-jobs queue; hit by an external cron
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from surveybot.components import BotComponents
from surveybot.messaging.interface import MessagingProviderError, UpdateParseError
from surveybot.scheduling.models import DelayedJob
from surveybot.scheduling.poller import send_delayed_job
from surveybot.shared.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

_OTHER_METHODS = ["PUT", "PATCH", "DELETE"]


def get_components(request: Request) -> BotComponents:
    return request.app.state.components


def _method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"ok": False, "error": "Method not allowed"},
    )


def _server_error() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"ok": False})


async def _read_json(request: Request, max_bytes: int) -> Any:
    """Body as JSON; ValueError when oversized or unparsable."""
    body = await request.body()
    if len(body) > max_bytes:
        raise ValueError(f"payload of {len(body)} bytes exceeds {max_bytes}")
    return json.loads(body)


# ----------------------------
# Webhook
# ----------------------------

@router.get("/")
async def health(request: Request) -> dict[str, Any]:
    components = get_components(request)
    return {
        "status": "Bot is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(components.uptime_seconds, 3),
        "botReady": components.provider.ready,
    }


@router.post("/")
async def receive_update(request: Request) -> Any:
    components = get_components(request)

    try:
        payload = await _read_json(request, components.settings.max_update_bytes)
        update = components.provider.parse_update(payload)
    except (ValueError, UpdateParseError) as exc:
        logger.error("Rejected malformed update", extra={"error": str(exc)})
        return _server_error()

    token = correlation_id_var.set(str(update.update_id) if update.update_id is not None else None)
    try:
        logger.info(
            "Processing update",
            extra={"update_type": update.kind.value, "user_id": update.user_id},
        )
        await components.handler.handle_update(update)
    except Exception:
        logger.exception("Webhook handler error")
        return _server_error()
    finally:
        correlation_id_var.reset(token)

    return {"ok": True}


@router.api_route("/", methods=_OTHER_METHODS, include_in_schema=False)
async def webhook_other_methods() -> JSONResponse:
    return _method_not_allowed()


# ----------------------------
# Push-schedule callback
# ----------------------------

@router.post("/dispatch-delayed")
async def dispatch_delayed(request: Request) -> Any:
    components = get_components(request)

    try:
        payload = await _read_json(request, components.settings.max_update_bytes)
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"ok": False, "error": "Missing userId or message"},
        )

    try:
        job = DelayedJob.from_payload(payload)
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"ok": False, "error": "Missing userId or message"},
        )

    try:
        await send_delayed_job(components.provider, job)
    except MessagingProviderError:
        logger.exception("Delayed dispatch failed", extra={"user_id": job.user_id})
        return _server_error()

    logger.info("Delayed message dispatched", extra={"user_id": job.user_id})
    return {"ok": True}


@router.api_route("/dispatch-delayed", methods=["GET", *_OTHER_METHODS], include_in_schema=False)
async def dispatch_delayed_other_methods() -> JSONResponse:
    return _method_not_allowed()


# ----------------------------
# Queue poller
# ----------------------------

@router.api_route("/cron", methods=["GET", "POST"])
async def drain_delayed_jobs(request: Request) -> Any:
    components = get_components(request)
    if components.poller is None:
        logger.error("Cron invoked but no delayed-jobs queue is configured")
        return _server_error()

    try:
        result = await components.poller.drain()
    except Exception:
        logger.exception("Cron handler error")
        return _server_error()

    return {"ok": True, "processed": result.processed}
