"""FastAPI adapter: mount a webhook builder as a POST route.

The endpoint:
1. Reads the raw body (needed for HMAC verification; never JSON-parsed first)
2. Hands headers and body to the webhook engine
3. Maps the ProcessResult onto a response (204 empty, otherwise JSON)

Security contract:
- Error bodies come from the engine and never include failure details
- Unexpected adapter errors answer 500 with a generic message
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from hookgate.webhooks.builder import WebhookBuilder
from hookgate.webhooks.models import ProcessResult, WebhookRequest

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[str], Any]
Endpoint = Callable[[Request], Awaitable[Response]]


def _request_headers(request: Request) -> dict[str, list[str]]:
    """Collect headers keeping every value; the engine keeps the first."""
    headers: dict[str, list[str]] = {}
    for key, value in request.headers.items():
        headers.setdefault(key, []).append(value)
    return headers


def to_response(result: ProcessResult) -> Response:
    """Translate a ProcessResult into a Starlette response."""
    if result.status == 204:
        return Response(status_code=204)
    return JSONResponse(result.to_dict(), status_code=result.status)


def to_fastapi(
    webhook: WebhookBuilder,
    *,
    secret: str | None = None,
    on_success: SuccessCallback | None = None,
    observer: Any | None = None,
    max_body_bytes: int | None = None,
) -> Endpoint:
    """Convert a webhook builder into a FastAPI endpoint.

    Args:
        webhook: Configured webhook builder
        secret: Signing secret overriding the provider/environment secret
        on_success: Called with the event type after a 200 (best-effort)
        observer: Observer (or list of observers) added for this route only
        max_body_bytes: Body size limit overriding the builder's
    """
    instrumented = webhook.observe(observer) if observer is not None else webhook
    provider_name = webhook.provider.name

    async def webhook_endpoint(request: Request) -> Response:
        try:
            raw_body = await request.body()
            result = await instrumented.process(
                WebhookRequest(
                    headers=_request_headers(request),
                    raw_body=raw_body,
                    secret=secret,
                    max_body_bytes=max_body_bytes,
                )
            )
        except Exception:
            logger.exception("Webhook adapter failed for provider %s", provider_name)
            return JSONResponse({"ok": False, "error": "Internal server error"}, status_code=500)

        if result.status == 200 and result.event_type and on_success is not None:
            try:
                outcome = on_success(result.event_type)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.warning("on_success callback failed for %s/%s", provider_name, result.event_type, exc_info=True)

        return to_response(result)

    webhook_endpoint.__name__ = f"{provider_name.replace('-', '_')}_webhook"
    return webhook_endpoint


def register_webhook_route(
    app: FastAPI | APIRouter,
    path: str,
    webhook: WebhookBuilder,
    **options: Any,
) -> None:
    """Register a POST route on *app* that processes webhooks with *webhook*.

    Extra keyword arguments are passed to ``to_fastapi``.
    """
    endpoint = to_fastapi(webhook, **options)
    app.add_api_route(path, endpoint, methods=["POST"], include_in_schema=False)
    logger.info("Webhook route registered: %s (%s)", path, webhook.provider.name)
