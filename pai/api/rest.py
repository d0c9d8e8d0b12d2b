"""REST API for the tutoring core.

Endpoints:
  GET  /healthz           - Liveness
  GET  /readyz            - Ready when at least one AI provider is registered
  POST /chat              - Send a message as a chat user, get the reply
  GET  /providers/health  - Run every provider's health check
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from pai.agent.engine import Engine
from pai.ai.router import Router
from pai.chat.gateway import InboundMessage

logger = logging.getLogger(__name__)

_OPTIONAL_FIELDS = (
    "reply_to_text",
    "image_url",
    "caption",
    "username",
    "first_name",
    "last_name",
    "language",
)


def create_app(
    engine: Engine,
    router: Router,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def healthz(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    async def readyz(request: Request) -> JSONResponse:
        if not router.has_provider():
            return JSONResponse({"status": "no_providers"}, status_code=503)
        return JSONResponse({"status": "ready"})

    async def chat(request: Request) -> JSONResponse:
        """POST /chat - Send a message, get a response."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        user_id = body.get("user_id")
        text = body.get("text")
        if not user_id:
            return JSONResponse({"error": "Missing required field: user_id"}, status_code=400)
        if not text and not body.get("image_url"):
            return JSONResponse({"error": "Missing required field: text"}, status_code=400)

        msg = InboundMessage(
            channel=str(body.get("channel") or "api"),
            user_id=str(user_id),
            text=str(text or ""),
            **{f: str(body[f]) for f in _OPTIONAL_FIELDS if body.get(f)},
        )
        msg.has_image = bool(msg.image_url)

        try:
            response_text = await engine.process_message(msg)
        except ValueError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except Exception:
            logger.exception("Chat error for user %s", msg.user_id)
            return JSONResponse({"error": "internal error"}, status_code=500)
        return JSONResponse({"response": response_text})

    async def providers_health(request: Request) -> JSONResponse:
        """GET /providers/health - Per-provider health."""
        results = await router.health_check()
        return JSONResponse(
            {name: "ok" if err is None else str(err) for name, err in results.items()}
        )

    routes = [
        Route("/healthz", healthz),
        Route("/readyz", readyz),
        Route("/chat", chat, methods=["POST"]),
        Route("/providers/health", providers_health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
