"""FastAPI application: ``POST /guru/chat``, ``GET /health``, ``GET /metrics``.

Status mapping:

- 413 / 429: admission rejections, ``{error, retryAfterMs}`` plus ``Retry-After``
- 400: validation and suspicious-content rejections
- 429: bot verdicts
- 500: anything unexpected, ``{error, message, fallback: true}`` with no internals
- 200: ``text/plain`` chunked guidance stream with rate-limit headers
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST

from jyoti import __version__
from jyoti.exceptions import ClassificationRejectedError, GuruError, RequestValidationError
from jyoti.main import GuruApplication
from jyoti.models.schemas import validate_chat_request
from jyoti.observability.prometheus_metrics import generate_metrics, increment_errors
from jyoti.observability.tracing import setup_telemetry
from jyoti.security.admission import AdmissionDecision
from jyoti.security.fingerprint import extract_client_ip, generate_fingerprint, parse_trusted_proxies

logger = logging.getLogger(__name__)

CHAT_SCOPE = "chat"
STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"
DISCONNECT_POLL_SECONDS = 0.1

FATAL_RESPONSE: dict[str, Any] = {
    "error": "An error occurred. Please try again later.",
    "message": (
        "The Guru is temporarily unavailable. The divine energies are realigning. "
        "Please try again in a moment."
    ),
    "fallback": True,
}


class ClientDisconnected(Exception):
    """The caller went away before the answer was ready."""


def _declared_length(request: Request) -> int:
    try:
        return max(0, int(request.headers.get("content-length", "0")))
    except ValueError:
        return 0


async def _read_body(request: Request, max_bytes: int) -> bytes:
    """Read the body, stopping as soon as it exceeds ``max_bytes``.

    Returns:
        The body; longer than ``max_bytes`` only when the ceiling was breached
    """
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            break
    return bytes(body)


def _rejection(decision: AdmissionDecision) -> JSONResponse:
    content: dict[str, Any] = {"error": decision.message or "Request rejected"}
    if decision.retry_after_ms is not None:
        content["retryAfterMs"] = decision.retry_after_ms
    return JSONResponse(content, status_code=decision.status_code, headers=decision.headers)


def _fatal() -> JSONResponse:
    return JSONResponse(FATAL_RESPONSE, status_code=500)


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _race_disconnect(request: Request, work: asyncio.Task) -> Any:
    """Await ``work`` unless the client disconnects first, then cancel it.

    Raises:
        ClientDisconnected: If the client went away before ``work`` finished
    """
    watcher = asyncio.create_task(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work in done:
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
    raise ClientDisconnected()


def create_app(application: GuruApplication | None = None) -> FastAPI:
    """Build the FastAPI app around a ``GuruApplication``.

    Args:
        application: Pre-built application (defaults to one built from config)

    Returns:
        FastAPI app whose lifespan starts and stops the application
    """
    guru = application or GuruApplication()
    trusted_proxies = parse_trusted_proxies(guru.config.admission.trusted_proxies)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_telemetry(environment=guru.config.environment)
        await guru.start()
        app.state.guru = guru
        try:
            yield
        finally:
            await guru.stop()

    app = FastAPI(title="Jyoti Guru Gateway", version=__version__, lifespan=lifespan)

    @app.post("/guru/chat")
    async def guru_chat(request: Request) -> Response:
        pipeline = guru.pipeline
        gate = guru.admission_gate
        if pipeline is None or gate is None:
            return _fatal()

        started_at = pipeline.clock()
        client_ip = extract_client_ip(
            request.client.host if request.client else None, request.headers, trusted_proxies
        )
        fingerprint = generate_fingerprint(client_ip, request.headers.get("user-agent"), request.headers)

        try:
            decision = await gate.admit(fingerprint, CHAT_SCOPE, _declared_length(request))
            if not decision.allowed:
                return _rejection(decision)

            body = await _read_body(request, gate.max_payload_bytes)
            oversized = gate.check_payload(fingerprint, CHAT_SCOPE, len(body))
            if oversized is not None:
                return _rejection(oversized)

            try:
                payload = json.loads(body) if body else None
            except (UnicodeDecodeError, json.JSONDecodeError):
                raise RequestValidationError("Request body must be valid JSON") from None
            chat_request = validate_chat_request(payload)

            response = await _race_disconnect(
                request,
                asyncio.create_task(pipeline.run(chat_request, fingerprint, started_at=started_at)),
            )
        except RequestValidationError as e:
            errors = e.details.get("errors", [])
            guru.security_logger.log_validation_failure(fingerprint, errors or [e.message])
            content: dict[str, Any] = {"error": e.message}
            if errors:
                content["details"] = errors
            return JSONResponse(content, status_code=400)
        except ClassificationRejectedError as e:
            logger.info(f"Request rejected by classifier: {e.reason}")
            content = {"error": e.message}
            headers: dict[str, str] = {}
            if e.status_code == 429:
                cooldown_ms = gate.bot_cooldown_ms
                content["retryAfterMs"] = cooldown_ms
                headers["Retry-After"] = str(max(1, math.ceil(cooldown_ms / 1000)))
            return JSONResponse(content, status_code=e.status_code, headers=headers)
        except ClientDisconnected:
            logger.info("Client disconnected before the answer was ready; generation cancelled")
            return Response(status_code=499)
        except GuruError as e:
            logger.error(f"❌ Guidance pipeline failed: {e.error_code}: {e.message} {e.details}")
            guru.security_logger.log_pipeline_error(fingerprint, "pipeline", e.error_code)
            increment_errors("pipeline", e.error_code)
            return _fatal()
        except Exception as e:
            logger.exception(f"❌ Unexpected error in /guru/chat: {type(e).__name__}")
            guru.security_logger.log_pipeline_error(fingerprint, "api", type(e).__name__)
            increment_errors("api", type(e).__name__)
            return _fatal()

        response_headers = dict(decision.headers)
        response_headers["X-Retrieval-Degraded"] = "true" if response.retrieval.degraded else "false"
        return StreamingResponse(response.stream(), media_type=STREAM_MEDIA_TYPE, headers=response_headers)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return await guru.health()

    @app.get("/metrics")
    async def metrics() -> Response:
        if not guru.config.metrics_enabled:
            return JSONResponse({"error": "Metrics disabled"}, status_code=404)
        return Response(generate_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app
