"""
FastAPI application for the cell execution host.

This module configures the FastAPI application, registers the panel
WebSocket channel and the one‑shot execution routes, and enforces
authentication via an API key when one is configured.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from ..config import Config
from ..executor import ProcessRunner
from ..models import ExecuteRequest, ExecuteResponse, LanguageInfo, ResultEvent
from ..profiles import LanguageRegistry
from ..service import ExecutionService
from ..transport import WebSocketSink
from .panel import PanelSession


logger = logging.getLogger("cellexec")

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[cellexec] %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


config = Config.from_env()

logger.setLevel(getattr(logging, config.log_level, logging.INFO))

logger.info(
    "Loaded config: workspace_root=%s, lang_config=%s, default_language=%s, max_exec=%s",
    config.workspace_root,
    config.lang_config_path or "bundled",
    config.default_language,
    config.max_execution_seconds,
)

registry = LanguageRegistry.load(config.lang_config_path)

service = ExecutionService(
    registry,
    ProcessRunner(
        timeout=config.timeout,
        max_output_bytes=config.max_output_bytes,
        allow_command_override=config.allow_command_override,
    ),
    workspace_root=config.workspace_root,
    default_language=config.default_language,
)


app = FastAPI(title="Cell Execution Service", version="0.1.0")


@app.middleware("http")
async def authenticate(request, call_next):
    """Middleware to enforce API key authentication on all requests."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")

    logger.info("Incoming request: %s %s from %s", method, path, client)

    if config.api_key:
        provided_key = request.headers.get("x-api-key")
        if provided_key != config.api_key:
            logger.warning("Invalid API key for %s %s from %s", method, path, client)
            return JSONResponse(status_code=401, content={"detail": "Invalid API key"})

    response = await call_next(request)
    logger.info("Response: %s %s -> %s", method, path, response.status_code)
    return response


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.get("/v1/languages", response_model=List[LanguageInfo])
async def list_languages() -> List[LanguageInfo]:
    """Languages offered by the host, for the panel's language picker."""
    return [
        LanguageInfo(
            key=profile.key,
            command=profile.command_template,
            templatecode=profile.seed_code,
            execution_type=profile.execution_mode,
        )
        for profile in registry.profiles()
    ]


def _terminal_language(language: str | None) -> str:
    profile = registry.resolve(language or config.default_language)
    if language and language not in registry:
        logger.info("Unknown language %s; using the default profile %s", language, profile.key)
    if profile.execution_mode.is_isolated_render:
        raise HTTPException(
            status_code=400,
            detail=f"Language {profile.key} is rendered in the panel and cannot be executed on the host",
        )
    return profile.key


@app.post("/exec", response_model=ExecuteResponse)
async def exec_root(req: ExecuteRequest) -> ExecuteResponse:
    """Run code and return the aggregated result without streaming."""
    language = _terminal_language(req.language)
    logger.info("[/exec] Running %s code (index=%s)", language, req.index)

    try:
        outcome = await service.execute(req.code, language, req.command_override, index=req.index)
    except Exception as exc:
        logger.exception("[/exec] Unhandled error during execution: %s", exc)
        raise HTTPException(status_code=500, detail="Execution error")

    logger.info(
        "[/exec] Execution finished: exit_code=%s, signal=%s, duration_ms=%s",
        outcome.exit_code,
        outcome.signal,
        outcome.duration_ms,
    )
    return ExecuteResponse(
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        exit_code=outcome.exit_code,
        signal=outcome.signal,
        succeeded=outcome.succeeded,
        cancelled=outcome.cancelled,
        duration_ms=outcome.duration_ms,
    )


@app.post("/v1/result", response_model=ResultEvent, response_model_by_alias=True)
async def exec_result(req: ExecuteRequest) -> ResultEvent:
    """Single-shot variant: one ``result`` event holding the final output."""
    language = _terminal_language(req.language)
    index = req.index or "0"
    try:
        return await service.run_for_result(req.code, index, language, req.command_override)
    except Exception as exc:
        logger.exception("[/v1/result] Unhandled error during execution: %s", exc)
        raise HTTPException(status_code=500, detail="Execution error")


@app.websocket("/ws")
async def panel_channel(websocket: WebSocket) -> None:
    """Full-duplex channel of one open panel."""
    if config.api_key:
        provided_key = websocket.headers.get("x-api-key") or websocket.query_params.get("apiKey")
        if provided_key != config.api_key:
            logger.warning("Invalid API key for websocket from %s", getattr(websocket.client, "host", "unknown"))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    session = PanelSession(service, WebSocketSink(websocket))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            await session.handle(raw)
    except WebSocketDisconnect:
        logger.info("[/ws] Panel disconnected; cancelling %d run(s)", len(session.tasks))
    finally:
        await session.close()
