"""
WebSocket panel channel.

One :class:`PanelSession` serves one open panel.  Inbound ``run`` messages
start a run as an independent task, so a panel can have several runs in
flight; ``cancel`` messages abort one of them.  All events of all runs go
back over the same socket, each stamped with its ``requestId``.

When the panel goes away every outstanding run is cancelled, which kills its
process and removes its scratch files.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from ..models import CancelRequest, ErrorEvent, RunRequest, parse_client_message
from ..service import ExecutionService
from ..transport import WebSocketSink, emit

logger = logging.getLogger("cellexec")


class PanelSession:
    def __init__(self, service: ExecutionService, sink: WebSocketSink) -> None:
        self.service = service
        self.sink = sink
        self.tasks: Dict[str, asyncio.Task] = {}
        self.cancels: Dict[str, asyncio.Event] = {}

    async def handle(self, raw: Any) -> None:
        """Act on one message received from the panel."""
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("[/ws] Message is not valid JSON")
                await emit(self.sink, ErrorEvent(text="Invalid message: not JSON"))
                return
        try:
            message = parse_client_message(raw)
        except ValidationError as exc:
            logger.warning("[/ws] Invalid message: %s", exc.errors(include_url=False))
            await emit(self.sink, ErrorEvent(text=f"Invalid message: {exc.error_count()} validation error(s)"))
            return

        if isinstance(message, CancelRequest):
            self.cancel(message.request_id)
        elif isinstance(message, RunRequest):
            await self.start(message)

    async def start(self, request: RunRequest) -> None:
        if request.request_id in self.tasks:
            await emit(
                self.sink,
                ErrorEvent(text="Duplicate requestId", request_id=request.request_id, index=request.index),
            )
            return
        logger.info(
            "[/ws] Run requested: language=%s index=%s request=%s",
            request.language,
            request.index,
            request.request_id,
        )
        cancel = asyncio.Event()
        self.cancels[request.request_id] = cancel
        task = asyncio.create_task(self._run(request, cancel))
        self.tasks[request.request_id] = task

    async def _run(self, request: RunRequest, cancel: asyncio.Event) -> None:
        try:
            await self.service.execute(
                request.code,
                language=request.language,
                command_override=request.command_override,
                sink=self.sink,
                request_id=request.request_id,
                index=request.index,
                cancel=cancel,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("[/ws] Unhandled error during execution: %s", exc)
            await emit(
                self.sink,
                ErrorEvent(text="Execution error", request_id=request.request_id, index=request.index),
            )
        finally:
            self.tasks.pop(request.request_id, None)
            self.cancels.pop(request.request_id, None)

    def cancel(self, request_id: str) -> bool:
        cancel = self.cancels.get(request_id)
        if cancel is None:
            logger.info("[/ws] Cancel for unknown request %s", request_id)
            return False
        cancel.set()
        return True

    async def close(self) -> None:
        """Abort every run still in flight and wait for their cleanup."""
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
