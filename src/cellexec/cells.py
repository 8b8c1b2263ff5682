"""Cell bookkeeping for a UI panel.

A panel shows any number of code cells.  Each one owns an output buffer and
a run control that goes ``idle -> running -> idle``.  Run requests leave the
panel with a fresh ``requestId``; every event the host sends back for that
run carries the same id, and the manager routes on it.  Several cells can
therefore run at the same time without their output getting mixed up.

Cells of isolated‑render languages never talk to the host: pressing run
rebuilds the document of the cell's frame in place.

The manager is independent of how messages travel.  ``post`` is called with
each outgoing request as a plain dict, and :meth:`CellManager.dispatch`
accepts each incoming event dict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .executor.render import IsolatedRenderExecutor, RenderedDocument
from .models import ErrorEvent, Event, ExitEvent, ResultEvent, RunRequest, StatusEvent, StreamEvent, parse_event
from .profiles import LanguageRegistry

logger = logging.getLogger(__name__)

FALLBACK_DIVIDER = "\n----- live run failed; showing expected output -----\n"


class CellBusyError(RuntimeError):
    """The cell already has a run in flight."""


class UnknownCellError(KeyError):
    pass


@dataclass
class RenderFrame:
    """The embedded browsing context of a render‑mode cell."""

    document: str = ""
    sandbox: str = ""
    revision: int = 0

    def update(self, rendered: RenderedDocument) -> None:
        self.document = rendered.document
        self.sandbox = rendered.sandbox
        self.revision += 1


@dataclass
class Cell:
    index: str
    language: str
    code: str = ""
    initial_code: str = ""
    command_override: str = ""
    fallback_output: str = ""
    is_running: bool = False
    request_id: Optional[str] = None
    frame: Optional[RenderFrame] = None
    _chunks: List[str] = field(default_factory=list, repr=False)

    @property
    def output_buffer(self) -> str:
        return "".join(self._chunks)

    def append(self, text: str) -> None:
        if text:
            self._chunks.append(str(text))

    def clear(self) -> None:
        self._chunks.clear()


class CellManager:
    """Track the cells of one panel and route host events to them."""

    def __init__(
        self,
        registry: LanguageRegistry,
        renderer: Optional[IsolatedRenderExecutor] = None,
        post: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        self.registry = registry
        self.renderer = renderer or IsolatedRenderExecutor()
        self.post = post
        self.cells: Dict[str, Cell] = {}
        self._routes: Dict[str, str] = {}

    # -- lifecycle -----------------------------------------------------------

    def register(
        self,
        index: Any,
        code: str = "",
        language: Optional[str] = None,
        fallback_output: str = "",
    ) -> Cell:
        """Create the cell for ``index``; an existing cell is returned as is."""
        index = str(index)
        if index in self.cells:
            return self.cells[index]
        profile = self.registry.resolve(language)
        cell = Cell(
            index=index,
            language=profile.key,
            code=code or profile.seed_code,
            initial_code=code,
            command_override=profile.command_template,
            fallback_output=fallback_output,
        )
        self.cells[index] = cell
        return cell

    def open_modal(self, index: Any) -> Cell:
        """Clone a cell into an enlarged modal copy, ``modal-<index>``."""
        source = self.get(index)
        clone = self.register(
            f"modal-{source.index}",
            code=source.initial_code,
            language=source.language,
            fallback_output=source.fallback_output,
        )
        clone.command_override = source.command_override
        return clone

    def destroy(self, index: Any) -> None:
        """Forget a cell.  Events still in flight for it are dropped."""
        cell = self.cells.pop(str(index), None)
        if cell is not None and cell.request_id is not None:
            self._routes.pop(cell.request_id, None)

    def get(self, index: Any) -> Cell:
        try:
            return self.cells[str(index)]
        except KeyError:
            raise UnknownCellError(str(index)) from None

    def load_template(self, index: Any) -> Cell:
        cell = self.get(index)
        cell.code = cell.initial_code or self.registry.resolve(cell.language).seed_code
        return cell

    def select_language(self, index: Any, language: str) -> Cell:
        cell = self.get(index)
        profile = self.registry.resolve(language)
        cell.language = profile.key
        cell.command_override = profile.command_template
        return cell

    # -- running -------------------------------------------------------------

    def run(self, index: Any, code: Optional[str] = None) -> Optional[RunRequest]:
        """Start a run of cell ``index``.

        Returns the request that was posted to the host, or ``None`` for
        isolated‑render languages, which are rendered locally instead.
        """
        cell = self.get(index)
        if code is not None:
            cell.code = code
        profile = self.registry.resolve(cell.language)

        if profile.execution_mode.is_isolated_render:
            rendered = self.renderer.render(profile.execution_mode, cell.code)
            if cell.frame is None:
                cell.frame = RenderFrame()
            cell.frame.update(rendered)
            return None

        if cell.is_running:
            raise CellBusyError(f"cell {cell.index} is already running")

        request = RunRequest(
            language=cell.language,
            code=cell.code,
            command_override=cell.command_override,
            index=cell.index,
        )
        cell.clear()
        cell.is_running = True
        cell.request_id = request.request_id
        self._routes[request.request_id] = cell.index
        if self.post is not None:
            self.post(request.model_dump(by_alias=True))
        return request

    def running(self) -> List[Cell]:
        return [cell for cell in self.cells.values() if cell.is_running]

    # -- inbound events ------------------------------------------------------

    def dispatch(self, message: Any) -> Optional[Cell]:
        """Apply one host event.  Returns the cell it landed in, if any."""
        if isinstance(message, Event):
            event = message
        else:
            try:
                event = parse_event(message)
            except ValidationError as exc:
                logger.debug("Ignoring malformed event %r: %s", message, exc)
                return None

        if isinstance(event, ResultEvent):
            cell = self.cells.get(event.index)
            if cell is None:
                logger.debug("Dropping result for unknown cell %s", event.index)
                return None
            cell.append(event.output)
            # A streamed run in flight keeps its route.
            if cell.request_id is None:
                cell.is_running = False
            return cell

        cell = self._route(event)
        if cell is None:
            return None

        if isinstance(event, StreamEvent):
            cell.append(event.stdout if event.stdout is not None else event.stderr)
        elif isinstance(event, StatusEvent):
            cell.append(f"[status] {event.text}\n")
        elif isinstance(event, ExitEvent):
            cell.append(f"\n[process exited, code={event.code}, signal={event.signal}]\n")
            self._finish(cell, failed=event.code != 0)
        elif isinstance(event, ErrorEvent):
            cell.append(f"[error] {event.text}\n")
            self._finish(cell, failed=True)
        return cell

    def _route(self, event: Event) -> Optional[Cell]:
        index = self._routes.get(event.request_id) if event.request_id else None
        cell = self.cells.get(index) if index is not None else None
        if cell is None or cell.request_id != event.request_id:
            logger.debug("Dropping stale %s event for request %s", getattr(event, "kind", "?"), event.request_id)
            return None
        return cell

    def _finish(self, cell: Cell, failed: bool) -> None:
        if cell.request_id is not None:
            self._routes.pop(cell.request_id, None)
        cell.request_id = None
        cell.is_running = False
        if failed and cell.fallback_output:
            cell.append(FALLBACK_DIVIDER)
            cell.append(cell.fallback_output)
