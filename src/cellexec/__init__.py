"""Cell execution package.

Runs code submitted from the cells of a UI panel and streams the results
back.  Terminal languages are executed as processes on the host; markup and
front‑end languages are rendered in a sandboxed frame instead.

The top‑level modules include:

* ``config`` – configuration handling for environment variables.
* ``models`` – Pydantic models for language profiles and the wire protocol.
* ``profiles`` – the language profile registry.
* ``executor`` – the process runner and the isolated‑render executor.
* ``service`` – the execution façade used by the rest of an application.
* ``transport`` – event sinks carrying run events to a panel.
* ``cells`` – cell state and event routing on the panel side.
* ``api`` – FastAPI application exposing HTTP endpoints and the panel channel.
"""

from .cells import Cell, CellBusyError, CellManager
from .executor import ExecutionOutcome, IsolatedRenderExecutor, ProcessRunner
from .models import ExecutionMode, LanguageProfile, RunRequest
from .profiles import LanguageRegistry
from .service import ExecutionService

__all__ = [
    "Cell",
    "CellBusyError",
    "CellManager",
    "ExecutionMode",
    "ExecutionOutcome",
    "ExecutionService",
    "IsolatedRenderExecutor",
    "LanguageProfile",
    "LanguageRegistry",
    "ProcessRunner",
    "RunRequest",
]
