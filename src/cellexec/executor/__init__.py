"""
Execution backends.

Terminal‑mode languages run through :class:`ProcessRunner`, which writes the
code to a scratch file, starts the command from the language profile and
streams its output.  Markup and front‑end languages never reach a process:
:class:`IsolatedRenderExecutor` turns their code into a document rendered in
a sandboxed frame.
"""

from .base import (
    CommandLine,
    ExecutionError,
    ExecutionOutcome,
    SpawnFailure,
    WriteFailure,
    build_command,
    resolve_command,
    scratch_filename,
)
from .render import IsolatedRenderExecutor, RenderedDocument
from .runner import ProcessRunner

__all__ = [
    "CommandLine",
    "ExecutionError",
    "ExecutionOutcome",
    "IsolatedRenderExecutor",
    "ProcessRunner",
    "RenderedDocument",
    "SpawnFailure",
    "WriteFailure",
    "build_command",
    "resolve_command",
    "scratch_filename",
]
