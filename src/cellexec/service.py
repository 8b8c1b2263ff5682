"""Execution service.

:class:`ExecutionService` is the single entry point the rest of an
application uses to run code: panel message handlers, batch documentation
generators, automatic fix loops.  Callers hand over code and a language and
get an :class:`ExecutionOutcome` back; how the process is started stays
inside the executor package.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Optional

from .executor import ExecutionOutcome, ProcessRunner
from .models import ErrorEvent, ResultEvent
from .profiles import LanguageRegistry
from .transport import EventSink, TaggedSink, emit

logger = logging.getLogger(__name__)


class ExecutionService:
    def __init__(
        self,
        registry: LanguageRegistry,
        runner: Optional[ProcessRunner] = None,
        workspace_root: str | Path | None = None,
        default_language: str = "javascript",
    ) -> None:
        self.registry = registry
        self.runner = runner or ProcessRunner()
        self.workspace_root = Path(workspace_root) if workspace_root else None
        self.default_language = default_language

    def working_directory(self, workspace: str | Path | None = None) -> Path:
        """The open project root if there is one, else the system temp dir."""
        for candidate in (workspace, self.workspace_root):
            if candidate and Path(candidate).is_dir():
                return Path(candidate)
        return Path(tempfile.gettempdir())

    async def execute(
        self,
        code: str,
        language: Optional[str] = None,
        command_override: str = "",
        sink: Optional[EventSink] = None,
        request_id: Optional[str] = None,
        index: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
        workspace: str | Path | None = None,
    ) -> ExecutionOutcome:
        """Run ``code`` and return its outcome.

        Events sent to ``sink`` carry ``request_id`` and ``index`` so the
        receiving panel can route them to the cell that asked for the run.
        """
        profile = self.registry.resolve(language or self.default_language)
        tagged = TaggedSink(sink, request_id, index) if sink is not None else None

        if profile.execution_mode.is_isolated_render:
            message = f"{profile.key} is rendered in the panel ({profile.execution_mode.value}); nothing to run on the host"
            await emit(tagged, ErrorEvent(text=message))
            return ExecutionOutcome.failure(message)

        working_dir = self.working_directory(workspace)
        logger.info(
            "Executing %s code (request=%s, index=%s) in %s", profile.key, request_id, index, working_dir
        )
        return await self.runner.run(working_dir, profile, code, command_override, tagged, cancel)

    @staticmethod
    def output_for(outcome: ExecutionOutcome, expected_output: str = "") -> str:
        """Text to show for a finished run.

        The real output when the run succeeded; otherwise the expected output
        generated alongside the example, or a failure note.
        """
        if outcome.succeeded:
            return outcome.stdout
        if expected_output:
            return expected_output
        if outcome.error:
            detail = outcome.error
        elif outcome.stderr:
            detail = outcome.stderr
        elif outcome.signal:
            detail = f"Signal: {outcome.signal}"
        else:
            detail = f"Exit code: {outcome.exit_code}"
        return f"Execution failed: {detail}"

    async def run_for_result(
        self,
        code: str,
        index: str,
        language: Optional[str] = None,
        command_override: str = "",
        expected_output: str = "",
        workspace: str | Path | None = None,
    ) -> ResultEvent:
        outcome = await self.execute(code, language, command_override, index=index, workspace=workspace)
        return ResultEvent(index=index, output=self.output_for(outcome, expected_output))
