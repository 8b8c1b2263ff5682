"""
Process runner for terminal‑mode languages.

The runner writes the user's code to a scratch file in the working
directory, starts the profile's command there, forwards every stdout/stderr
chunk to the event sink as it arrives, and removes the scratch file plus any
build artefacts named by the profile once the process is gone.

Each process is started in its own session so that a timeout or cancel
request can kill the whole process group, including compilers or
interpreters started by a shell command.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shutil
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from ..models import ErrorEvent, ExitEvent, LanguageProfile, StatusEvent, StreamEvent
from ..transport import EventSink, emit
from .base import (
    CommandLine,
    ExecutionOutcome,
    SpawnFailure,
    WriteFailure,
    expand_placeholders,
    resolve_command,
    scratch_filename,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class _OutputBuffer:
    """Aggregated output of one stream, capped at ``limit`` bytes."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.size = 0
        self.parts: List[str] = []
        self.truncated = False

    def append(self, text: str) -> None:
        if self.truncated:
            return
        size = len(text.encode("utf-8"))
        if self.size + size > self.limit:
            self.truncated = True
            return
        self.size += size
        self.parts.append(text)

    def text(self) -> str:
        value = "".join(self.parts)
        if self.truncated:
            value += f"\n[output truncated after {self.size} bytes]"
        return value


def _split_returncode(returncode: Optional[int]) -> Tuple[Optional[int], Optional[str]]:
    """asyncio reports death by signal as a negative return code."""
    if returncode is None:
        return None, None
    if returncode < 0:
        try:
            return None, signal.Signals(-returncode).name
        except ValueError:
            return None, f"SIG{-returncode}"
    return returncode, None


def _kill_tree(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        if sys.platform != "win32":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass
    except OSError as exc:
        logger.warning("Unable to kill process group %s: %s", process.pid, exc)
        try:
            process.kill()
        except ProcessLookupError:
            pass


class ProcessRunner:
    """Run code for terminal‑mode language profiles."""

    def __init__(
        self,
        timeout: Optional[float] = 30,
        max_output_bytes: int = 40 * 1024 * 1024,
        allow_command_override: bool = True,
    ) -> None:
        """
        Parameters
        ----------
        timeout: float, optional
            Maximum wall‑clock time (in seconds) a run may take.  When it
            elapses the process group is killed and the outcome is marked
            as timed out.  ``None`` leaves runs unbounded.
        max_output_bytes: int, optional
            How much of each stream is kept in the outcome.  Output past
            this limit is still streamed to the sink.
        allow_command_override: bool, optional
            Whether a caller supplied command line may replace the
            profile's template.
        """
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.allow_command_override = allow_command_override

    async def run(
        self,
        working_dir: Path,
        profile: LanguageProfile,
        code: str,
        command_override: str = "",
        sink: Optional[EventSink] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ExecutionOutcome:
        """Run ``code`` in ``working_dir`` using ``profile``.

        Never raises for failures of the user's code.  Write and spawn
        failures are reported as an ``error`` event and a failed outcome;
        every started process produces exactly one ``exit`` event.
        """
        start_time = time.perf_counter()
        working_dir = Path(working_dir)
        filename = scratch_filename(profile)
        source_path = working_dir / filename

        def elapsed() -> int:
            return int((time.perf_counter() - start_time) * 1000)

        try:
            self._write_source(source_path, code)
        except WriteFailure as exc:
            logger.warning("Write failure for %s: %s", source_path, exc)
            await emit(sink, ErrorEvent(text=str(exc)))
            return ExecutionOutcome.failure(str(exc), elapsed())

        try:
            override = command_override if self.allow_command_override else ""
            command = resolve_command(profile, filename, override)
            await emit(sink, StatusEvent(text=f"Running: {command.display}"))

            try:
                process = await self._spawn(command, working_dir)
            except SpawnFailure as exc:
                logger.warning("Spawn failure for %r: %s", command.display, exc)
                await emit(sink, ErrorEvent(text=str(exc)))
                return ExecutionOutcome.failure(str(exc), elapsed())

            stdout, stderr, timed_out, cancelled = await self._communicate(process, sink, cancel)
            exit_code, sig = _split_returncode(process.returncode)
            stderr_text = stderr.text()
            if timed_out:
                stderr_text += f"\nExecution timed out after {self.timeout:g} seconds."

            await emit(sink, ExitEvent(code=exit_code, signal=sig, cancelled=cancelled or timed_out))
            logger.info(
                "Run finished: command=%r exit_code=%s signal=%s cancelled=%s duration_ms=%s",
                command.display,
                exit_code,
                sig,
                cancelled or timed_out,
                elapsed(),
            )
            return ExecutionOutcome(
                stdout=stdout.text(),
                stderr=stderr_text,
                exit_code=exit_code,
                signal=sig,
                duration_ms=elapsed(),
                cancelled=cancelled or timed_out,
                timed_out=timed_out,
            )
        finally:
            self._cleanup(working_dir, source_path, profile, filename)

    def _write_source(self, source_path: Path, code: str) -> None:
        try:
            source_path.parent.mkdir(parents=True, exist_ok=True)
            source_path.write_text(code, encoding="utf-8")
        except OSError as exc:
            raise WriteFailure(f"Unable to write temp file {source_path}: {exc}") from exc

    async def _spawn(self, command: CommandLine, working_dir: Path) -> asyncio.subprocess.Process:
        kwargs = dict(
            cwd=str(working_dir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        if sys.platform != "win32":
            kwargs["start_new_session"] = True
        try:
            if command.uses_shell:
                return await asyncio.create_subprocess_shell(command.shell, **kwargs)
            if not command.argv:
                raise SpawnFailure("Unable to start process: empty command")
            return await asyncio.create_subprocess_exec(*command.argv, **kwargs)
        except OSError as exc:
            raise SpawnFailure(f"Unable to start process {command.display!r}: {exc}") from exc

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        origin: str,
        buffer: _OutputBuffer,
        sink: Optional[EventSink],
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                buffer.append(text)
                await emit(sink, StreamEvent(**{origin: text}))
            if not chunk:
                return

    async def _drain(
        self,
        process: asyncio.subprocess.Process,
        sink: Optional[EventSink],
        stdout: _OutputBuffer,
        stderr: _OutputBuffer,
    ) -> None:
        await asyncio.gather(
            self._pump(process.stdout, "stdout", stdout, sink),
            self._pump(process.stderr, "stderr", stderr, sink),
        )
        await process.wait()

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        sink: Optional[EventSink],
        cancel: Optional[asyncio.Event],
    ) -> Tuple[_OutputBuffer, _OutputBuffer, bool, bool]:
        """Stream output until exit, timeout or cancel.

        Returns the two buffers and the ``(timed_out, cancelled)`` flags.
        """
        stdout = _OutputBuffer(self.max_output_bytes)
        stderr = _OutputBuffer(self.max_output_bytes)
        finished = asyncio.ensure_future(self._drain(process, sink, stdout, stderr))
        watchers = {finished}
        cancel_wait = None
        if cancel is not None:
            cancel_wait = asyncio.ensure_future(cancel.wait())
            watchers.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(watchers, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            _kill_tree(process)
            finished.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if finished in done:
            finished.result()
            return stdout, stderr, False, False

        cancelled = cancel_wait is not None and cancel_wait in done
        logger.info("Killing process %s (%s)", process.pid, "cancelled" if cancelled else "timed out")
        _kill_tree(process)
        await finished
        return stdout, stderr, not cancelled, cancelled

    def _cleanup(self, working_dir: Path, source_path: Path, profile: LanguageProfile, filename: str) -> None:
        targets = [source_path]
        for target in profile.cleanup_targets():
            path = Path(expand_placeholders(target, filename))
            targets.append(path if path.is_absolute() else working_dir / path)
        for path in targets:
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Cleanup failure for %s: %s", path, exc)
