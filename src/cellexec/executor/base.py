"""
Base types shared by the execution backends.

This module defines the :class:`ExecutionOutcome` returned for every run,
the exceptions used inside the runner to abort a run before any output is
produced, and the helpers that turn a language profile into a concrete
scratch file name and command line.

Commands are modelled as an argument vector.  A template such as
``"node {file}"`` is split with :mod:`shlex` and the ``{file}`` placeholder
is substituted token by token, so the command is executed without a shell
and no part of it is re‑interpreted.  Templates that genuinely need shell
syntax (``gcc {file} -o {stem}.out && ./{stem}.out``) are detected and run
through the shell with the generated file name quoted.
"""

from __future__ import annotations

import re
import shlex
import uuid
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import List, Optional

from ..models import LanguageProfile

FILE_PLACEHOLDER = "{file}"
STEM_PLACEHOLDER = "{stem}"

# Used when neither the override nor the profile provides a command.
DEFAULT_COMMAND = "node {file}"

_DEFAULT_FILENAMES = {
    "typescript": "sandbox_temp.ts",
}
_FALLBACK_FILENAME = "sandbox_temp.js"

_SHELL_SYNTAX = re.compile(r"[|&;<>`$\n]")


class ExecutionError(Exception):
    """A run was aborted before the user's code could produce output."""


class WriteFailure(ExecutionError):
    """The scratch file could not be written."""


class SpawnFailure(ExecutionError):
    """The process could not be started."""


@dataclass
class ExecutionOutcome:
    """Result of running a code snippet.

    Attributes
    ----------
    stdout: str
        Standard output aggregated over the whole run.
    stderr: str
        Standard error aggregated over the whole run.
    exit_code: int, optional
        Exit status of the process.  ``None`` when the process was
        terminated by a signal or never started.
    signal: str, optional
        Name of the terminating signal (``"SIGKILL"``), if any.
    duration_ms: int
        Wall‑clock time of the run in milliseconds.
    cancelled: bool
        The run was aborted by a cancel request or the timeout.
    timed_out: bool
        The run was aborted because the timeout elapsed.
    error: str, optional
        Why the run could not start (write or spawn failure).
    """

    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    signal: Optional[str] = None
    duration_ms: int = 0
    cancelled: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @classmethod
    def failure(cls, error: str, duration_ms: int = 0) -> "ExecutionOutcome":
        return cls(stderr=error, error=error, duration_ms=duration_ms)


@dataclass
class CommandLine:
    """A resolved command ready to spawn."""

    argv: List[str] = field(default_factory=list)
    shell: Optional[str] = None

    @property
    def uses_shell(self) -> bool:
        return self.shell is not None

    @property
    def display(self) -> str:
        if self.shell is not None:
            return self.shell
        return shlex.join(self.argv)


def default_filename(language: str) -> str:
    return _DEFAULT_FILENAMES.get(language, _FALLBACK_FILENAME)


def scratch_filename(profile: LanguageProfile, token: Optional[str] = None) -> str:
    """Name of the file the code is written to for one run.

    Profiles with ``unique_filename`` get ``token`` (a fresh random one when
    omitted) appended to the stem, so concurrent runs of the same language
    in the same directory never share a file.
    """
    name = profile.temp_filename.strip() or default_filename(profile.key)
    if not profile.unique_filename:
        return name
    token = token or uuid.uuid4().hex[:12]
    path = PurePath(name)
    return str(path.with_name(f"{path.stem}_{token}{path.suffix}"))


def expand_placeholders(text: str, filename: str, quote: bool = False) -> str:
    stem = PurePath(filename).stem
    if quote:
        filename, stem = shlex.quote(filename), shlex.quote(stem)
    return text.replace(FILE_PLACEHOLDER, filename).replace(STEM_PLACEHOLDER, stem)


def build_command(template: str, filename: str) -> CommandLine:
    """Turn a command template into a :class:`CommandLine`.

    Parameters
    ----------
    template: str
        Command with ``{file}``/``{stem}`` placeholders.  Empty means
        :data:`DEFAULT_COMMAND`.
    filename: str
        Scratch file name substituted for ``{file}``.  When the template has
        no ``{file}`` placeholder it is appended as the last argument.

    Returns
    -------
    CommandLine
        An argument vector, or a shell string when the template relies on
        shell syntax.
    """
    template = template.strip() or DEFAULT_COMMAND
    has_placeholder = FILE_PLACEHOLDER in template

    if _SHELL_SYNTAX.search(template):
        command = expand_placeholders(template, filename, quote=True)
        if not has_placeholder:
            command = f"{command} {shlex.quote(filename)}"
        return CommandLine(shell=command)

    try:
        tokens = shlex.split(template)
    except ValueError:
        # Unbalanced quotes; let the shell report it.
        command = expand_placeholders(template, filename, quote=True)
        return CommandLine(shell=command if has_placeholder else f"{command} {shlex.quote(filename)}")

    argv = [expand_placeholders(token, filename) for token in tokens]
    if not has_placeholder:
        argv.append(filename)
    return CommandLine(argv=argv)


def resolve_command(profile: LanguageProfile, filename: str, command_override: str = "") -> CommandLine:
    """Pick the override when given, otherwise the profile's template."""
    template = command_override.strip() if command_override and command_override.strip() else profile.command_template
    return build_command(template, filename)
