"""Configuration loader.

The execution host reads its configuration from environment variables so the
same code can back an editor panel on a developer machine or run as a small
shared service.  Reasonable defaults are provided so that local development
works out of the box.

Environment variables:

``CELLEXEC_API_KEY``
    Shared secret used to authenticate incoming requests.  Clients send it in
    the ``x-api-key`` header (or the ``apiKey`` query parameter for the
    WebSocket channel).  Empty disables authentication.

``CELLEXEC_WORKSPACE_ROOT``
    The active project root.  Scratch files are written here and processes
    run with it as their working directory.  When unset, or when the
    directory does not exist, the system temp directory is used.

``CELLEXEC_LANG_CONFIG``
    Path to a JSON language table that replaces the bundled one.

``CELLEXEC_DEFAULT_LANGUAGE``
    Language used when a request does not name one.  Defaults to
    ``javascript``.

``CELLEXEC_MAX_EXECUTION_SECONDS``
    Wall‑clock timeout (in seconds) for a single run.  Default is 30; ``0``
    leaves runs unbounded.

``CELLEXEC_MAX_OUTPUT_MB``
    Amount of stdout (and, separately, stderr) aggregated per run.  Output
    beyond this is still streamed but not kept.  Default is 40.

``CELLEXEC_ALLOW_COMMAND_OVERRIDE``
    If ``true``, the command line typed by the user in a cell replaces the
    language's command template.  Defaults to ``true``.

``CELLEXEC_LOG_LEVEL``
    Level of the ``cellexec`` logger and the Uvicorn server: one of ``DEBUG``,
    ``INFO``, ``WARNING``, ``ERROR`` or ``CRITICAL``.  Defaults to ``INFO``.

``PORT``
    The port on which the API server listens.  Defaults to 8080.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y"}


def _int_var(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {val}")


@dataclass
class Config:
    """Centralised configuration object."""

    api_key: str
    workspace_root: str | None
    lang_config_path: str | None
    default_language: str
    max_execution_seconds: int
    max_output_mb: int
    allow_command_override: bool
    log_level: str
    port: int

    @property
    def timeout(self) -> float | None:
        """Run timeout in seconds, ``None`` when runs are unbounded."""
        if self.max_execution_seconds <= 0:
            return None
        return float(self.max_execution_seconds)

    @property
    def max_output_bytes(self) -> int:
        return self.max_output_mb * 1024 * 1024

    @classmethod
    def load(cls) -> "Config":
        # API key may be empty in local development but should be set when shared.
        api_key = os.getenv("CELLEXEC_API_KEY", "")

        workspace_root = os.getenv("CELLEXEC_WORKSPACE_ROOT") or None
        lang_config_path = os.getenv("CELLEXEC_LANG_CONFIG") or None
        default_language = os.getenv("CELLEXEC_DEFAULT_LANGUAGE", "javascript").strip().lower() or "javascript"

        max_execution_seconds = _int_var("CELLEXEC_MAX_EXECUTION_SECONDS", 30)
        if max_execution_seconds < 0:
            raise ValueError(
                f"Invalid CELLEXEC_MAX_EXECUTION_SECONDS: {max_execution_seconds}. Use 0 to disable the timeout."
            )
        max_output_mb = _int_var("CELLEXEC_MAX_OUTPUT_MB", 40)
        if max_output_mb <= 0:
            raise ValueError(f"Invalid CELLEXEC_MAX_OUTPUT_MB: {max_output_mb}")

        allow_command_override = _parse_bool(os.getenv("CELLEXEC_ALLOW_COMMAND_OVERRIDE"), True)
        log_level = os.getenv("CELLEXEC_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid CELLEXEC_LOG_LEVEL: {log_level}. Expected one of {', '.join(LOG_LEVELS)}")
        port = _int_var("PORT", 8080)

        return cls(
            api_key=api_key,
            workspace_root=workspace_root,
            lang_config_path=lang_config_path,
            default_language=default_language,
            max_execution_seconds=max_execution_seconds,
            max_output_mb=max_output_mb,
            allow_command_override=allow_command_override,
            log_level=log_level,
            port=port,
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the API to load configuration.

        This wrapper calls :meth:`load` to construct the configuration.
        It exists to provide a more intuitive name when consumed in
        application code.
        """
        return cls.load()
