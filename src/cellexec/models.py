"""Pydantic models for language profiles and the panel wire protocol.

Three groups of models live here:

* ``LanguageProfile`` – one entry of the language table.  Field aliases
  match the keys used in ``languages.json`` (``command``, ``filename``,
  ``deletefile``, ``templatecode``, ``executionType``).
* Client messages – ``RunRequest`` and ``CancelRequest`` sent by a UI panel.
* Events – ``status``, ``stream``, ``exit``, ``error`` and ``result`` sent
  back to the panel.  Every event may carry the ``requestId`` of the run
  that produced it and the ``index`` of the originating cell.

The HTTP request/response bodies for the one-shot endpoints are defined at
the bottom of the module.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class ExecutionMode(str, Enum):
    """How code for a language is run."""

    TERMINAL = "terminal"
    RENDER_HTML = "iframe-html"
    RENDER_REACT = "iframe-react"
    RENDER_VUE = "iframe-vue"

    @property
    def is_isolated_render(self) -> bool:
        return self is not ExecutionMode.TERMINAL


class LanguageProfile(BaseModel):
    """Execution configuration for one language."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    key: str = ""
    command_template: str = Field(default="", alias="command")
    temp_filename: str = Field(default="", alias="filename")
    extra_files_to_delete: str = Field(default="", alias="deletefile")
    seed_code: str = Field(default="", alias="templatecode")
    execution_mode: ExecutionMode = Field(default=ExecutionMode.TERMINAL, alias="executionType")
    unique_filename: bool = Field(default=True, alias="uniqueFilename")

    @field_validator("execution_mode", mode="before")
    @classmethod
    def _unknown_mode_is_terminal(cls, value: Any) -> Any:
        if isinstance(value, ExecutionMode):
            return value
        if value is None:
            return ExecutionMode.TERMINAL
        known = {mode.value for mode in ExecutionMode}
        text = str(value).strip().lower()
        return text if text in known else ExecutionMode.TERMINAL

    @field_validator("command_template", "temp_filename", "extra_files_to_delete", "seed_code", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def cleanup_targets(self) -> list[str]:
        """Split ``extra_files_to_delete`` into individual paths."""
        return [part.strip() for part in self.extra_files_to_delete.split(",") if part.strip()]


def _new_request_id() -> str:
    return uuid.uuid4().hex


# -- client -> host -----------------------------------------------------------


class RunRequest(BaseModel):
    """A cell asking the host to run its code."""

    model_config = ConfigDict(populate_by_name=True)

    command: Literal["run"] = "run"
    language: Optional[str] = None
    code: str
    command_override: str = Field(default="", alias="execCommand")
    index: str = "0"
    request_id: str = Field(default_factory=_new_request_id, alias="requestId")

    @field_validator("index", mode="before")
    @classmethod
    def _index_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("command_override", mode="before")
    @classmethod
    def _override_none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class CancelRequest(BaseModel):
    """Abort a run that is still in flight."""

    model_config = ConfigDict(populate_by_name=True)

    command: Literal["cancel"] = "cancel"
    request_id: str = Field(..., alias="requestId")


ClientMessage = Annotated[Union[RunRequest, CancelRequest], Field(discriminator="command")]
_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_client_message(data: Any) -> Union[RunRequest, CancelRequest]:
    return _client_message_adapter.validate_python(data)


# -- host -> client -----------------------------------------------------------


class Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: Optional[str] = Field(default=None, alias="requestId")
    index: Optional[str] = None

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StatusEvent(Event):
    kind: Literal["status"] = "status"
    text: str


class StreamEvent(Event):
    """A raw chunk from exactly one of the two output streams."""

    kind: Literal["stream"] = "stream"
    stdout: Optional[str] = None
    stderr: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_origin(self) -> "StreamEvent":
        if (self.stdout is None) == (self.stderr is None):
            raise ValueError("stream event needs exactly one of stdout or stderr")
        return self


class ExitEvent(Event):
    kind: Literal["exit"] = "exit"
    code: Optional[int] = None
    signal: Optional[str] = None
    cancelled: bool = False


class ErrorEvent(Event):
    kind: Literal["error"] = "error"
    text: str


class ResultEvent(Event):
    kind: Literal["result"] = "result"
    index: str
    output: str = ""

    @field_validator("index", mode="before")
    @classmethod
    def _index_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


ServerEvent = Annotated[
    Union[StatusEvent, StreamEvent, ExitEvent, ErrorEvent, ResultEvent],
    Field(discriminator="kind"),
]
_server_event_adapter: TypeAdapter = TypeAdapter(ServerEvent)


def parse_event(data: Any) -> Event:
    return _server_event_adapter.validate_python(data)


# -- one-shot HTTP bodies -----------------------------------------------------


class ExecuteRequest(BaseModel):
    """Request body for a non-streaming execution."""

    model_config = ConfigDict(populate_by_name=True)

    language: Optional[str] = Field(
        default=None,
        description="Language key from the language table. Uses the configured default if omitted.",
    )
    code: str = Field(..., description="Source code to execute.")
    command_override: str = Field(
        default="",
        alias="execCommand",
        description="Command line replacing the language's template. '{file}' expands to the scratch file.",
    )
    index: Optional[str] = Field(default=None, description="Cell index echoed back in result events.")

    @field_validator("index", mode="before")
    @classmethod
    def _index_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ExecuteResponse(BaseModel):
    """Response body for code execution."""

    stdout: str
    stderr: str
    exit_code: Optional[int]
    signal: Optional[str] = None
    succeeded: bool
    cancelled: bool = False
    duration_ms: int


class LanguageInfo(BaseModel):
    """A language as offered to the UI picker."""

    key: str
    command: str
    templatecode: str
    execution_type: ExecutionMode = Field(serialization_alias="executionType")
