from __future__ import annotations

import shlex
import sys

import pytest

from cellexec.executor import ProcessRunner
from cellexec.models import ExecutionMode, LanguageProfile
from cellexec.profiles import LanguageRegistry
from cellexec.service import ExecutionService

# The interpreter running the tests is the one runtime guaranteed to exist.
PYTHON_COMMAND = f"{shlex.quote(sys.executable)} -u {{file}}"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def python_profile() -> LanguageProfile:
    return LanguageProfile(
        key="python",
        command_template=PYTHON_COMMAND,
        temp_filename="sandbox_temp.py",
    )


@pytest.fixture
def registry(python_profile) -> LanguageRegistry:
    return LanguageRegistry(
        {
            "javascript": LanguageProfile(
                key="javascript", command_template="node {file}", temp_filename="sandbox_temp.js"
            ),
            "python": python_profile,
            "html": LanguageProfile(key="html", execution_mode=ExecutionMode.RENDER_HTML),
            "react": LanguageProfile(key="react", execution_mode=ExecutionMode.RENDER_REACT),
        }
    )


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner(timeout=20)


@pytest.fixture
def service(registry, runner, tmp_path) -> ExecutionService:
    return ExecutionService(registry, runner, workspace_root=tmp_path, default_language="python")
