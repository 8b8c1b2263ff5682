"""
Tests for the process runner.

These run real processes with the interpreter executing the test suite, so
they need no other toolchain.  The JavaScript scenarios are skipped when
``node`` is not installed.
"""

from __future__ import annotations

import asyncio
import shutil
import sys
import time

import pytest

from cellexec.executor import ProcessRunner
from cellexec.models import ErrorEvent, ExitEvent, LanguageProfile, StatusEvent, StreamEvent
from cellexec.transport import CollectingSink

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="signals and process groups are POSIX only")
needs_node = pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")


def _events(sink, kind):
    return [event for event in sink.events if isinstance(event, kind)]


@pytest.mark.anyio
async def test_successful_run_streams_and_exits_once(runner, python_profile, tmp_path):
    sink = CollectingSink()
    outcome = await runner.run(tmp_path, python_profile, "print(1 + 1)", sink=sink)

    assert outcome.succeeded
    assert outcome.stdout == "2\n"
    assert outcome.exit_code == 0
    assert outcome.signal is None
    assert isinstance(sink.events[0], StatusEvent)
    assert "sandbox_temp_" in sink.events[0].text
    assert isinstance(sink.events[-1], ExitEvent)
    assert len(_events(sink, ExitEvent)) == 1
    assert "".join(event.stdout for event in _events(sink, StreamEvent) if event.stdout) == "2\n"


@pytest.mark.anyio
async def test_failing_run_reports_stderr_without_raising(runner, python_profile, tmp_path):
    sink = CollectingSink()
    outcome = await runner.run(tmp_path, python_profile, "raise SystemExit('boom')", sink=sink)

    assert not outcome.succeeded
    assert outcome.exit_code == 1
    assert "boom" in outcome.stderr
    assert any(event.stderr and "boom" in event.stderr for event in _events(sink, StreamEvent))
    assert sink.events[-1] == ExitEvent(code=1, signal=None)


@pytest.mark.anyio
async def test_stdout_and_stderr_stay_separate(runner, python_profile, tmp_path):
    code = "import sys\nprint('out')\nprint('err', file=sys.stderr)\n"
    outcome = await runner.run(tmp_path, python_profile, code)
    assert outcome.stdout == "out\n"
    assert outcome.stderr == "err\n"


@pytest.mark.anyio
async def test_scratch_and_extra_files_are_removed(runner, python_profile, tmp_path):
    profile = python_profile.model_copy(update={"extra_files_to_delete": "artifact.txt, {stem}.log, build"})
    code = (
        "import os, sys\n"
        "stem = os.path.splitext(os.path.basename(sys.argv[0]))[0]\n"
        "open('artifact.txt', 'w').write('x')\n"
        "open(stem + '.log', 'w').write('x')\n"
        "os.makedirs('build/out')\n"
        "print(sorted(os.listdir('.')))\n"
    )
    outcome = await runner.run(tmp_path, profile, code)

    assert outcome.succeeded, outcome.stderr
    assert "artifact.txt" in outcome.stdout
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_files_are_removed_after_failure(runner, python_profile, tmp_path):
    outcome = await runner.run(tmp_path, python_profile, "import sys; sys.exit(3)")
    assert outcome.exit_code == 3
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_spawn_failure_reports_error_and_cleans_up(runner, tmp_path):
    profile = LanguageProfile(key="ghost", command_template="cellexec-no-such-binary {file}", temp_filename="g.txt")
    sink = CollectingSink()
    outcome = await runner.run(tmp_path, profile, "anything", sink=sink)

    assert not outcome.succeeded
    assert outcome.exit_code is None
    assert outcome.error and "cellexec-no-such-binary" in outcome.error
    assert len(_events(sink, ErrorEvent)) == 1
    assert _events(sink, ExitEvent) == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_write_failure_spawns_nothing(runner, python_profile, tmp_path):
    not_a_dir = tmp_path / "plain-file"
    not_a_dir.write_text("x", encoding="utf-8")
    sink = CollectingSink()
    outcome = await runner.run(not_a_dir, python_profile, "print(1)", sink=sink)

    assert not outcome.succeeded
    assert outcome.error and "temp file" in outcome.error
    assert [type(event) for event in sink.events] == [ErrorEvent]


@posix_only
@pytest.mark.anyio
async def test_signal_termination_is_a_failure(runner, python_profile, tmp_path):
    sink = CollectingSink()
    code = "import os, signal\nos.kill(os.getpid(), signal.SIGKILL)\n"
    outcome = await runner.run(tmp_path, python_profile, code, sink=sink)

    assert outcome.exit_code is None
    assert outcome.signal == "SIGKILL"
    assert not outcome.succeeded
    assert sink.events[-1].signal == "SIGKILL"


@posix_only
@pytest.mark.anyio
async def test_timeout_kills_the_process(python_profile, tmp_path):
    runner = ProcessRunner(timeout=0.5)
    sink = CollectingSink()
    started = time.monotonic()
    outcome = await runner.run(tmp_path, python_profile, "import time\ntime.sleep(30)\n", sink=sink)

    assert time.monotonic() - started < 10
    assert outcome.timed_out and outcome.cancelled
    assert not outcome.succeeded
    assert "timed out after 0.5 seconds" in outcome.stderr
    exits = _events(sink, ExitEvent)
    assert len(exits) == 1 and exits[0].cancelled
    assert list(tmp_path.iterdir()) == []


@posix_only
@pytest.mark.anyio
async def test_cancel_event_stops_the_run(runner, python_profile, tmp_path):
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.5, cancel.set)
    code = "import time\nprint('started', flush=True)\ntime.sleep(30)\n"
    outcome = await runner.run(tmp_path, python_profile, code, cancel=cancel)

    assert outcome.cancelled
    assert not outcome.timed_out
    assert outcome.stdout == "started\n"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_large_output_is_not_truncated(runner, python_profile, tmp_path):
    code = "import sys\nsys.stdout.write('x' * (12 * 1024 * 1024))\n"
    outcome = await runner.run(tmp_path, python_profile, code)
    assert outcome.succeeded
    assert len(outcome.stdout) == 12 * 1024 * 1024


@pytest.mark.anyio
async def test_output_beyond_limit_is_streamed_but_not_kept(python_profile, tmp_path):
    runner = ProcessRunner(timeout=20, max_output_bytes=1000)
    sink = CollectingSink()
    outcome = await runner.run(tmp_path, python_profile, "print('y' * 5000)", sink=sink)

    assert "output truncated" in outcome.stdout
    assert len(outcome.stdout) < 2000
    streamed = "".join(event.stdout for event in _events(sink, StreamEvent) if event.stdout)
    assert streamed == "y" * 5000 + "\n"


@pytest.mark.anyio
async def test_concurrent_runs_of_one_language_do_not_collide(runner, python_profile, tmp_path):
    first, second = await asyncio.gather(
        runner.run(tmp_path, python_profile, "import time\ntime.sleep(0.2)\nprint('A')"),
        runner.run(tmp_path, python_profile, "import time\ntime.sleep(0.2)\nprint('B')"),
    )
    assert first.stdout == "A\n"
    assert second.stdout == "B\n"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_command_override_can_be_disabled(python_profile, tmp_path):
    runner = ProcessRunner(timeout=20, allow_command_override=False)
    outcome = await runner.run(tmp_path, python_profile, "print('template')", command_override="false {file}")
    assert outcome.stdout == "template\n"


@pytest.mark.anyio
async def test_output_is_decoded_as_utf8(runner, python_profile, tmp_path):
    code = "import sys\nsys.stdout.buffer.write('héllo ✓\\n'.encode('utf-8'))\n"
    outcome = await runner.run(tmp_path, python_profile, code)
    assert outcome.stdout == "héllo ✓\n"


@needs_node
@pytest.mark.anyio
async def test_javascript_prints(runner, tmp_path):
    profile = LanguageProfile(key="javascript", command_template="node {file}", temp_filename="sandbox_temp.js")
    outcome = await runner.run(tmp_path, profile, "console.log(1+1)")
    assert outcome.succeeded
    assert outcome.stdout == "2\n"
    assert outcome.exit_code == 0


@needs_node
@pytest.mark.anyio
async def test_javascript_throw(runner, tmp_path):
    profile = LanguageProfile(key="javascript", command_template="node {file}", temp_filename="sandbox_temp.js")
    outcome = await runner.run(tmp_path, profile, "throw new Error('boom')")
    assert not outcome.succeeded
    assert outcome.exit_code != 0
    assert "boom" in outcome.stderr


@pytest.mark.anyio
async def test_scratch_file_is_written_below_its_subdirectory(runner, python_profile, tmp_path):
    profile = python_profile.model_copy(update={"temp_filename": "scripts/cell.py"})
    code = "import os\nprint(os.path.basename(os.path.dirname(os.path.abspath(__file__))))\n"
    outcome = await runner.run(tmp_path, profile, code)

    assert outcome.stdout == "scripts\n"
    assert list((tmp_path / "scripts").iterdir()) == []
