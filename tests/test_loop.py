"""Tests for the iteration driver and the agent worker."""

from pathlib import Path
from typing import List
from unittest.mock import MagicMock, patch

import pytest

from ralph_wizard.errors import WorkerError
from ralph_wizard.logs import IterationLogger
from ralph_wizard.loop import (
    COMPLETION_SENTINEL,
    AgentWorker,
    IterationDriver,
    LoopState,
    contains_completion_sentinel,
)


class ScriptedWorker:
    """Returns canned outputs and records the iterations it was called with."""

    def __init__(self, outputs: List[str]) -> None:
        self.outputs = outputs
        self.calls: List[int] = []

    def __call__(self, iteration: int) -> str:
        self.calls.append(iteration)
        return self.outputs[min(len(self.calls), len(self.outputs)) - 1]


def test_exhausts_after_max_iterations() -> None:
    worker = ScriptedWorker(["still working"])
    sleep = MagicMock()
    driver = IterationDriver(worker, max_iterations=3, delay=2.0, sleep=sleep)

    result = driver.run()

    assert result.state is LoopState.EXHAUSTED
    assert result.iterations == 3
    assert result.exit_code == 1
    assert worker.calls == [1, 2, 3]
    # No pause after the final iteration
    assert sleep.call_count == 2
    sleep.assert_called_with(2.0)


def test_completes_on_sentinel() -> None:
    worker = ScriptedWorker(["US-001 done", f"all done {COMPLETION_SENTINEL} bye"])
    sleep = MagicMock()

    result = IterationDriver(worker, max_iterations=10, sleep=sleep).run()

    assert result.state is LoopState.COMPLETED
    assert result.iterations == 2
    assert result.exit_code == 0
    assert sleep.call_count == 1


def test_sentinel_is_case_sensitive() -> None:
    assert contains_completion_sentinel(f"noise\n{COMPLETION_SENTINEL}\nmore")
    assert not contains_completion_sentinel("<promise>complete</promise>")
    assert not contains_completion_sentinel("<promise> COMPLETE </promise>")


def test_single_iteration_never_sleeps() -> None:
    sleep = MagicMock()
    result = IterationDriver(ScriptedWorker(["nope"]), max_iterations=1, sleep=sleep).run()

    assert result.state is LoopState.EXHAUSTED
    sleep.assert_not_called()


def test_worker_error_counts_as_iteration() -> None:
    calls: List[int] = []

    def flaky(iteration: int) -> str:
        calls.append(iteration)
        if iteration == 1:
            raise WorkerError("agent crashed")
        return COMPLETION_SENTINEL

    result = IterationDriver(flaky, max_iterations=3, sleep=MagicMock()).run()

    assert result.state is LoopState.COMPLETED
    assert calls == [1, 2]


def test_invalid_max_iterations() -> None:
    with pytest.raises(ValueError):
        IterationDriver(ScriptedWorker(["x"]), max_iterations=0)


def test_step_after_finish_raises() -> None:
    driver = IterationDriver(ScriptedWorker([COMPLETION_SENTINEL]), max_iterations=2, sleep=MagicMock())
    assert driver.step() is LoopState.COMPLETED
    with pytest.raises(RuntimeError):
        driver.step()


def test_iterations_are_logged(tmp_path: Path) -> None:
    logger = IterationLogger(tmp_path / "logs", run_id="run-1")

    def worker(iteration: int) -> str:
        if iteration == 1:
            raise WorkerError("boom")
        return COMPLETION_SENTINEL

    IterationDriver(worker, max_iterations=5, sleep=MagicMock(), logger=logger).run()

    entries = logger.read_entries()
    assert [e["iteration"] for e in entries] == [1, 2]
    assert entries[0]["error"] == "boom"
    assert entries[0]["completed"] is False
    assert entries[1]["completed"] is True
    assert all(e["run_id"] == "run-1" and e["max_iterations"] == 5 for e in entries)


def _popen(lines: List[str], returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.stdout = iter(lines)
    proc.wait.return_value = returncode
    return proc


@patch("ralph_wizard.loop.subprocess.Popen")
def test_agent_worker_streams_output(mock_popen: MagicMock, tmp_path: Path, capsys) -> None:
    prompt = tmp_path / "CLAUDE.md"
    prompt.write_text("Do the work")
    proc = _popen(["working\n", f"{COMPLETION_SENTINEL}\n"])
    mock_popen.return_value = proc

    output = AgentWorker("claude", prompt, tmp_path)(1)

    assert COMPLETION_SENTINEL in output
    assert "working" in capsys.readouterr().out
    argv = mock_popen.call_args[0][0]
    assert argv == ["claude", "--dangerously-skip-permissions", "--print"]
    assert mock_popen.call_args[1]["cwd"] == tmp_path
    proc.stdin.write.assert_called_once_with("Do the work")


@patch("ralph_wizard.loop.subprocess.Popen")
def test_agent_worker_passes_prompt_as_argument(mock_popen: MagicMock, tmp_path: Path) -> None:
    prompt = tmp_path / "prompt.md"
    prompt.write_text("Do the work")
    mock_popen.return_value = _popen(["out\n"], returncode=2)

    output = AgentWorker("gemini", prompt, tmp_path)(1)

    assert output == "out\n"
    assert mock_popen.call_args[0][0] == ["gemini", "-y", "-p", "Do the work"]


def test_agent_worker_missing_prompt(tmp_path: Path) -> None:
    worker = AgentWorker("claude", tmp_path / "missing.md", tmp_path)
    with pytest.raises(WorkerError, match="Cannot read prompt"):
        worker(1)


@patch("ralph_wizard.loop.subprocess.Popen", side_effect=FileNotFoundError("claude"))
def test_agent_worker_missing_binary(mock_popen: MagicMock, tmp_path: Path) -> None:
    prompt = tmp_path / "CLAUDE.md"
    prompt.write_text("x")
    with pytest.raises(WorkerError, match="Could not start"):
        AgentWorker("claude", prompt, tmp_path)(1)


def test_unexpected_worker_exception_counts_as_iteration(tmp_path: Path) -> None:
    logger = IterationLogger(tmp_path / "logs", run_id="run-2")
    calls: List[int] = []

    def crashing(iteration: int) -> str:
        calls.append(iteration)
        raise RuntimeError("callback crashed")

    result = IterationDriver(crashing, max_iterations=3, sleep=MagicMock(), logger=logger).run()

    assert result.state is LoopState.EXHAUSTED
    assert calls == [1, 2, 3]
    entries = logger.read_entries()
    assert entries[0]["error"] == "RuntimeError: callback crashed"
    assert not any(e["completed"] for e in entries)


def _raising_lines():
    yield "partial\n"
    raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


@patch("ralph_wizard.loop.subprocess.Popen")
def test_agent_worker_always_reaps_process(mock_popen: MagicMock, tmp_path: Path) -> None:
    prompt = tmp_path / "CLAUDE.md"
    prompt.write_text("x")
    proc = _popen([])
    proc.stdout = _raising_lines()
    mock_popen.return_value = proc

    with pytest.raises(UnicodeDecodeError):
        AgentWorker("claude", prompt, tmp_path)(1)
    proc.wait.assert_called_once()


@patch("ralph_wizard.loop.subprocess.Popen")
def test_agent_worker_decodes_with_replacement(mock_popen: MagicMock, tmp_path: Path) -> None:
    prompt = tmp_path / "CLAUDE.md"
    prompt.write_text("x")
    mock_popen.return_value = _popen(["ok\n"])

    AgentWorker("claude", prompt, tmp_path)(1)

    assert mock_popen.call_args[1]["encoding"] == "utf-8"
    assert mock_popen.call_args[1]["errors"] == "replace"


def test_agent_worker_survives_invalid_utf8_output(tmp_path: Path, monkeypatch) -> None:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    fake_claude = bin_dir / "claude"
    fake_claude.write_text("#!/bin/sh\ncat > /dev/null\nprintf 'ok\\n\\377\\376 broken\\n'\n")
    fake_claude.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}:/usr/bin:/bin")
    prompt = tmp_path / "CLAUDE.md"
    prompt.write_text("Do the work")

    worker = AgentWorker("claude", prompt, tmp_path)
    result = IterationDriver(worker, max_iterations=2, sleep=MagicMock()).run()

    assert result.state is LoopState.EXHAUSTED
    assert result.iterations == 2
    assert "ok\n" in worker(1)
