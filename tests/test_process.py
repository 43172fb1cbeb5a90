import subprocess

import pytest

from debugsign.src.core.errors import ToolError
from debugsign.src.utils import process
from debugsign.src.utils.process import combined_output, run_process


def test_missing_tool_raises_tool_error() -> None:
    with pytest.raises(ToolError, match="Tool not found"):
        run_process("/nonexistent/debugsign-tool", "--version")


def test_timeout_raises_tool_error(monkeypatch) -> None:
    def slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(process.subprocess, "run", slow)

    with pytest.raises(ToolError, match="timed out after 5"):
        run_process("codesign", "--verify", "App.app", timeout=5)


def test_combined_output_joins_streams() -> None:
    proc = subprocess.CompletedProcess(
        ["codesign"], 0, stdout=b"out\n", stderr=b"  err  "
    )
    assert combined_output(proc) == "out\nerr"
