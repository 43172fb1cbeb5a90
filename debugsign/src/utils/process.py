import subprocess
from typing import Optional

from debugsign.logger import get_console
from debugsign.src.core.errors import ToolError


def decode_clean(b: bytes) -> str:
    """Clean up command output"""
    return "" if not b else b.decode("utf-8", errors="replace").strip()


def run_process(
    *cmd: str, timeout: Optional[float] = None, verbose: bool = False
) -> subprocess.CompletedProcess:
    """Run a process to completion and return it, whatever its exit status.

    Output is captured as bytes since some tools (codesign, security cms) write
    property lists to stdout. A missing executable or an expired timeout is
    reported as ToolError; a non-zero exit status is left to the caller.
    """
    if verbose:
        get_console().log(f"[cyan]Running:[/] {' '.join(cmd)}")

    try:
        return subprocess.run(cmd, capture_output=True, check=False, timeout=timeout)
    except FileNotFoundError:
        raise ToolError(f"Tool not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise ToolError(f"Process {cmd[0]} timed out after {timeout} seconds")


def combined_output(proc: subprocess.CompletedProcess) -> str:
    """Return stdout and stderr as one string; codesign reports on stderr."""
    parts = [decode_clean(proc.stdout), decode_clean(proc.stderr)]
    return "\n".join(p for p in parts if p)
