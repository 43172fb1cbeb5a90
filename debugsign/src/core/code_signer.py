import plistlib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from xml.parsers.expat import ExpatError

from debugsign.logger import get_console
from debugsign.src.core.errors import SigningFailure
from debugsign.src.utils.process import combined_output, run_process


class CodeSigner:
    """Wraps codesign for one signing identity"""

    def __init__(
        self,
        signing_identity: str,
        codesign_path: str = "/usr/bin/codesign",
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        self.console = get_console()
        self.signing_identity = signing_identity
        self.codesign_path = codesign_path
        self.timeout = timeout
        self.verbose = verbose

    def _run(self, *args: str):
        return run_process(
            self.codesign_path, *args, timeout=self.timeout, verbose=self.verbose
        )

    def sign(self, target: Path, entitlements: Optional[Path] = None) -> None:
        """Force-sign target, replacing any existing signature"""
        cmd = ["-f", "-s", self.signing_identity]
        if entitlements:
            cmd.extend(["--entitlements", str(entitlements)])
        cmd.append(str(target))

        proc = self._run(*cmd)
        if proc.returncode != 0:
            raise SigningFailure(target, combined_output(proc))

    def verify(self, target: Path) -> Tuple[bool, str]:
        """Verify the code signature of target.
        Returns a tuple of (is_valid, diagnostic_text)
        """
        proc = self._run("--verify", "--deep", "--strict", "-vv", str(target))
        return proc.returncode == 0, combined_output(proc)

    def read_entitlements(self, target: Path) -> Dict[str, Any]:
        """Extract signed entitlements, or an empty dict if there are none."""
        proc = self._run("-d", "--entitlements", ":-", str(target))
        if proc.returncode != 0 or not proc.stdout:
            return {}
        try:
            entitlements = plistlib.loads(proc.stdout)
        except (ValueError, ExpatError):
            self.console.print(
                f"[yellow]Warning: Could not parse entitlements of {target}[/]"
            )
            return {}
        return entitlements if isinstance(entitlements, dict) else {}

    def describe(self, target: Path) -> str:
        """Return codesign's detailed signature description."""
        return combined_output(self._run("-dvvv", str(target)))
