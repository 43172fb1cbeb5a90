from pathlib import Path
from typing import List, Optional


class ResignError(Exception):
    """Base class for every fatal error raised while re-signing."""

    exit_code = 1


class NotFoundError(ResignError):
    """An input file, the Payload directory or the app bundle is missing."""


class InvalidIdentityError(ResignError):
    """The signing identity is not listed by the identity store."""

    def __init__(self, identity: str, identities: Optional[List[str]] = None):
        self.identity = identity
        self.identities = identities or []
        super().__init__(f"Invalid signing identity: {identity}")


class SigningFailure(ResignError):
    """codesign returned a non-zero status for a target."""

    def __init__(self, target: Path, output: str = ""):
        self.target = Path(target)
        self.output = output
        message = f"Codesign failed: {self.target}"
        if output:
            message += f"\n{output}"
        super().__init__(message)


class VerificationFailure(ResignError):
    """A post-sign or post-repackage signature check failed."""


class ToolError(ResignError):
    """An external tool could not be run or produced unusable output."""


class ConfigError(ResignError):
    """The configuration file could not be read."""


class ArchiveError(ResignError):
    """The archive or bundle contents could not be read or written."""
