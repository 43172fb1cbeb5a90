import re
from dataclasses import dataclass
from typing import List, Optional

from rich.table import Table

from debugsign.logger import get_console
from debugsign.src.core.errors import InvalidIdentityError, ToolError
from debugsign.src.utils.process import combined_output, decode_clean, run_process

_IDENTITY_LINE_RE = re.compile(r'^\s*\d+\)\s+([0-9A-Fa-f]{40})\s+"(.+)"')


@dataclass(frozen=True)
class SigningIdentity:
    """A code signing identity as listed by `security find-identity`"""

    sha1: str
    name: str

    def matches(self, query: str) -> bool:
        """Match on the full fingerprint or on any part of the listed line."""
        if not query:
            return False
        if query.upper() == self.sha1:
            return True
        return query in f'{self.sha1} "{self.name}"'


def parse_identities(output: str) -> List[SigningIdentity]:
    """Parse the numbered lines of `security find-identity -v` output."""
    identities = []
    for line in output.splitlines():
        match = _IDENTITY_LINE_RE.match(line)
        if match:
            identities.append(SigningIdentity(match.group(1).upper(), match.group(2)))
    return identities


class IdentityStore:
    """Queries the keychain for valid code signing identities"""

    def __init__(
        self,
        security_path: str = "/usr/bin/security",
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        self.security_path = security_path
        self.timeout = timeout
        self.verbose = verbose
        self._identities: Optional[List[SigningIdentity]] = None

    def list_identities(self) -> List[SigningIdentity]:
        """Return the valid code signing identities, querying once per store."""
        if self._identities is None:
            proc = run_process(
                self.security_path,
                "find-identity",
                "-v",
                "-p",
                "codesigning",
                timeout=self.timeout,
                verbose=self.verbose,
            )
            if proc.returncode != 0:
                raise ToolError(
                    f"Failed to list signing identities:\n{combined_output(proc)}"
                )
            self._identities = parse_identities(decode_clean(proc.stdout))
        return self._identities

    def find(self, query: str) -> Optional[SigningIdentity]:
        return next((i for i in self.list_identities() if i.matches(query)), None)

    def require(self, query: str) -> SigningIdentity:
        """Return the identity matching query or raise InvalidIdentityError."""
        identity = self.find(query)
        if identity is None:
            raise InvalidIdentityError(
                query, [f'{i.sha1} "{i.name}"' for i in self.list_identities()]
            )
        return identity


def print_identities(identities: List[SigningIdentity], console=None) -> None:
    """Print the available identities as a table."""
    console = console or get_console()
    if not identities:
        console.print("[yellow]No valid code signing identities found[/]")
        return

    table = Table(title="Available Signing Identities")
    table.add_column("#")
    table.add_column("SHA-1")
    table.add_column("Name")
    for idx, identity in enumerate(identities, start=1):
        table.add_row(str(idx), identity.sha1, identity.name)
    console.print(table)
