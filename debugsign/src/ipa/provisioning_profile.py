"""Provisioning profile decoding.

A .mobileprovision file is a CMS signed envelope around an XML property list.
On macOS it is decoded with `security cms -D -i`; elsewhere the envelope is
opened with asn1crypto. Neither path validates the CMS signature.
"""

import plistlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from xml.parsers.expat import ExpatError

from asn1crypto.cms import ContentInfo

from debugsign.src.core.errors import NotFoundError, ToolError
from debugsign.src.utils.process import combined_output, run_process

WILDCARD = "*"


@dataclass(frozen=True)
class ProvisioningProfile:
    """The parts of a decoded profile the signer needs"""

    path: Path
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def entitlements(self) -> Dict[str, Any]:
        entitlements = self.raw.get("Entitlements")
        return dict(entitlements) if isinstance(entitlements, dict) else {}

    @property
    def name(self) -> Optional[str]:
        return self.raw.get("Name")

    @property
    def team_id(self) -> Optional[str]:
        """Team identifier from the entitlements, else the TeamIdentifier list"""
        team_id = self.entitlements.get("com.apple.developer.team-identifier")
        if isinstance(team_id, str) and team_id:
            return team_id
        team_ids = self.raw.get("TeamIdentifier")
        if isinstance(team_ids, list) and team_ids and isinstance(team_ids[0], str):
            return team_ids[0]
        return None

    @property
    def application_identifier(self) -> Optional[str]:
        app_id = self.entitlements.get("application-identifier")
        return app_id if isinstance(app_id, str) and app_id else None

    @property
    def app_id_suffix(self) -> Optional[str]:
        """application-identifier without its leading team segment"""
        app_id = self.application_identifier
        if app_id is None:
            return None
        # Format is "TEAMID.bundle.id"
        return app_id.split(".", 1)[1] if "." in app_id else app_id


def _parse_profile_plist(data: bytes, profile_path: Path) -> Dict[str, Any]:
    try:
        raw = plistlib.loads(data)
    except (ValueError, ExpatError) as e:
        raise ToolError(f"Could not parse provisioning profile {profile_path}: {e}")
    if not isinstance(raw, dict):
        raise ToolError(f"Unexpected provisioning profile contents in {profile_path}")
    return raw


def dump_prov(profile_path: Path) -> bytes:
    """Read a provisioning profile's plist payload without using macOS security command"""
    try:
        with open(profile_path, "rb") as f:
            content_info = ContentInfo.load(f.read())
        signed_data = content_info["content"]
        # The plist is the encapsulated content of the signed data
        return signed_data["encap_content_info"]["content"].native
    except (ValueError, TypeError, KeyError) as e:
        raise ToolError(f"Could not decode provisioning profile {profile_path}: {e}")


def decode_with_security(
    profile_path: Path,
    security_path: str = "/usr/bin/security",
    timeout: Optional[float] = None,
    verbose: bool = False,
) -> bytes:
    """Decode the CMS envelope with `security cms -D`"""
    proc = run_process(
        security_path,
        "cms",
        "-D",
        "-i",
        str(profile_path),
        timeout=timeout,
        verbose=verbose,
    )
    if proc.returncode != 0 or not proc.stdout:
        raise ToolError(
            f"Failed to decode provisioning profile {profile_path}:\n{combined_output(proc)}"
        )
    return proc.stdout


def load_profile(
    profile_path: Path,
    decoder: str = "security",
    security_path: str = "/usr/bin/security",
    timeout: Optional[float] = None,
    verbose: bool = False,
) -> ProvisioningProfile:
    """Decode a .mobileprovision file with the given decoder ('security' or 'asn1')."""
    profile_path = Path(profile_path)
    if not profile_path.is_file():
        raise NotFoundError(f"Provisioning profile not found: {profile_path}")

    if decoder == "asn1":
        data = dump_prov(profile_path)
    else:
        data = decode_with_security(profile_path, security_path, timeout, verbose)

    return ProvisioningProfile(
        path=profile_path, raw=_parse_profile_plist(data, profile_path)
    )
