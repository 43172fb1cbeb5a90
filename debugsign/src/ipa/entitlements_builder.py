import plistlib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from debugsign.logger import get_console
from debugsign.src.ipa.provisioning_profile import WILDCARD, ProvisioningProfile

TASK_ALLOW_KEY = "get-task-allow"
APP_ID_KEY = "application-identifier"
TEAM_ID_KEY = "com.apple.developer.team-identifier"

BASELINE_ENTITLEMENTS: Dict[str, Any] = {
    TASK_ALLOW_KEY: True,
    APP_ID_KEY: WILDCARD,
    TEAM_ID_KEY: WILDCARD,
}


def resolve_bundle_id(
    original_id: Optional[str],
    explicit_id: Optional[str] = None,
    profile: Optional[ProvisioningProfile] = None,
) -> Tuple[Optional[str], str]:
    """Pick the final bundle identifier.

    Returns (bundle_id, source) where source is one of "argument", "profile"
    or "original". An explicit identifier always wins, then a non-wildcard
    application-identifier suffix from the profile, then the bundle's own.
    """
    if explicit_id:
        return explicit_id, "argument"

    if profile is not None:
        suffix = profile.app_id_suffix
        if suffix and suffix != WILDCARD:
            return suffix, "profile"

    return original_id, "original"


def build_entitlements(
    bundle_id: Optional[str], profile: Optional[ProvisioningProfile] = None
) -> Dict[str, Any]:
    """Build the entitlements to sign with.

    A profile's entitlements replace the baseline as a whole since they carry
    the real capability set. get-task-allow is always forced on, and the
    application-identifier is rewritten for the final bundle id whenever the
    profile names a concrete team.
    """
    console = get_console()

    if profile is None:
        return dict(BASELINE_ENTITLEMENTS)

    entitlements = profile.entitlements
    if not entitlements:
        console.print(
            "[yellow]Warning: Provisioning profile has no entitlements, using the baseline set[/]"
        )
        entitlements = dict(BASELINE_ENTITLEMENTS)

    entitlements[TASK_ALLOW_KEY] = True

    team_id = profile.team_id
    if team_id and team_id != WILDCARD and bundle_id:
        entitlements[APP_ID_KEY] = f"{team_id}.{bundle_id}"
        # Keep the team key in step with the prefix when it is still the wildcard
        if entitlements.get(TEAM_ID_KEY) == WILDCARD:
            entitlements[TEAM_ID_KEY] = team_id
        console.print(f"[blue]Updated application-identifier:[/] {entitlements[APP_ID_KEY]}")

    return entitlements


def write_entitlements(entitlements: Dict[str, Any], path: Path) -> Path:
    """Serialize entitlements as an XML plist for codesign --entitlements"""
    path = Path(path)
    with open(path, "wb") as f:
        plistlib.dump(entitlements, f, fmt=plistlib.FMT_XML, sort_keys=False)
    return path
