import plistlib
import shutil
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.parsers.expat import ExpatError

from debugsign.logger import get_console
from debugsign.src.core.errors import ArchiveError, NotFoundError

EMBEDDED_PROFILE = "embedded.mobileprovision"


class OrderPreservingDict(OrderedDict):
    """Special dictionary that preserves key order for plists"""

    def __eq__(self, other):
        if isinstance(other, dict):
            return dict(self) == dict(other)
        return super().__eq__(other)


class AppBundle:
    """An extracted .app directory and the signable components inside it"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.console = get_console()
        if not self.info_plist_path.exists():
            raise NotFoundError(f"No Info.plist found in {self.path}")

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def info_plist_path(self) -> Path:
        return self.path / "Info.plist"

    @property
    def frameworks_dir(self) -> Path:
        return self.path / "Frameworks"

    @property
    def plugins_dir(self) -> Path:
        return self.path / "PlugIns"

    @property
    def embedded_profile_path(self) -> Path:
        return self.path / EMBEDDED_PROFILE

    def read_info(self) -> Dict[str, Any]:
        try:
            with open(self.info_plist_path, "rb") as f:
                info = plistlib.load(f, dict_type=OrderPreservingDict)
        except OSError as e:
            raise ArchiveError(f"Could not read {self.info_plist_path}: {e}") from e
        except (ValueError, ExpatError) as e:
            raise ArchiveError(f"Could not parse {self.info_plist_path}: {e}") from e
        if not isinstance(info, dict):
            raise ArchiveError(f"{self.info_plist_path} is not a dictionary")
        return info

    def write_info(self, info: Dict[str, Any]) -> None:
        try:
            # Keep binary plists binary
            with open(self.info_plist_path, "rb") as f:
                is_binary = f.read(8) == b"bplist00"
            fmt = plistlib.FMT_BINARY if is_binary else plistlib.FMT_XML
            with open(self.info_plist_path, "wb") as f:
                plistlib.dump(info, f, fmt=fmt, sort_keys=False)
        except OSError as e:
            raise ArchiveError(f"Could not write {self.info_plist_path}: {e}") from e

    def update_info(self, **values: Any) -> None:
        """Set Info.plist keys in a single read-modify-write"""
        info = self.read_info()
        info.update(values)
        self.write_info(info)

    @property
    def bundle_id(self) -> Optional[str]:
        return self.read_info().get("CFBundleIdentifier")

    def set_bundle_id(self, bundle_id: str) -> None:
        self.update_info(CFBundleIdentifier=bundle_id)

    def set_display_name(self, display_name: str) -> None:
        self.update_info(CFBundleDisplayName=display_name)

    def install_profile(self, profile_path: Path) -> Path:
        """Copy a provisioning profile into the bundle as embedded.mobileprovision"""
        try:
            shutil.copyfile(profile_path, self.embedded_profile_path)
        except OSError as e:
            raise ArchiveError(
                f"Could not install provisioning profile {profile_path}: {e}"
            ) from e
        return self.embedded_profile_path

    def strip_signature(self) -> None:
        """Remove signature artifacts left by a previous signing"""
        code_signature = self.path / "_CodeSignature"
        if code_signature.exists():
            shutil.rmtree(code_signature)
        stale_profile = self.path / f"{EMBEDDED_PROFILE}.old"
        if stale_profile.exists():
            stale_profile.unlink()

    def embedded_libraries(self) -> List[Path]:
        """Dylibs and framework bundles under Frameworks, deepest first"""
        if not self.frameworks_dir.is_dir():
            return []

        libraries = [p for p in self.frameworks_dir.rglob("*.dylib") if p.is_file()]
        libraries.extend(
            p for p in self.frameworks_dir.rglob("*.framework") if p.is_dir()
        )
        # Nested frameworks have to be signed before the ones embedding them
        return sorted(libraries, key=lambda p: (-len(p.parts), str(p)))

    def framework_executables(self) -> List[Path]:
        """The <Name>.framework/<Name> executable of every framework"""
        executables = []
        for framework in self.embedded_libraries():
            if framework.suffix != ".framework":
                continue
            executable = framework / framework.stem
            if executable.is_file():
                executables.append(executable)
        return executables

    def plugins(self) -> List[Path]:
        """App extensions under PlugIns"""
        if not self.plugins_dir.is_dir():
            return []
        return sorted(
            (p for p in self.plugins_dir.rglob("*.appex") if p.is_dir()),
            key=lambda p: (-len(p.parts), str(p)),
        )
