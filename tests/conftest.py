import plistlib
import zipfile
from functools import partial
from pathlib import Path

import pytest
from asn1crypto import cms

from debugsign.logger import get_console
from debugsign.src.core.errors import SigningFailure
from debugsign.src.core.identity_store import IdentityStore, SigningIdentity
from debugsign.src.utils.config_loader import ResignSettings

DEV_CERT = SigningIdentity(
    "ABCDEF0123456789ABCDEF0123456789ABCDEF01", "Apple Development: Dev Cert (TEAM123456)"
)
OTHER_CERT = SigningIdentity(
    "00112233445566778899AABBCCDDEEFF00112233", "Apple Distribution: Other (OTHER12345)"
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the user's config and give rich a wide console."""
    for name in (
        "DEBUGSIGN_CONFIG",
        "DEBUGSIGN_CODESIGN",
        "DEBUGSIGN_SECURITY",
        "DEBUGSIGN_TOOL_TIMEOUT",
        "DEBUGSIGN_OUTPUT_SUFFIX",
        "DEBUGSIGN_WORK_DIR",
        "DEBUGSIGN_PROFILE_DECODER",
        "DEBUGSIGN_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DEBUGSIGN_CONFIG", str(tmp_path / "no-config.toml"))
    monkeypatch.setenv("COLUMNS", "200")
    get_console.cache_clear()
    yield
    get_console.cache_clear()


class FakeIdentityStore(IdentityStore):
    """Identity store with a fixed listing instead of the keychain"""

    def __init__(self, identities=(DEV_CERT, OTHER_CERT)):
        super().__init__()
        self._identities = list(identities)


class FakeSigner:
    """Stands in for codesign.

    Signing a bundle directory writes _CodeSignature/CodeResources and a copy
    of the entitlements, so a packaged and re-extracted bundle still carries
    its "signature".
    """

    def __init__(
        self,
        signing_identity,
        codesign_path=None,
        timeout=None,
        verbose=False,
        calls=None,
        fail_on=(),
        error=SigningFailure,
        verify_results=None,
    ):
        self.signing_identity = signing_identity
        self.calls = calls if calls is not None else []
        self.fail_on = set(fail_on)
        self.error = error
        self.verify_results = verify_results

    def sign(self, target, entitlements=None):
        target = Path(target)
        self.calls.append((target, entitlements))
        if target.name in self.fail_on:
            if self.error is SigningFailure:
                raise SigningFailure(target, "errSecInternalComponent")
            raise self.error(f"cannot sign {target.name}")
        if target.is_dir():
            signature_dir = target / "_CodeSignature"
            signature_dir.mkdir(exist_ok=True)
            (signature_dir / "CodeResources").write_text(self.signing_identity)
            if entitlements:
                (signature_dir / "entitlements.plist").write_bytes(
                    Path(entitlements).read_bytes()
                )

    def verify(self, target):
        signed = (Path(target) / "_CodeSignature" / "CodeResources").exists()
        if self.verify_results:
            signed = signed and self.verify_results.pop(0)
        return signed, f"{target}: valid on disk" if signed else f"{target}: not signed"

    def read_entitlements(self, target):
        path = Path(target) / "_CodeSignature" / "entitlements.plist"
        if not path.exists():
            return {}
        return plistlib.loads(path.read_bytes())

    def describe(self, target):
        return f"Executable={target}\nAuthority={self.signing_identity}"


@pytest.fixture
def signer_calls():
    return []


@pytest.fixture
def signer_factory(signer_calls):
    """Return a factory building FakeSigners that share one call log."""

    def make(**kwargs):
        return partial(FakeSigner, calls=signer_calls, **kwargs)

    return make


@pytest.fixture
def scratch_root(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def settings(scratch_root):
    return ResignSettings(work_dir=scratch_root, profile_decoder="asn1")


def _write_executable(zf: zipfile.ZipFile, name: str, data: bytes = b"\xcf\xfa\xed\xfe") -> None:
    info = zipfile.ZipInfo(name)
    info.external_attr = 0o755 << 16
    zf.writestr(info, data)


@pytest.fixture
def make_ipa(tmp_path):
    """Build a minimal IPA with a framework, a dylib and a plug-in."""

    def make(name="App.ipa", bundle_id="com.old.app", extra_info=None):
        ipa_path = tmp_path / name
        info = {
            "CFBundleIdentifier": bundle_id,
            "CFBundleExecutable": "App",
            "CFBundleDisplayName": "Old App",
            "CFBundlePackageType": "APPL",
        }
        info.update(extra_info or {})
        with zipfile.ZipFile(ipa_path, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("Payload/App.app/Info.plist", plistlib.dumps(info))
            _write_executable(zf, "Payload/App.app/App")
            zf.writestr(
                "Payload/App.app/_CodeSignature/CodeResources", b"old signature"
            )
            zf.writestr(
                "Payload/App.app/Frameworks/Kit.framework/Info.plist",
                plistlib.dumps({"CFBundleIdentifier": "com.old.kit"}),
            )
            _write_executable(zf, "Payload/App.app/Frameworks/Kit.framework/Kit")
            _write_executable(zf, "Payload/App.app/Frameworks/libswiftCore.dylib")
            zf.writestr(
                "Payload/App.app/PlugIns/Share.appex/Info.plist",
                plistlib.dumps({"CFBundleIdentifier": f"{bundle_id}.share"}),
            )
            _write_executable(zf, "Payload/App.app/PlugIns/Share.appex/Share")
        return ipa_path

    return make


@pytest.fixture
def make_profile(tmp_path):
    """Write a CMS wrapped provisioning profile that asn1crypto can open."""

    def make(entitlements=None, name="dev.mobileprovision", **extra):
        raw = {"Name": "Dev Profile", "TeamIdentifier": ["TEAM123456"]}
        if entitlements is not None:
            raw["Entitlements"] = entitlements
        raw.update(extra)

        signed_data = cms.SignedData(
            {
                "version": "v1",
                "digest_algorithms": [],
                "encap_content_info": {
                    "content_type": "data",
                    "content": plistlib.dumps(raw),
                },
                "signer_infos": [],
            }
        )
        content_info = cms.ContentInfo(
            {"content_type": "signed_data", "content": signed_data}
        )
        profile_path = tmp_path / name
        profile_path.write_bytes(content_info.dump())
        return profile_path

    return make
