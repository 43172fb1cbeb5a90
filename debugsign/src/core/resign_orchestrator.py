from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.markup import escape

from debugsign.logger import get_console
from debugsign.src.core.code_signer import CodeSigner
from debugsign.src.core.errors import (
    ArchiveError,
    NotFoundError,
    SigningFailure,
    VerificationFailure,
)
from debugsign.src.core.identity_store import IdentityStore, SigningIdentity
from debugsign.src.core.verifier import SigningVerifier
from debugsign.src.ipa.app_bundle import AppBundle
from debugsign.src.ipa.archive import (
    extract_ipa,
    find_app_bundle,
    package_ipa,
    resigned_output_path,
    scratch_directory,
)
from debugsign.src.ipa.entitlements_builder import (
    build_entitlements,
    resolve_bundle_id,
    write_entitlements,
)
from debugsign.src.ipa.provisioning_profile import ProvisioningProfile, load_profile
from debugsign.src.utils.config_loader import ResignSettings, resolve_profile_decoder


@dataclass
class ResignOptions:
    """What to re-sign and how"""

    ipa_path: Path
    signing_identity: str
    profile_path: Optional[Path] = None  # None = keep baseline entitlements
    bundle_id: Optional[str] = None  # None = derive from profile or keep original
    display_name: Optional[str] = None  # None = keep original


class ResignOrchestrator:
    """Runs the whole re-sign pipeline for one IPA"""

    def __init__(
        self,
        settings: Optional[ResignSettings] = None,
        identity_store: Optional[IdentityStore] = None,
        signer_factory=CodeSigner,
    ):
        self.console = get_console()
        self.settings = settings or ResignSettings()
        self.identity_store = identity_store or IdentityStore(
            security_path=self.settings.security_path,
            timeout=self.settings.tool_timeout,
            verbose=self.settings.verbose,
        )
        self.signer_factory = signer_factory

    def _create_signer(self, signing_identity: str) -> CodeSigner:
        return self.signer_factory(
            signing_identity,
            codesign_path=self.settings.codesign_path,
            timeout=self.settings.tool_timeout,
            verbose=self.settings.verbose,
        )

    def _validate(self, options: ResignOptions) -> SigningIdentity:
        """Check every input before anything is extracted"""
        if not Path(options.ipa_path).is_file():
            raise NotFoundError(f"IPA file not found: {options.ipa_path}")

        identity = self.identity_store.require(options.signing_identity)
        self.console.print(
            f"[blue]Signing identity:[/] {escape(identity.name)} ({identity.sha1})"
        )

        if options.profile_path and not Path(options.profile_path).is_file():
            raise NotFoundError(
                f"Provisioning profile not found: {options.profile_path}"
            )

        return identity

    def _load_profile(self, profile_path: Path) -> ProvisioningProfile:
        decoder = resolve_profile_decoder(
            self.settings.profile_decoder, self.settings.security_path
        )
        return load_profile(
            profile_path,
            decoder=decoder,
            security_path=self.settings.security_path,
            timeout=self.settings.tool_timeout,
            verbose=self.settings.verbose,
        )

    def _apply_identity(
        self,
        bundle: AppBundle,
        options: ResignOptions,
        profile: Optional[ProvisioningProfile],
    ) -> Optional[str]:
        """Resolve and write the final bundle identifier"""
        original_id = bundle.bundle_id
        self.console.print(f"[blue]Original Bundle ID:[/] {original_id}")

        bundle_id, source = resolve_bundle_id(original_id, options.bundle_id, profile)
        if source == "original":
            self.console.print(
                f"[yellow]Warning: No bundle ID specified, keeping original: {bundle_id}[/]"
            )
        else:
            if source == "profile":
                self.console.print(
                    f"[blue]Bundle ID from provisioning profile:[/] {bundle_id}"
                )
            self.console.print(f"[blue]Setting Bundle ID to:[/] {bundle_id}")
            bundle.set_bundle_id(bundle_id)

        if options.display_name:
            try:
                bundle.set_display_name(options.display_name)
                self.console.print(
                    f"[blue]Display name set to:[/] {escape(options.display_name)}"
                )
            except ArchiveError as e:
                self.console.print(
                    f"[yellow]Warning: Could not update display name: {escape(str(e))}[/]"
                )

        return bundle_id

    def _sign_best_effort(
        self, signer: CodeSigner, target: Path, app_path: Path
    ) -> None:
        self.console.print(f"  [cyan]Signing:[/] {target.relative_to(app_path)}")
        try:
            signer.sign(target)
        except SigningFailure as e:
            self.console.print(f"  [yellow]Warning: {escape(str(e))}[/]")

    def _sign_bundle(
        self, signer: CodeSigner, bundle: AppBundle, entitlements_path: Path
    ) -> None:
        """Sign leaves before the containers that embed them"""
        self.console.print("\n[blue]Signing frameworks and dynamic libraries[/]")
        for library in bundle.embedded_libraries():
            self._sign_best_effort(signer, library, bundle.path)

        for executable in bundle.framework_executables():
            self._sign_best_effort(signer, executable, bundle.path)

        plugins = bundle.plugins()
        if plugins:
            self.console.print("\n[blue]Signing plugins[/]")
        for plugin in plugins:
            self.console.print(f"  [cyan]Signing:[/] {plugin.relative_to(bundle.path)}")
            signer.sign(plugin, entitlements_path)

        self.console.print(f"\n[blue]Signing main app:[/] {bundle.name}")
        signer.sign(bundle.path, entitlements_path)
        self.console.print("[green]Signing complete[/]")

    def resign(self, options: ResignOptions) -> Path:
        """Re-sign options.ipa_path and return the path of the new IPA"""
        ipa_path = Path(options.ipa_path)
        identity = self._validate(options)

        self.console.print(f"[bold blue]Re-signing:[/] {ipa_path}")
        signer = self._create_signer(identity.sha1)
        verifier = SigningVerifier(signer, work_dir=self.settings.work_dir)
        output_path = resigned_output_path(ipa_path, self.settings.output_suffix)

        with scratch_directory(self.settings.work_dir) as work_dir:
            self.console.log(f"[blue]Working directory:[/] {work_dir}")
            payload_dir = extract_ipa(ipa_path, work_dir)
            bundle = AppBundle(find_app_bundle(payload_dir))
            self.console.print(f"[blue]Found app:[/] {bundle.name}")

            profile = None
            if options.profile_path:
                self.console.print("[blue]Installing provisioning profile[/]")
                bundle.install_profile(options.profile_path)
                profile = self._load_profile(bundle.embedded_profile_path)

            bundle_id = self._apply_identity(bundle, options, profile)

            self.console.print("[blue]Creating entitlements with get-task-allow[/]")
            entitlements = build_entitlements(bundle_id, profile)
            entitlements_path = write_entitlements(
                entitlements, work_dir / "entitlements.plist"
            )

            self.console.print("[blue]Removing existing signature[/]")
            bundle.strip_signature()

            self._sign_bundle(signer, bundle, entitlements_path)

            report = verifier.verify_bundle(bundle, bundle_id)
            if not report.signature_valid:
                raise VerificationFailure(
                    f"Signature verification failed:\n{report.signature_output}"
                )

            self.console.print(f"\n[blue]Packaging IPA:[/] {output_path}")
            package_ipa(work_dir, output_path)

        verifier.verify_archive(output_path)
        self.console.print(f"\n[bold green]Successfully re-signed IPA:[/] {output_path}")
        return output_path
