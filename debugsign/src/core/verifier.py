import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from debugsign.logger import get_console
from debugsign.src.core.code_signer import CodeSigner
from debugsign.src.core.errors import VerificationFailure
from debugsign.src.ipa.app_bundle import AppBundle
from debugsign.src.ipa.archive import extract_ipa, find_app_bundle, scratch_directory
from debugsign.src.ipa.entitlements_builder import TASK_ALLOW_KEY


@dataclass
class VerificationReport:
    """Outcome of checking a signed app bundle"""

    signature_valid: bool
    signature_output: str = ""
    entitlements: Dict[str, Any] = field(default_factory=dict)
    bundle_id: Optional[str] = None
    expected_bundle_id: Optional[str] = None

    @property
    def task_allow_present(self) -> bool:
        return TASK_ALLOW_KEY in self.entitlements

    @property
    def task_allow_enabled(self) -> bool:
        return self.entitlements.get(TASK_ALLOW_KEY) is True

    @property
    def bundle_id_matches(self) -> bool:
        return self.bundle_id == self.expected_bundle_id


class SigningVerifier:
    """Checks signatures and entitlements after signing"""

    def __init__(self, signer: CodeSigner, work_dir: Optional[Path] = None):
        self.signer = signer
        self.work_dir = work_dir
        self.console = get_console()

    def _section(self, title: str) -> None:
        self.console.print(f"\n[bold]{'=' * 10} {title} {'=' * 10}[/]")

    def verify_bundle(
        self, bundle: AppBundle, expected_bundle_id: Optional[str]
    ) -> VerificationReport:
        """Verify a signed bundle and print what was found.

        Only the signature check decides the report's outcome; get-task-allow
        and the bundle identifier are reported as warnings.
        """
        self._section("Signature Verification")
        is_valid, output = self.signer.verify(bundle.path)
        if output:
            self.console.print(output, markup=False)

        self._section("Entitlements")
        entitlements = self.signer.read_entitlements(bundle.path)
        if entitlements:
            self.console.print_json(json.dumps(entitlements, default=str))
        else:
            self.console.print("[yellow]No entitlements found[/]")

        self._section("Signature Details")
        details = self.signer.describe(bundle.path)
        if details:
            self.console.print(details, markup=False)

        report = VerificationReport(
            signature_valid=is_valid,
            signature_output=output,
            entitlements=entitlements,
            bundle_id=bundle.bundle_id,
            expected_bundle_id=expected_bundle_id,
        )

        self._section("get-task-allow")
        if report.task_allow_enabled:
            self.console.print("[green]✓ get-task-allow is enabled[/]")
        elif report.task_allow_present:
            self.console.print("[yellow]✗ get-task-allow is not enabled[/]")
        else:
            self.console.print("[yellow]✗ get-task-allow not found[/]")

        self._section("Bundle ID")
        self.console.print(f"[blue]Current Bundle ID:[/] {report.bundle_id}")
        if report.bundle_id_matches:
            self.console.print("[green]✓ Bundle ID is set correctly[/]")
        else:
            self.console.print(
                f"[yellow]✗ Bundle ID mismatch, expected {expected_bundle_id}[/]"
            )

        if report.signature_valid:
            self.console.print("\n[green]✓ Signature verification passed[/]")
        else:
            self.console.print("\n[bold red]✗ Signature verification failed[/]")

        return report

    def verify_archive(self, ipa_path: Path) -> None:
        """Extract a packaged IPA again and check its main bundle signature"""
        self.console.print(f"\n[bold blue]Final verification of {ipa_path.name}[/]")

        with scratch_directory(self.work_dir) as verify_dir:
            payload_dir = extract_ipa(ipa_path, verify_dir)
            app_path = find_app_bundle(payload_dir)
            is_valid, output = self.signer.verify(app_path)

        if output:
            self.console.print(output, markup=False)
        if not is_valid:
            raise VerificationFailure(
                f"Signature verification of {ipa_path} failed:\n{output}"
            )
        self.console.print("[green]✓ Final signature verification passed[/]")
