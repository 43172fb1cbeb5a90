from pathlib import Path

from debugsign.src.core.resign_orchestrator import ResignOptions


def add_resign_arguments(parser):
    """Add all re-signing arguments to an existing parser."""
    # All positionals are optional; main() prints the usage when fewer than two are given
    parser.add_argument(
        "ipa_path", type=Path, nargs="?", help="Path to the IPA file to re-sign"
    )
    parser.add_argument(
        "signing_identity",
        nargs="?",
        help='Signing identity, e.g. "Apple Development: Your Name (XXXXXXXXXX)" or its SHA-1',
    )
    parser.add_argument(
        "profile_path",
        type=Path,
        nargs="?",
        help="Provisioning profile to embed [default: none, wildcard entitlements]",
    )
    parser.add_argument(
        "bundle_id",
        nargs="?",
        help="New bundle identifier [default: from the profile, else keep original]",
    )

    parser.add_argument(
        "--display-name",
        type=str,
        help=(
            "Change the app's visible name [default: keep original; "
            "a new bundle ID does not change it]"
        ),
    )

    parser.add_argument(
        "--timeout",
        type=float,
        dest="tool_timeout",
        help="Give up on any external tool call after this many seconds [default: wait]",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml [default: ~/.debugsign/config.toml]",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=None,
        help="Echo every external tool invocation [default: disabled]",
    )


def create_resign_options(args) -> ResignOptions:
    """Convert parsed arguments to ResignOptions"""
    return ResignOptions(
        ipa_path=args.ipa_path,
        signing_identity=args.signing_identity,
        profile_path=args.profile_path,
        bundle_id=args.bundle_id or None,
        display_name=args.display_name,
    )
