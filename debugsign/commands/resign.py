from dataclasses import replace

from rich.markup import escape

from debugsign.arguments import create_resign_options
from debugsign.logger import get_console
from debugsign.src.core.errors import ConfigError, InvalidIdentityError, ResignError
from debugsign.src.core.identity_store import IdentityStore, print_identities
from debugsign.src.core.resign_orchestrator import ResignOptions, ResignOrchestrator
from debugsign.src.utils.config_loader import ResignSettings, get_resign_settings

USAGE_EXAMPLE = (
    'debugsign app.ipa "Apple Development: Your Name (XXXXXXXXXX)" '
    "profile.mobileprovision com.example.app"
)


def load_settings(args) -> ResignSettings:
    """Load config file and environment, then apply command line overrides."""
    config_path = getattr(args, "config", None)
    if config_path and not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    settings = get_resign_settings(config_path)
    overrides = {}
    if getattr(args, "tool_timeout", None) is not None:
        if args.tool_timeout <= 0:
            raise ConfigError(f"Tool timeout must be positive: {args.tool_timeout}")
        overrides["tool_timeout"] = args.tool_timeout
    if getattr(args, "verbose", None):
        overrides["verbose"] = True
    return replace(settings, **overrides)


def create_identity_store(settings: ResignSettings) -> IdentityStore:
    return IdentityStore(
        security_path=settings.security_path,
        timeout=settings.tool_timeout,
        verbose=settings.verbose,
    )


def print_available_identities(console, store: IdentityStore) -> None:
    """Print the identity listing, or why it could not be produced."""
    console.print("\nAvailable signing identities:")
    try:
        print_identities(store.list_identities(), console)
    except ResignError as e:
        console.print(f"[red]Could not query signing identities:[/] {escape(str(e))}")


def print_usage(console, store: IdentityStore) -> None:
    console.print(
        "Usage: debugsign <IPA path> <signing identity> "
        "[provisioning profile] [bundle ID]",
        markup=False,
    )
    console.print(f"Example: {USAGE_EXAMPLE}", markup=False)
    print_available_identities(console, store)


def print_configuration_summary(console, options: ResignOptions) -> None:
    """Print the configuration summary."""
    console.print("\n[bold blue]Re-signing Configuration:[/]")
    console.print(f"[cyan]Input IPA:[/] {options.ipa_path}")
    console.print(f"[cyan]Signing identity:[/] {escape(options.signing_identity)}")
    if options.profile_path:
        console.print(f"[cyan]Provisioning profile:[/] {options.profile_path}")
    if options.bundle_id:
        console.print(f"[cyan]Bundle ID:[/] {options.bundle_id}")
    if options.display_name:
        console.print(f"[cyan]Display name:[/] {escape(options.display_name)}")


def main(args) -> int:
    """Main re-sign function that does the actual work.

    Args:
        args: Arguments parsed by the CLI
    """
    console = get_console()

    try:
        settings = load_settings(args)
    except ResignError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return e.exit_code

    store = create_identity_store(settings)

    if args.ipa_path is None or not args.signing_identity:
        print_usage(console, store)
        return 1

    options = create_resign_options(args)
    print_configuration_summary(console, options)

    orchestrator = ResignOrchestrator(settings=settings, identity_store=store)
    try:
        output_path = orchestrator.resign(options)
    except InvalidIdentityError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        print_available_identities(console, store)
        return e.exit_code
    except ResignError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        return e.exit_code

    console.print("\n[bold green]Re-signing succeeded! Use the following file:[/]")
    console.print(f"  {output_path}", markup=False)
    return 0


def run_resign_command(args):
    """Entry point for the resign command from CLI"""
    return main(args)

