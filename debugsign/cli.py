import argparse
import sys
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter
from dotenv import load_dotenv
from debugsign.arguments import add_resign_arguments
from debugsign.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    APP_DESCRIPTION,
)


class DebugSignHelpFormatter(RichHelpFormatter):
    """Custom formatter for the debugsign CLI that enhances the output with rich styling."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        # Make section headings more prominent
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def display_banner():
    """Display a stylish banner for debugsign."""
    console = Console()
    banner = get_banner_text()

    version_info = Text(f"v{__version__}", style="blue")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(banner, "\n", tagline, "\n", version_info),
        border_style="green",
        padding=(1, 2),
    )
    console.print(panel)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="debugsign",
        description=f"debugsign: {APP_DESCRIPTION}",
        formatter_class=DebugSignHelpFormatter,
        add_help=True,
    )
    parser.add_argument(
        "--version", action="version", version=f"debugsign {__version__}"
    )
    add_resign_arguments(parser)
    return parser


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    load_dotenv()

    # Display the banner before the help text
    if not argv or "-h" in argv or "--help" in argv:
        display_banner()

    args = create_parser().parse_args(argv)

    from debugsign.commands.resign import run_resign_command

    return run_resign_command(args)


if __name__ == "__main__":
    sys.exit(main())
