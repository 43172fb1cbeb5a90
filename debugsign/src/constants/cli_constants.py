from rich.text import Text

__version__ = "0.1.0"

APP_NAME = "debugsign"
APP_DESCRIPTION = "Re-sign iOS apps with get-task-allow enabled"

_BANNER = r"""
     _      _                       _
  __| | ___| |__  _   _  __ _   ___(_) __ _ _ __
 / _` |/ _ \ '_ \| | | |/ _` | / __| |/ _` | '_ \
| (_| |  __/ |_) | |_| | (_| | \__ \ | (_| | | | |
 \__,_|\___|_.__/ \__,_|\__, | |___/_|\__, |_| |_|
                        |___/         |___/
"""


def get_banner_text() -> Text:
    """Return the banner as styled text."""
    return Text(_BANNER.strip("\n"), style="bold cyan")
