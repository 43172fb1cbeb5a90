import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from debugsign.src.core.errors import ConfigError

PROFILE_DECODERS = ("auto", "security", "asn1")


@dataclass
class ResignSettings:
    """Tool locations and run-wide settings"""

    codesign_path: str = "/usr/bin/codesign"
    security_path: str = "/usr/bin/security"
    tool_timeout: Optional[float] = None  # None = wait for the tool forever
    output_suffix: str = "_resigned"
    work_dir: Optional[Path] = None  # None = system temp directory
    profile_decoder: str = "auto"
    verbose: bool = False


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("DEBUGSIGN_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".debugsign" / "config.toml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_timeout(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid tool timeout: {value!r}")
    if timeout <= 0:
        raise ConfigError(f"Tool timeout must be positive: {value!r}")
    return timeout


def resolve_profile_decoder(decoder: str, security_path: str = "security") -> str:
    """Pick the concrete decoder for 'auto'."""
    if decoder != "auto":
        return decoder
    return "security" if shutil.which(security_path) else "asn1"


def get_resign_settings(config_path: Optional[Path] = None) -> ResignSettings:
    """Build settings from the [resign] table, overridden by environment variables."""
    config = load_config(config_path)
    section = config.get("resign", {})
    defaults = ResignSettings()

    def pick(key: str, env: str, default: Any) -> Any:
        # Environment wins over the config file
        env_value = os.environ.get(env)
        if env_value is not None:
            return env_value
        return section.get(key, default)

    work_dir = pick("work_dir", "DEBUGSIGN_WORK_DIR", None)
    output_suffix = str(
        pick("output_suffix", "DEBUGSIGN_OUTPUT_SUFFIX", defaults.output_suffix)
    )
    if not output_suffix:
        # An empty suffix would overwrite the input archive
        raise ConfigError("Output suffix must not be empty")
    decoder = str(pick("profile_decoder", "DEBUGSIGN_PROFILE_DECODER", "auto"))
    if decoder not in PROFILE_DECODERS:
        raise ConfigError(
            f"Unknown profile decoder {decoder!r}, expected one of {', '.join(PROFILE_DECODERS)}"
        )

    return ResignSettings(
        codesign_path=str(
            pick("codesign_path", "DEBUGSIGN_CODESIGN", defaults.codesign_path)
        ),
        security_path=str(
            pick("security_path", "DEBUGSIGN_SECURITY", defaults.security_path)
        ),
        tool_timeout=_parse_timeout(
            pick("tool_timeout", "DEBUGSIGN_TOOL_TIMEOUT", None)
        ),
        output_suffix=output_suffix,
        work_dir=Path(work_dir).expanduser() if work_dir else None,
        profile_decoder=decoder,
        verbose=_parse_bool(pick("verbose", "DEBUGSIGN_VERBOSE", False)),
    )
