"""
Sandbox configuration.

Settings come from three layers, later ones winning: the dataclass
defaults, a YAML file (``$XDG_CONFIG_HOME/physynth/config.yaml`` or
``--config PATH``) and command-line flags.
"""

import argparse
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """The configuration file or a setting in it is invalid."""


@dataclass
class Config:
    pause: bool = False
    gravity_x: float = 0.0
    gravity_y: float = 0.0
    attraction: float = 0.01
    scale_factor: float = 1.0
    win_width: float = 1280.0
    win_height: float = 720.0
    sample_rate: Optional[float] = None  # device default when unset
    channels: int = 2
    log_level: str = "WARNING"

    def update(self, values: Dict[str, Any]) -> None:
        """Apply a mapping of settings, checking names and types."""
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if key not in known:
                raise ConfigError(f"unknown setting: {key}")
            setattr(self, key, _coerce(key, known[key].default, value))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(key: str, default: Any, value: Any) -> Any:
    if value is None:
        if key == "sample_rate":
            return None
        raise ConfigError(f"{key} can't be empty")
    if key == "log_level":
        level = str(value).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false")
        return value
    if key == "channels":
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigError("channels must be a positive integer")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number")
    return float(value)


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / "physynth" / "config.yaml"


def load_config_file(path: Path) -> Dict[str, Any]:
    import yaml

    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping of settings")
    return data


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Global flags overriding the configuration file."""
    parser.add_argument("--config", metavar="PATH", help="Configuration file (YAML)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Logging level")
    parser.add_argument("--pause", action="store_true", default=None,
                        help="Start with the simulation paused")
    parser.add_argument("--gravity", nargs=2, type=float, metavar=("X", "Y"))
    parser.add_argument("--attraction", type=float)
    parser.add_argument("--scale-factor", type=float)
    parser.add_argument("--win-width", type=float)
    parser.add_argument("--win-height", type=float)
    parser.add_argument("--sample-rate", type=float)
    parser.add_argument("--channels", type=int)


def resolve_config(args: argparse.Namespace) -> Config:
    config = Config()
    path = Path(args.config) if getattr(args, "config", None) else default_config_path()
    if path.exists():
        logger.info("loading configuration from %s", path)
        config.update(load_config_file(path))
    elif getattr(args, "config", None):
        raise ConfigError(f"configuration file not found: {path}")

    overrides: Dict[str, Any] = {}
    for name in ("pause", "attraction", "scale_factor", "win_width", "win_height",
                 "sample_rate", "channels", "log_level"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    gravity = getattr(args, "gravity", None)
    if gravity is not None:
        overrides["gravity_x"], overrides["gravity_y"] = gravity
    config.update(overrides)
    return config


def dump_config(config: Config) -> str:
    import yaml

    return yaml.safe_dump(config.to_dict(), sort_keys=False)
