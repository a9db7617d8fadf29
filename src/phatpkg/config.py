"""Loads `phatpkg` settings from a TOML file."""

from collections.abc import Mapping
from pathlib import Path
import tomllib
from typing import Any

from attrs import define, field, fields

from .exceptions import ConfigError
from .tools import ToolPaths

DEFAULT_CONFIG_NAME = "phatpkg.toml"


@define(frozen=True, slots=True)
class PhatPkgConfig:
    fallback_dir: Path = field(factory=lambda: Path.home() / "Desktop")
    tool_timeout: float | None = field(default=None)
    download_timeout: float | None = field(default=60.0)
    verbose: bool = field(default=False)
    tools: ToolPaths = field(factory=ToolPaths)


def _timeout(section: Mapping[str, Any], key: str, default: float | None) -> float | None:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive number of seconds, got {value!r}")
    return float(value)


def config_from_mapping(section: Mapping[str, Any], base_dir: Path) -> PhatPkgConfig:
    defaults = PhatPkgConfig()

    fallback_dir = defaults.fallback_dir
    if "fallback_dir" in section:
        if not isinstance(section["fallback_dir"], str):
            raise ConfigError("'fallback_dir' must be a string path")
        fallback_dir = Path(section["fallback_dir"]).expanduser()
        if not fallback_dir.is_absolute():
            fallback_dir = base_dir / fallback_dir

    verbose = section.get("verbose", defaults.verbose)
    if not isinstance(verbose, bool):
        raise ConfigError("'verbose' must be true or false")

    tools_section = section.get("tools", {})
    if not isinstance(tools_section, Mapping):
        raise ConfigError("'tools' must be a table")
    tool_names = {f.name for f in fields(ToolPaths)}
    tool_overrides = {}
    for name, value in tools_section.items():
        if name not in tool_names:
            continue
        if not isinstance(value, str) or not value:
            raise ConfigError(f"Tool path for '{name}' must be a non-empty string")
        tool_overrides[name] = value

    return PhatPkgConfig(
        fallback_dir=fallback_dir,
        tool_timeout=_timeout(section, "tool_timeout", defaults.tool_timeout),
        download_timeout=_timeout(section, "download_timeout", defaults.download_timeout),
        verbose=verbose,
        tools=ToolPaths(**tool_overrides),
    )


def load_config(path: Path | None = None) -> PhatPkgConfig:
    """
    Reads `[tool.phatpkg]` (as found in a pyproject.toml) or a top-level
    `[phatpkg]` table. Without an explicit path, `phatpkg.toml` in the current
    directory is used when present.
    """
    explicit = path is not None
    config_path = path if path is not None else Path.cwd() / DEFAULT_CONFIG_NAME
    if not config_path.is_file():
        if explicit:
            raise ConfigError(f"Configuration file not found: {config_path}")
        return PhatPkgConfig()

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    section = data.get("tool", {}).get("phatpkg") or data.get("phatpkg") or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"The phatpkg section in {config_path} must be a table")
    return config_from_mapping(section, config_path.parent)
