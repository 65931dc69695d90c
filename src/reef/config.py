"""User preferences: twin suffix and output styling.

Loaded from a YAML file and the environment. These are preferences only; reef
keeps no record of what it has linked.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

import yaml

from reef.core.errors import UsageError
from reef.core.locator import DEFAULT_SUFFIX


@dataclass(frozen=True)
class Settings:
    suffix: str = DEFAULT_SUFFIX
    color: bool = True
    icons: bool = True


def default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """``$REEF_CONFIG``, else ``$XDG_CONFIG_HOME/reef/config.yaml``, else ``~/.config/reef/config.yaml``."""
    env = os.environ if env is None else env
    if env.get("REEF_CONFIG"):
        return Path(env["REEF_CONFIG"]).expanduser()
    config_home = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "reef" / "config.yaml"


def load_config_file(path: Path) -> dict:
    """Read the YAML preferences file.

    A missing file or one whose top level is not a mapping yields ``{}``.
    """
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise UsageError(str(path), f"invalid YAML: {e}") from e
    if not isinstance(raw, dict):
        return {}
    return raw


def _apply(settings: Settings, raw: Mapping, source: str) -> Settings:
    changes = {}
    if "suffix" in raw:
        suffix = raw["suffix"]
        if not isinstance(suffix, str) or not suffix:
            raise UsageError(source, "'suffix' must be a non-empty string")
        changes["suffix"] = suffix
    for key in ("color", "icons"):
        if key in raw:
            if not isinstance(raw[key], bool):
                raise UsageError(source, f"'{key}' must be true or false")
            changes[key] = raw[key]
    return replace(settings, **changes)


def load_settings(
    path: Path | None = None, env: Mapping[str, str] | None = None
) -> Settings:
    """Defaults, overlaid by the config file, overlaid by the environment.

    An explicitly given *path* must exist; the default location may be absent.
    """
    env = os.environ if env is None else env
    if path is not None and not path.is_file():
        raise UsageError(str(path), "config file not found")
    path = path if path is not None else default_config_path(env)

    settings = _apply(Settings(), load_config_file(path), str(path))
    if env.get("REEF_SUFFIX"):
        settings = replace(settings, suffix=env["REEF_SUFFIX"])
    if env.get("NO_COLOR"):
        settings = replace(settings, color=False)
    return settings
