# settings.py
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from .errors import ConfigError
from .ui.console import get_console

DEFAULT_CONFIG_FILES = (".pipedef.toml", "/etc/pipedef.toml")

ENV_PREFIX = "PIPEDEF_"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class Settings:
    templates_dir: Optional[str] = None
    strict: bool = False
    separator: str = ", "
    guard: str = '"'
    show_type: bool = True
    debug: bool = False


_FIELD_TYPES = {f.name: f.type for f in fields(Settings)}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"Setting {name!r} expects a boolean, got {value!r}")
    if not isinstance(value, str):
        raise ConfigError(f"Setting {name!r} expects a string, got {value!r}")
    return value


def read_config_file(path: str | Path) -> Dict[str, Any]:
    """
    Read the [pipedef] table of a TOML file (or the top level if absent).

    Raises:
        OSError: the file cannot be opened
        ConfigError: the file is not valid TOML or names unknown settings
    """
    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    table = data.get("pipedef", data)
    unknown = sorted(set(table) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigError(f"Unknown setting(s) in {path}: {unknown}")
    return {k: _coerce(k, v) for k, v in table.items()}


def merge_config_files(extra: Sequence[str | Path] = (), defaults: Iterable[str] = DEFAULT_CONFIG_FILES) -> Dict[str, Any]:
    """
    Merge config files; a key set by an earlier file wins over later files.
    Files that cannot be opened are skipped.
    """
    console = get_console()
    merged: Dict[str, Any] = {}
    for path in [*extra, *defaults]:
        try:
            values = read_config_file(path)
        except OSError as e:
            console.print_debug(f"Unable to open config path: {e}")
            continue
        console.print_debug(f"Loaded config file {path}")
        for k, v in values.items():
            merged.setdefault(k, v)
    return merged


def from_env(environ: Mapping[str, str] = os.environ) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in _FIELD_TYPES:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            out[name] = _coerce(name, environ[key])
    return out


def load_settings(
    config_files: Sequence[str | Path] = (),
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Mapping[str, str] = os.environ,
    defaults: Iterable[str] = DEFAULT_CONFIG_FILES,
) -> Settings:
    """
    Resolve settings. Priority: overrides (CLI flags) > environment > config files > defaults.
    None values in overrides mean "not given".
    """
    values = merge_config_files(config_files, defaults=defaults)
    values.update(from_env(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return replace(Settings(), **values)
