"""Dotted-path configuration overrides and logging setup for the run driver."""
from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Sequence

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_scalar_yaml = YAML(typ="safe")


def parse_override_value(raw: str) -> Any:
    """Read an override value as a YAML scalar, as if written in the config file.

    ``true``, ``null``, numbers and quoted strings get their YAML meaning;
    anything that is not a plain scalar is kept as the literal text.
    """

    text = raw.strip()
    try:
        value = _scalar_yaml.load(text)
    except YAMLError:
        return text
    if isinstance(value, (dict, list)):
        return text
    return value


def set_dotted(payload: MutableMapping[str, Any], dotted_key: str, value: Any) -> None:
    """Set ``payload[a][b][c] = value`` for ``dotted_key == "a.b.c"``.

    Missing or null intermediate sections are created.
    """

    parts = [segment for segment in dotted_key.strip().split(".") if segment]
    if not parts:
        raise ConfigurationError(f"Empty configuration path in {dotted_key!r}")
    section: Any = payload
    for depth, segment in enumerate(parts[:-1]):
        if section.get(segment) is None:
            section[segment] = {}
        section = section[segment]
        if not isinstance(section, MutableMapping):
            where = ".".join(parts[: depth + 1])
            raise TypeError(f"Cannot set {dotted_key!r}: {where!r} is not a mapping")
    section[parts[-1]] = value


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Apply ``PATH=VALUE`` strings to a configuration dictionary in place."""

    for item in overrides or ():
        dotted_key, sep, raw_value = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Invalid override {item!r}; expected PATH=VALUE")
        value = parse_override_value(raw_value)
        set_dotted(payload, dotted_key, value)
        logger.debug("override %s=%r", dotted_key.strip(), value)
    return payload


def read_overrides_file(path: Path) -> List[str]:
    """Return PATH=VALUE lines from ``path``, skipping blanks and ``#`` comments."""

    with Path(path).open("r", encoding="utf-8") as fh:
        lines = [line.strip() for line in fh]
    return [line for line in lines if line and not line.startswith("#")]


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Route package logs and Python warnings to stderr at ``level``."""

    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger("simrestart").setLevel(level)
    logging.captureWarnings(True)
    if suppress_warnings:
        warnings.simplefilter("ignore")


__all__ = [
    "parse_override_value",
    "set_dotted",
    "apply_overrides_dict",
    "read_overrides_file",
    "configure_logging",
]
