"""
Settings are read in three layers, later ones winning key by key:

1. `default.yml` shipped in `toolstream.config`
2. `dev.yml` beside it, unless TOOLSTREAM_IGNORE_DEV_CONFIG is set
   (`_replaces_default: true` discards layer 1 instead of overlaying it)
3. TOOLSTREAM__SECTION__KEY environment variables, values parsed as YAML

The merged result is checked against the section models below, so unknown
keys and wrongly typed values fail at load time with the offending path.
"""
import os
from importlib import resources
from logging import getLevelNamesMapping
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from toolstream.core.errors import SettingsError

ENV_PREFIX = "TOOLSTREAM__"
IGNORE_DEV_ENV = "TOOLSTREAM_IGNORE_DEV_CONFIG"

Layer = Dict[str, Dict[str, Any]]


class ParserSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    streaming_tags: List[str] = Field(default_factory=lambda: ["thinking", "attempt_completion"])
    emit_on_forced_close: bool = False
    strict_content: bool = False


class CliSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chunk_size: int = Field(16, ge=1)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "WARNING"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in getLevelNamesMapping():
            raise ValueError(f"unknown logging level {v!r}")
        return level


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    parser: ParserSettings = Field(default_factory=ParserSettings)
    cli: CliSettings = Field(default_factory=CliSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def validate_settings(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    """Check a settings dict and return it with every default filled in."""
    try:
        return Settings.model_validate(cfg).model_dump()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise SettingsError(f"Invalid settings: {problems}") from e


def env_layer(environ: Optional[Mapping[str, str]] = None) -> Layer:
    """TOOLSTREAM__PARSER__STRICT_CONTENT=true -> {"parser": {"strict_content": True}}"""
    environ = os.environ if environ is None else environ
    layer: Layer = {}
    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        if len(path) != 2 or not all(path):
            raise SettingsError(f"{key}: expected {ENV_PREFIX}SECTION__KEY")
        section, name = path
        layer.setdefault(section, {})[name] = _parse_scalar(raw)
    return layer


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_dir: Optional[Any] = None,
) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    root = config_dir if config_dir is not None else resources.files("toolstream.config")

    cfg: Layer = {}
    _overlay(cfg, _read_layer(root / "default.yml"), "default.yml")

    dev_file = root / "dev.yml"
    if not _truthy(environ.get(IGNORE_DEV_ENV)) and dev_file.is_file():
        dev_cfg = _read_layer(dev_file)
        if dev_cfg.pop("_replaces_default", False):
            cfg = {}
        _overlay(cfg, dev_cfg, "dev.yml")

    _overlay(cfg, env_layer(environ), "environment")
    return validate_settings(cfg)


def _read_layer(path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SettingsError(f"{path.name}: invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"{path.name}: expected a mapping of sections, got {type(data).__name__}")
    return data


def _overlay(cfg: Layer, layer: Mapping[str, Any], source: str) -> None:
    for section, values in layer.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise SettingsError(f"{source}: section '{section}' must be a mapping")
        cfg.setdefault(section, {}).update(values)


def _parse_scalar(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")
