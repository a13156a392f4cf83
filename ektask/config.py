from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.config/ek/config.yml")
DEFAULT_DB_PATH = os.path.expanduser("~/.ek/tasks.db")
DEFAULT_LOG_PATH = os.path.expanduser("~/.ek/ek.log")


def _default_editor() -> str:
    return os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"


@dataclass
class Config:
    db: str = DEFAULT_DB_PATH
    prompt: str = "> "
    log_level: str = "ERROR"
    log_file: str = DEFAULT_LOG_PATH
    editor: str = field(default_factory=_default_editor)
    include_deleted: bool = False
    cursor_timeout: float = 1.0


def _expect(raw: dict, key: str, kind, label: str):
    value = raw.get(key)
    if value is None:
        return None
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ConfigError(f"Config: '{key}' must be {label}, got {value!r}")
    return value


def load_config(path: Optional[str] = None) -> Config:
    """Read a YAML config file; a missing default file yields defaults.

    An explicitly given path must exist.
    """
    explicit = path is not None
    path = os.path.expanduser(path) if path else DEFAULT_CONFIG_PATH
    if not os.path.isfile(path):
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return Config()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config: cannot parse {path}: {exc}") from exc
    if raw is None:
        return Config()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config: {path} must contain a mapping")

    cfg = Config()
    db = _expect(raw, "db", str, "a path")
    if db:
        cfg.db = os.path.expanduser(db)
    log_file = _expect(raw, "log_file", str, "a path")
    if log_file:
        cfg.log_file = os.path.expanduser(log_file)
    prompt = _expect(raw, "prompt", str, "a string")
    if prompt is not None:
        cfg.prompt = prompt
    log_level = _expect(raw, "log_level", str, "a level name")
    if log_level:
        cfg.log_level = log_level.upper()
    editor = _expect(raw, "editor", str, "a command")
    if editor:
        cfg.editor = editor
    include_deleted = _expect(raw, "include_deleted", bool, "true or false")
    if include_deleted is not None:
        cfg.include_deleted = include_deleted
    timeout = _expect(raw, "cursor_timeout", float, "a number of seconds")
    if timeout is not None:
        if timeout <= 0:
            raise ConfigError("Config: 'cursor_timeout' must be positive")
        cfg.cursor_timeout = timeout
    return cfg
