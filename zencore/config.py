"""
config.py
Load settings from TOML (Python 3.11+ tomllib).
Search order:
  1) explicit --config path
  2) $ZENCORE_CONFIG
  3) $XDG_CONFIG_HOME/zencore/config.toml (~/.config/zencore/config.toml)
A missing file means built-in defaults.
"""
from __future__ import annotations

import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import CONTAINER_KINDS, DEFAULT_DATE_FORMAT, KIND_TAR_ZST
from .errors import UnknownCipher
from .encryption import parse_cipher

APP_NAME = "zencore"


def _xdg(var: str, fallback: str) -> Path:
    base = os.environ.get(var)
    return Path(base) if base else Path.home() / fallback


def default_config_path() -> Path:
    return _xdg("XDG_CONFIG_HOME", ".config") / APP_NAME / "config.toml"


def default_state_dir() -> Path:
    return _xdg("XDG_DATA_HOME", ".local/share") / APP_NAME


@dataclass
class Config:
    default_algorithm: str = KIND_TAR_ZST
    date_format: str = DEFAULT_DATE_FORMAT
    default_cipher: str = "aes-256-gcm"
    hash_algorithms: List[str] = field(default_factory=lambda: ["sha256"])
    num_threads: int = 0
    compression_level: Optional[int] = None
    encrypt_by_default: bool = False
    default_backup_destination: str = ""
    state_dir: Path = field(default_factory=default_state_dir)


def _gv(d: Dict[str, Any], path: list[str], default=None):
    cur = d
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def find_config(path_arg: str | None = None) -> Path:
    """Pick the config path based on CLI arg and environment."""
    if path_arg:
        p = Path(path_arg).expanduser()
        if not p.exists():
            raise FileNotFoundError(f"Specified config file does not exist: {path_arg}")
        return p
    env = os.environ.get("ZENCORE_CONFIG")
    if env:
        return Path(env).expanduser()
    return default_config_path()


def load_config(path: Optional[Path] = None) -> Config:
    """Read ``path`` (or the default location) into a Config.

    Values that fail validation are reported and replaced by defaults.
    """
    path = path or find_config()
    defaults = Config()
    if not path.exists():
        return defaults
    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            print(f"Warning: cannot parse {path}: {exc}; using defaults", file=sys.stderr)
            return defaults

    def gv(keys, default=None):
        return _gv(raw, keys, default)

    algorithm = str(gv(["default_algorithm"], defaults.default_algorithm)).lower()
    if algorithm not in CONTAINER_KINDS:
        print(f"Warning: unknown default_algorithm {algorithm!r} in {path}; using {defaults.default_algorithm}", file=sys.stderr)
        algorithm = defaults.default_algorithm

    cipher = str(gv(["default_cipher"], defaults.default_cipher) or defaults.default_cipher)
    try:
        parse_cipher(cipher)
    except UnknownCipher as exc:
        print(f"Warning: {exc} in {path}; using {defaults.default_cipher}", file=sys.stderr)
        cipher = defaults.default_cipher

    hashes = gv(["hash_algorithms"], None)
    if hashes is None:
        single = gv(["default_hash_algorithm"], None)
        hashes = [single] if single else list(defaults.hash_algorithms)
    if isinstance(hashes, str):
        hashes = [hashes]

    level = gv(["compression_level"], None)
    if level is not None and not isinstance(level, int):
        print(f"Warning: invalid compression_level {level!r} in {path}; using the container default", file=sys.stderr)
        level = None
    try:
        threads = int(gv(["num_threads"], 0) or 0)
    except (TypeError, ValueError):
        print(f"Warning: invalid num_threads in {path}; auto-detecting", file=sys.stderr)
        threads = 0

    state_dir = gv(["state_dir"], None)
    return Config(
        default_algorithm=algorithm,
        date_format=str(gv(["date_format"], defaults.date_format)),
        default_cipher=cipher,
        hash_algorithms=[str(h) for h in hashes],
        num_threads=threads,
        compression_level=level,
        encrypt_by_default=bool(gv(["encrypt_by_default"], False)),
        default_backup_destination=str(gv(["default_backup_destination"], "")),
        state_dir=Path(state_dir).expanduser() if state_dir else defaults.state_dir,
    )
