"""
ConfigManager: dot-notation access to leaderboard tunables.

Values resolve in three layers, highest first:

1. in-process overrides (`set_override`), used by tests and operators
2. every ``*.yaml`` / ``*.yml`` file under ``Config.CONFIG_DIR``, deep-merged
   in sorted path order
3. the built-in defaults below

Loading happens on the first read. Unreadable files and files whose root
is not a mapping are logged and skipped. Reads never raise; an unknown key
yields the caller's default.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from rankboard.core.config.config import Config
from rankboard.core.logging.logger import get_logger

logger = get_logger(__name__)


_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "leaderboard": {
        "event_limit": 100,
        "top_performers_limit": 20,
        "college_limit": 20,
        "college_policy": "exact",
        "max_points_per_update": 1_000_000,
        "max_achievements_per_update": 50,
    },
    "realtime": {
        "send_timeout_seconds": 2.0,
    },
    "core": {
        "event": {
            "listener_timeout": {
                "critical_seconds": 5.0,
                "high_seconds": 5.0,
            },
        },
    },
}

_MISSING = object()

__all__ = ["ConfigManager"]


def _merge_into(base: Dict[str, Any], incoming: Dict[str, Any]) -> None:
    for key, value in incoming.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            base[key] = value


def _yaml_files(config_dir: Path) -> Iterator[Path]:
    patterns = ("*.yaml", "*.yml")
    yield from sorted(p for pattern in patterns for p in config_dir.rglob(pattern))


def _read_mapping(path: Path) -> Optional[Dict[str, Any]]:
    """Parsed mapping, or None when the file cannot be used."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning(
            "Skipping unreadable YAML config",
            extra={"file": str(path), "error_type": type(exc).__name__, "error": str(exc)},
        )
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Skipping YAML config whose root is not a mapping",
            extra={"file": str(path), "root_type": type(data).__name__},
        )
        return None
    return data


class ConfigManager:
    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False
    _loaded_files: List[str] = []

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Load defaults plus YAML from `config_dir` (default `Config.CONFIG_DIR`). Idempotent."""
        if cls._initialized:
            return

        root = Path(config_dir or Config.CONFIG_DIR)
        merged = copy.deepcopy(_BUILTIN_DEFAULTS)
        loaded: List[str] = []

        if root.is_dir():
            for path in _yaml_files(root):
                mapping = _read_mapping(path)
                if mapping is None:
                    continue
                _merge_into(merged, mapping)
                loaded.append(str(path.relative_to(root)))
        else:
            logger.warning(
                "Config directory missing; built-in defaults only",
                extra={"config_dir": str(root)},
            )

        cls._defaults = merged
        cls._loaded_files = loaded
        cls._initialized = True
        logger.info(
            "ConfigManager initialized",
            extra={"yaml_files": loaded, "sections": sorted(merged)},
        )

    @classmethod
    def reset(cls) -> None:
        """Drop everything loaded, overrides included. The next read reloads."""
        cls._defaults = {}
        cls._overrides = {}
        cls._loaded_files = []
        cls._initialized = False

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Value at dot-path `key`, e.g. ``"leaderboard.event_limit"``.

        >>> ConfigManager.get("leaderboard.unknown", 5)
        5
        """
        if not cls._initialized:
            cls.initialize()

        if key in cls._overrides:
            return cls._overrides[key]

        node: Any = cls._defaults
        for part in key.split("."):
            node = node.get(part, _MISSING) if isinstance(node, dict) else _MISSING
            if node is _MISSING:
                return default
        return default if node is None else node

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        cls._overrides[key] = value
        logger.info("Config override set", extra={"config_key": key, "value": value})

    @classmethod
    def clear_overrides(cls) -> None:
        cls._overrides = {}
