# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/config/manager.py

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Callable, Final, Optional, Union

import yaml
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from lsm.data.models import BatchConfig, SubmoduleConfig
from lsm.system.exceptions import ConfigError


# ---- Constants ----

CONFIG_FILENAME: Final = ".lsmrc"
DEFAULT_JOBS: Final = 4

_MISSING = object()


def global_config_path() -> Path:
    """Location of the global config file.

    Evaluated at call time so LSM_CONFIG_HOME can be changed by tests.
    """
    override = os.getenv("LSM_CONFIG_HOME")
    if override:
        return Path(override) / CONFIG_FILENAME
    return Path.home() / CONFIG_FILENAME


def deep_merge(base: dict, override: dict) -> dict:
    """Merge override onto base; nested mappings merge, everything else replaces."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _load_config_file(path: Path) -> dict:
    """Read one config tier. A missing file is an empty tier."""
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=str(path))

    logger.debug(f"Loaded config from {path}")
    return data


def _save_config_file(path: Path, data: dict) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigError(f"Failed to save config to {path}: {e}", path=str(path)) from e
    logger.debug(f"Saved config to {path}")


def _split_key(key: str) -> list[str]:
    parts = key.split(".")
    if not key or any(not part for part in parts):
        raise ConfigError(f"Invalid config key: {key!r}")
    return parts


class ConfigManager:
    """Global + project-local key/value configuration.

    The merged view puts the project-local tier over the global one. Writes
    only touch the requested tier's file and then reload the merged view.
    """

    def __init__(self, repo_path: Optional[Path] = None, global_path: Optional[Path] = None) -> None:
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.global_path = Path(global_path) if global_path else global_config_path()
        self.local_path = self.repo_path / CONFIG_FILENAME
        self._config: Optional[dict] = None

    def load(self) -> dict:
        global_config = _load_config_file(self.global_path)
        local_config = _load_config_file(self.local_path)
        self._config = deep_merge(global_config, local_config)
        return self._config

    @property
    def config(self) -> dict:
        if self._config is None:
            self.load()
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Walk a dotted key through the merged tree."""
        value: Any = self.config
        for part in _split_key(key):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def get_all(self) -> dict:
        return copy.deepcopy(self.config)

    def _tier_path(self, global_: bool) -> Path:
        return self.global_path if global_ else self.local_path

    def _mutate(self, global_: bool, change: Callable[[dict], bool]) -> None:
        """Apply change() to one tier's data and persist it when it reports a change."""
        path = self._tier_path(global_)
        data = _load_config_file(path)
        if change(data):
            _save_config_file(path, data)
        self.load()

    def set(self, key: str, value: Any, global_: bool = False) -> None:
        parts = _split_key(key)

        def change(data: dict) -> bool:
            current = data
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = value
            return True

        self._mutate(global_, change)

    def unset(self, key: str, global_: bool = False) -> None:
        parts = _split_key(key)

        def change(data: dict) -> bool:
            current = data
            for part in parts[:-1]:
                current = current.get(part)
                if not isinstance(current, dict):
                    return False
            return current.pop(parts[-1], _MISSING) is not _MISSING

        self._mutate(global_, change)

    # ---- Concurrency default ----

    def resolve_jobs(self, jobs: Optional[int] = None) -> int:
        """Explicit job count, else ``default.jobs``, else 4; always >= 1."""
        value = jobs if jobs is not None else self.get("default.jobs", DEFAULT_JOBS)
        try:
            resolved = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid job count: {value!r}") from e
        if resolved < 1:
            raise ConfigError(f"Job count must be at least 1, got {resolved}")
        return resolved

    # ---- Presets ----

    def save_preset(
        self,
        name: str,
        configs: list[Union[SubmoduleConfig, dict]],
        global_: bool = False,
    ) -> None:
        entries = [_validate_submodule_config(c).model_dump(exclude_none=True) for c in configs]

        def change(data: dict) -> bool:
            if not isinstance(data.get("presets"), dict):
                data["presets"] = {}
            data["presets"][name] = entries
            return True

        self._mutate(global_, change)

    def get_preset(self, name: str) -> Optional[list[SubmoduleConfig]]:
        presets = self.get("presets", {}) or {}
        if name not in presets:
            return None
        entries = presets[name]
        if not isinstance(entries, list):
            raise ConfigError(f"Preset '{name}' must be a list of submodule configs")
        return [_validate_submodule_config(entry) for entry in entries]

    def list_presets(self) -> list[str]:
        return list((self.get("presets", {}) or {}).keys())

    def delete_preset(self, name: str, global_: bool = False) -> None:
        def change(data: dict) -> bool:
            presets = data.get("presets")
            if isinstance(presets, dict) and name in presets:
                del presets[name]
                return True
            return False

        self._mutate(global_, change)

    # ---- Aliases ----

    def set_alias(self, alias: str, command: str, global_: bool = False) -> None:
        def change(data: dict) -> bool:
            if not isinstance(data.get("aliases"), dict):
                data["aliases"] = {}
            data["aliases"][alias] = command
            return True

        self._mutate(global_, change)

    def get_alias(self, alias: str) -> Optional[str]:
        return (self.get("aliases", {}) or {}).get(alias)

    def list_aliases(self) -> dict[str, str]:
        return dict(self.get("aliases", {}) or {})

    def delete_alias(self, alias: str, global_: bool = False) -> None:
        def change(data: dict) -> bool:
            aliases = data.get("aliases")
            if isinstance(aliases, dict) and alias in aliases:
                del aliases[alias]
                return True
            return False

        self._mutate(global_, change)

    # ---- Batch files ----

    @staticmethod
    def load_batch_config(file_path: Union[str, Path]) -> list[SubmoduleConfig]:
        """Read a batch-add file: a mapping with a ``submodules`` list."""
        path = Path(file_path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load batch config from {path}: {e}", path=str(path)) from e

        if not isinstance(data, dict) or not isinstance(data.get("submodules"), list):
            raise ConfigError("Invalid batch config file format", path=str(path))

        try:
            return BatchConfig.model_validate(data).submodules
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid batch config file format: {e}", path=str(path)) from e


def _validate_submodule_config(entry: Union[SubmoduleConfig, dict]) -> SubmoduleConfig:
    if isinstance(entry, SubmoduleConfig):
        return entry
    try:
        return SubmoduleConfig.model_validate(entry)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid submodule config: {e}") from e


# done.
