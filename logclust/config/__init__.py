"""
logclust Configuration Module

YAML configuration for the training pipeline and the clustering engines.

Files are looked up in the directory named by the LOGCLUST_CONFIG_DIR
environment variable, falling back to the YAML files bundled with this
package (clustering.yaml carries the trainer defaults).

Usage:
    from logclust.config import get_config, ClusteringConfig

    raw = get_config("clustering")                 # plain dict
    config = ClusteringConfig.from_config()        # validated dataclass

    from logclust.config import ConfigLoader
    loader = ConfigLoader()
    alpha = loader.get("clustering", "alpha", default=0.1)
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from logclust.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "LOGCLUST_CONFIG_DIR"
PACKAGE_CONFIG_DIR = Path(__file__).resolve().parent


def resolve_config_dir() -> Path:
    """Directory holding the YAML files (env override or bundled defaults)."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return PACKAGE_CONFIG_DIR


class ConfigLoader:
    """
    Cached YAML loader, one instance per process.

    Entries are cached per (directory, name), so pointing LOGCLUST_CONFIG_DIR
    somewhere else never serves a stale file from the previous directory.
    """

    _instance: Optional["ConfigLoader"] = None
    _cache: Dict[Tuple[Path, str], Dict[str, Any]] = {}

    def __new__(cls) -> "ConfigLoader":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._cache = {}
        return cls._instance

    @property
    def config_dir(self) -> Path:
        return resolve_config_dir()

    def exists(self, name: str) -> bool:
        return (self.config_dir / f"{name}.yaml").exists()

    def load(self, name: str, reload: bool = False) -> Dict[str, Any]:
        """
        Load a configuration file by name.

        Args:
            name: File name without extension (e.g. "clustering")
            reload: Bypass the cache

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        directory = self.config_dir
        key = (directory, name)
        if not reload and key in self._cache:
            return self._cache[key]

        path = directory / f"{name}.yaml"
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config {name}: {e}")
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Config {path} must contain a mapping, got {type(config).__name__}"
            )

        self._cache[key] = config
        logger.debug(f"Loaded config: {name} ({len(config)} keys) from {directory}")
        return config

    def get(self, config_name: str, key: str, default: Any = None, required: bool = False) -> Any:
        """Single value from a config file, or default."""
        try:
            config = self.load(config_name)
        except FileNotFoundError:
            if required:
                raise
            logger.warning(f"Config {config_name} not found, using default for {key}")
            return default

        if key in config:
            return config[key]
        if required:
            raise KeyError(f"Required key '{key}' not found in config '{config_name}'")
        return default

    def clear_cache(self, name: Optional[str] = None) -> None:
        if name is None:
            self._cache.clear()
            logger.debug("Cleared all config cache")
            return
        for key in [k for k in self._cache if k[1] == name]:
            del self._cache[key]
        logger.debug(f"Cleared config cache: {name}")

    def list_configs(self) -> List[str]:
        if not self.config_dir.exists():
            return []
        return sorted(p.stem for p in self.config_dir.glob("*.yaml"))


def get_config(name: str, reload: bool = False) -> Dict[str, Any]:
    """Load a configuration by name."""
    return ConfigLoader().load(name, reload=reload)


from .clustering import ClusteringConfig  # noqa: E402

__all__ = [
    "ConfigLoader",
    "ClusteringConfig",
    "get_config",
    "resolve_config_dir",
    "CONFIG_DIR_ENV",
]
