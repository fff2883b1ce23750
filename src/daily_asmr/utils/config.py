"""
Configuration management for the daily mortality pipeline.
"""

import copy
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._load_config()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next Config() reloads from disk."""
        cls._instance = None

    def _load_config(self):
        """Load configuration from YAML file."""
        defaults = self._get_default_config()
        try:
            config_path = Path(__file__).parent.parent / "config.yaml"
            if not config_path.exists():
                self._create_default_config(config_path)

            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
            self._config = _deep_merge(defaults, loaded)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading configuration: {e}")
            self._config = defaults

    def _create_default_config(self, config_path: Path):
        """Create default configuration file if it doesn't exist."""
        config = self._get_default_config()
        with open(config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return {
            "baseline": {
                "start_year": 2013,
                "end_year": 2019,
                "anchor_offset_years": 12,
                "day_step": 365.25
            },
            "reference": {
                "population_date": None
            },
            "runtime": {
                "workers": 1
            },
            "data": {
                "deaths_file": "data/deaths.csv",
                "population_file": "data/population.csv",
                "output_dir": "output",
                "output_format": "csv"
            },
            "visualization": {
                "seaborn_style": "whitegrid",
                "dpi": 300,
                "figure_sizes": {
                    "actual_vs_expected": [12, 6],
                    "cumulative_excess": [12, 6]
                }
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "file": None
            }
        }

    def update_from_file(self, path: Union[str, Path]) -> None:
        """Merge a user YAML file over the current configuration."""
        path = Path(path)
        with open(path, "r") as f:
            override = yaml.safe_load(f) or {}
        if not isinstance(override, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        self._config = _deep_merge(self._config, override)
        logger.info(f"Loaded configuration overrides from {path}")

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using a dotted key."""
        keys = key.split('.')
        current = self._config
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get a configuration value."""
        try:
            current = self._config
            for k in key.split('.'):
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default
