"""
Configuration Manager for Pair Stitching

Handles loading, saving, and validation of stitching configuration.
Out-of-range values are rejected here so the pipeline can treat its
parameters as already validated.
"""

import copy
import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import ConfigurationError
from .feature_extractor import DETECTOR_NAMES

logger = logging.getLogger(__name__)

SEAM_FINDERS = ("voronoi", "opencv", "none")


@dataclass(frozen=True)
class StitchConfig:
    """Flat, validated parameter set consumed by PairStitcher"""
    detector: str = "SIFT"
    max_features: int = 2000
    scale: float = 0.25
    use_ratio_test: bool = True
    ratio_threshold: float = 0.75
    ransac_reproj_threshold: float = 3.0
    ransac_max_iters: int = 2000
    ransac_confidence: float = 0.995
    seed: Optional[int] = None
    seam_finder: str = "voronoi"
    max_bands: int = 5

    def to_dict(self) -> Dict:
        return asdict(self)


class StitchConfigManager:
    """Manages stitching configuration stored as a nested JSON document"""

    DEFAULT_CONFIG = {
        "version": "1.0.0",
        "detector": {
            "name": "SIFT",
            "max_features": 2000
        },
        "preprocess": {
            "scale": 0.25
        },
        "matching": {
            "use_ratio_test": True,
            "ratio_threshold": 0.75
        },
        "ransac": {
            "reproj_threshold": 3.0,
            "max_iters": 2000,
            "confidence": 0.995,
            "seed": None
        },
        "seam": {
            "finder": "voronoi"
        },
        "blending": {
            "max_bands": 5
        }
    }

    SECTIONS = ("detector", "preprocess", "matching", "ransac", "seam", "blending")

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        create_if_missing: bool = True
    ):
        """
        Initialize configuration manager

        Args:
            config_path: Path to a JSON configuration file. When None the
                defaults are used and nothing is written to disk.
            create_if_missing: Write the defaults to `config_path` when the
                file does not exist; when False a missing file is an error.
        """
        self.config_path = Path(config_path) if config_path is not None else None
        self.create_if_missing = create_if_missing
        self.config: Dict = {}
        self._load_or_create_config()

    def _load_or_create_config(self) -> None:
        """Load configuration from file or create with defaults"""
        if self.config_path is None:
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)
            return

        if self.config_path.exists():
            self.config = self.load_config()
            logger.info(f"Loaded stitch config from {self.config_path}")
        elif not self.create_if_missing:
            raise ConfigurationError(f"Config file not found: {self.config_path}")
        else:
            logger.warning(f"Config file not found at {self.config_path}, creating with defaults")
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)
            self.save_config(self.config)

    def load_config(self) -> Dict:
        """
        Load configuration from file

        Returns:
            Dict: Configuration dictionary merged with defaults

        Raises:
            ConfigurationError: If the file is not valid JSON or fails validation
        """
        try:
            with open(self.config_path, 'r') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file: {e}")
            raise ConfigurationError(f"Invalid JSON in {self.config_path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"Config root in {self.config_path} must be an object")

        return self._validate_and_merge(config)

    def _validate_and_merge(self, config: Dict) -> Dict:
        """
        Validate configuration and merge with defaults for missing keys

        Args:
            config: Configuration to validate

        Returns:
            Dict: Validated configuration with defaults for missing keys
        """
        validated = copy.deepcopy(self.DEFAULT_CONFIG)

        if "version" in config:
            validated["version"] = config["version"]

        for section in self.SECTIONS:
            if section not in config:
                continue
            if not isinstance(config[section], dict):
                raise ConfigurationError(f"'{section}' must be an object, got {config[section]!r}")
            validated[section].update(config[section])

        self._validate_types(validated)

        return validated

    def _validate_types(self, config: Dict) -> None:
        """
        Validate configuration field types and ranges

        Raises:
            ConfigurationError: If any field is invalid
        """
        for section in self.SECTIONS:
            if not isinstance(config.get(section), dict):
                raise ConfigurationError(f"'{section}' must be an object")
            unknown = sorted(set(config[section]) - set(self.DEFAULT_CONFIG[section]))
            if unknown:
                raise ConfigurationError(
                    f"Unknown key(s) in '{section}': {', '.join(unknown)}"
                )

        name = config["detector"]["name"]
        if name not in DETECTOR_NAMES:
            raise ConfigurationError(
                f"'detector.name' must be one of {', '.join(DETECTOR_NAMES)}, got {name!r}"
            )

        max_features = config["detector"]["max_features"]
        if not _is_int(max_features) or max_features <= 0:
            raise ConfigurationError("'detector.max_features' must be positive integer")

        if not _is_number(config["preprocess"]["scale"]) or config["preprocess"]["scale"] <= 0:
            raise ConfigurationError("'preprocess.scale' must be positive number")

        if not isinstance(config["matching"]["use_ratio_test"], bool):
            raise ConfigurationError("'matching.use_ratio_test' must be boolean")

        ratio = config["matching"]["ratio_threshold"]
        if not _is_number(ratio) or ratio <= 0:
            raise ConfigurationError("'matching.ratio_threshold' must be positive number")

        ransac = config["ransac"]
        if not _is_number(ransac["reproj_threshold"]) or ransac["reproj_threshold"] <= 0:
            raise ConfigurationError("'ransac.reproj_threshold' must be positive number")

        if not _is_int(ransac["max_iters"]) or ransac["max_iters"] <= 0:
            raise ConfigurationError("'ransac.max_iters' must be positive integer")

        if not _is_number(ransac["confidence"]) or not 0.0 < ransac["confidence"] < 1.0:
            raise ConfigurationError("'ransac.confidence' must be between 0 and 1")

        if ransac["seed"] is not None and not _is_int(ransac["seed"]):
            raise ConfigurationError("'ransac.seed' must be integer or null")

        if config["seam"]["finder"] not in SEAM_FINDERS:
            raise ConfigurationError(
                f"'seam.finder' must be one of {', '.join(SEAM_FINDERS)}, got {config['seam']['finder']!r}"
            )

        max_bands = config["blending"]["max_bands"]
        if not _is_int(max_bands) or max_bands < 0:
            raise ConfigurationError("'blending.max_bands' must be non-negative integer")

    def save_config(self, config: Dict) -> bool:
        """
        Save configuration to file

        Args:
            config: Configuration dictionary to save

        Returns:
            bool: True if written, False if there is no config path
        """
        self._validate_types(config)
        self.config = config

        if self.config_path is None:
            return False

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(config, f, indent=2)

        logger.info(f"Saved stitch config to {self.config_path}")
        return True

    def update_config(self, updates: Dict, persist: bool = True) -> bool:
        """
        Update configuration with partial updates

        Args:
            updates: Dictionary with updates to apply, e.g.
                {"matching": {"ratio_threshold": 0.7}}
            persist: Save the result to the config file. When False the
                update only applies to this manager.

        Returns:
            bool: True if the updated config was written to disk
        """
        merged = copy.deepcopy(self.config)
        for key, value in updates.items():
            if key in merged and isinstance(value, dict) and isinstance(merged[key], dict):
                merged[key].update(value)
            else:
                merged[key] = value

        if not persist:
            self._validate_types(merged)
            self.config = merged
            return False

        return self.save_config(merged)

    def get_config(self) -> Dict:
        """Get a copy of the current configuration"""
        return copy.deepcopy(self.config)

    def get_stitch_config(self) -> StitchConfig:
        """Flatten the current configuration into a StitchConfig"""
        c = self.config
        return StitchConfig(
            detector=c["detector"]["name"],
            max_features=int(c["detector"]["max_features"]),
            scale=float(c["preprocess"]["scale"]),
            use_ratio_test=c["matching"]["use_ratio_test"],
            ratio_threshold=float(c["matching"]["ratio_threshold"]),
            ransac_reproj_threshold=float(c["ransac"]["reproj_threshold"]),
            ransac_max_iters=int(c["ransac"]["max_iters"]),
            ransac_confidence=float(c["ransac"]["confidence"]),
            seed=c["ransac"]["seed"],
            seam_finder=c["seam"]["finder"],
            max_bands=int(c["blending"]["max_bands"]),
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
