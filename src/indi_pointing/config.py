"""
Driver configuration.

Settings are read from a YAML file and merged over built-in defaults. The
file is looked up at an explicit path, then $INDI_POINTING_CONFIG, then
config.yaml next to this module. A few values can also be overridden from
the environment.
"""

import copy
import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(BASE_DIR, "config.yaml")
DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "observer": {"latitude": 50.1822, "longitude": 19.7925, "elevation": 400},
    "driver": {
        "slew_rate": 3.0,
        "poll_interval": 1.0,
        "unpark_policy": "idle",
        "goto_mode": "radec",
    },
    "initial_position": {"ra": 0.0, "dec": 90.0},
}

UNPARK_POLICIES = ("idle", "tracking")
GOTO_MODES = ("radec", "altaz")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for section, values in override.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Checks value ranges, raising ValueError on the first bad entry."""
    obs = config["observer"]
    drv = config["driver"]
    pos = config["initial_position"]

    if not -90.0 <= float(obs["latitude"]) <= 90.0:
        raise ValueError(f"observer.latitude out of range: {obs['latitude']}")
    if not -360.0 <= float(obs["longitude"]) <= 360.0:
        raise ValueError(f"observer.longitude out of range: {obs['longitude']}")
    if float(drv["slew_rate"]) <= 0:
        raise ValueError(f"driver.slew_rate must be positive: {drv['slew_rate']}")
    if float(drv["poll_interval"]) <= 0:
        raise ValueError(
            f"driver.poll_interval must be positive: {drv['poll_interval']}"
        )
    if str(drv["unpark_policy"]).lower() not in UNPARK_POLICIES:
        raise ValueError(f"driver.unpark_policy must be one of {UNPARK_POLICIES}")
    if str(drv["goto_mode"]).lower() not in GOTO_MODES:
        raise ValueError(f"driver.goto_mode must be one of {GOTO_MODES}")
    if not -90.0 <= float(pos["dec"]) <= 90.0:
        raise ValueError(f"initial_position.dec out of range: {pos['dec']}")
    return config


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads configuration from YAML file or returns defaults.

    Args:
        path: Explicit config file. A missing explicit file is an error;
            a missing default file silently yields the defaults.

    Returns:
        dict: Configuration with `observer`, `driver` and `initial_position`
        sections.
    """
    explicit = path or os.environ.get("INDI_POINTING_CONFIG")
    config_path = explicit or CONFIG_PATH

    loaded: Dict[str, Any] = {}
    if explicit and not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        logger.debug("Loaded config from %s", config_path)

    config = _merge(DEFAULT_CONFIG, loaded)

    if "SLEW_RATE" in os.environ:
        config["driver"]["slew_rate"] = float(os.environ["SLEW_RATE"])
    if "POLL_INTERVAL" in os.environ:
        config["driver"]["poll_interval"] = float(os.environ["POLL_INTERVAL"])

    return validate_config(config)
