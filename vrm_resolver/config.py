"""
Resolver configuration.

Defaults live in DEFAULT_CONFIG. An optional JSON file is merged over them,
then environment variables override individual keys so secrets never need
to be written to disk.

Usage:
    config = load_config()                  # defaults + env
    config = load_config("resolver.json")   # defaults + file + env
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    # Government vehicle-enquiry registry
    "registry_url": "https://driver-vehicle-licensing.api.gov.uk/vehicle-enquiry/v1/vehicles",
    "registry_api_key": "",
    "registry_call_cost": 0.02,
    # Commercial history/specs provider
    "specs_base_url": "https://api.checkcardetails.co.uk",
    "specs_api_key": "",
    "specs_datapoint": "ukvehicledata",
    "specs_call_cost": 1.96,
    "specs_test_mode": False,
    # Orchestration
    "provider_timeout": 10.0,     # seconds, per provider call
    "max_retries": 1,             # network-error retries per provider
    "retry_backoff": 1.0,         # seconds, doubled per attempt
    # Cache
    "freshness_days": 30,
    "cache_path": "",             # empty = in-memory store
}

# Environment variable -> config key
ENV_OVERRIDES: Dict[str, str] = {
    "VRM_REGISTRY_URL": "registry_url",
    "VRM_REGISTRY_API_KEY": "registry_api_key",
    "VRM_SPECS_BASE_URL": "specs_base_url",
    "VRM_SPECS_API_KEY": "specs_api_key",
    "VRM_SPECS_DATAPOINT": "specs_datapoint",
    "VRM_SPECS_TEST_MODE": "specs_test_mode",
    "VRM_PROVIDER_TIMEOUT": "provider_timeout",
    "VRM_MAX_RETRIES": "max_retries",
    "VRM_RETRY_BACKOFF": "retry_backoff",
    "VRM_FRESHNESS_DAYS": "freshness_days",
    "VRM_CACHE_PATH": "cache_path",
}


@dataclass
class ResolverConfig:
    """Typed view of the merged configuration."""
    registry_url: str
    registry_api_key: str
    registry_call_cost: float
    specs_base_url: str
    specs_api_key: str
    specs_datapoint: str
    specs_call_cost: float
    specs_test_mode: bool
    provider_timeout: float
    max_retries: int
    retry_backoff: float
    freshness_days: int
    cache_path: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolverConfig":
        """Build from a config dict, coercing values to the declared types."""
        merged = {**DEFAULT_CONFIG, **data}
        kwargs = {}
        for f in fields(cls):
            kwargs[f.name] = _coerce(merged[f.name], DEFAULT_CONFIG[f.name])
        return cls(**kwargs)


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return "" if value is None else str(value)


def load_config(path: Optional[Union[str, Path]] = None) -> ResolverConfig:
    """
    Load configuration.

    Args:
        path: Optional JSON file whose keys override the defaults.
            A missing or unreadable file is logged and ignored.

    Returns:
        ResolverConfig with environment overrides applied last.
    """
    config = DEFAULT_CONFIG.copy()

    if path:
        config_file = Path(path)
        if config_file.exists():
            try:
                with open(config_file) as f:
                    saved = json.load(f)
                unknown = set(saved) - set(DEFAULT_CONFIG)
                if unknown:
                    logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
                config.update({k: v for k, v in saved.items() if k in DEFAULT_CONFIG})
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Error loading config {config_file}: {e}")
        else:
            logger.warning(f"Config file not found: {config_file}")

    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None and value != "":
            config[key] = value

    return ResolverConfig.from_dict(config)
