"""
Engine configuration.

Module-level configuration shared by every data source. Mirrors the
set/get pattern used for base config types: callers install a config once at
startup (or per test) and components read it lazily at the point of use.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Tunable engine behavior.

    Attributes:
        single_key: Synthetic key under which single-record sources track their value.
        legacy_single_keys: Older key spellings still accepted for property tracking.
        metadata_extension: Suffix of the side-channel metadata file next to an asset payload.
        copy_on_read: When True, data sources hand out deep copies of working values so
            callers can only mutate tracked state through the tracking API.
    """
    single_key: str = "__single__"
    legacy_single_keys: Tuple[str, ...] = field(default=("single",))
    metadata_extension: str = ".datrameta"
    copy_on_read: bool = True


_DEFAULT_CONFIG = EngineConfig()
_engine_config: EngineConfig = _DEFAULT_CONFIG


def set_engine_config(config: EngineConfig) -> None:
    """Install the engine configuration used by data sources created afterwards."""
    global _engine_config
    if not isinstance(config, EngineConfig):
        raise TypeError(f"Expected EngineConfig, got {type(config).__name__}")
    _engine_config = config
    logger.debug(f"Engine config set: {config}")


def get_engine_config() -> EngineConfig:
    """Get the active engine configuration."""
    return _engine_config


def update_engine_config(**changes: Any) -> EngineConfig:
    """Replace selected fields of the active configuration and return the result."""
    config = replace(_engine_config, **changes)
    set_engine_config(config)
    return config


def reset_engine_config() -> None:
    """Restore the default configuration."""
    set_engine_config(_DEFAULT_CONFIG)
