"""
Runtime configuration.

Settings come from three layers, later ones winning:
1. RuntimeConfig defaults
2. config.yaml (parsed with PyYAML)
3. STRATEGYKIT_<FIELD> environment variables, optionally loaded from .env
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .core.errors import ConfigError


ENV_PREFIX = "STRATEGYKIT_"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"


class RuntimeConfig(BaseModel):
    """
    Tunables of a StrategyKit runtime.

    Attributes:
        default_tick_interval: Minimum re-fire interval (ms) of symbol tick events
        max_inactive_tasks: Completed/cancelled trigger tasks kept per trigger
        log_max_messages: Journal records kept per log level
        max_errors_tester: Errors tolerated in tester mode before a forced stop
        max_errors_live: Errors tolerated per error_window in live mode
        error_window: Live-mode error counting window in ms
        max_orders_tester: Order updates accepted in tester mode
        candles_max_length: Bars kept per candle buffer
        candles_preload_count: Bars preloaded from history on buffer init
        is_trade_allowed: Master switch checked by the exchange facade
        log_level: Level of the console sink set up by setup_logging()

    Examples:
        >>> config = RuntimeConfig(max_inactive_tasks=50)
        >>> config.default_tick_interval
        2000
    """

    default_tick_interval: int = Field(default=2000, ge=1000)
    max_inactive_tasks: int = Field(default=100, gt=0)
    log_max_messages: int = Field(default=200, gt=0)
    max_errors_tester: int = Field(default=20, gt=0)
    max_errors_live: int = Field(default=10, gt=0)
    error_window: int = Field(default=60 * 60 * 1000, gt=0)
    max_orders_tester: int = Field(default=20000, gt=0)
    candles_max_length: int = Field(default=100, gt=0)
    candles_preload_count: int = Field(default=30, ge=0)
    is_trade_allowed: bool = True
    log_level: str = "INFO"


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for name in RuntimeConfig.model_fields:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    return overrides


def load_config(
    path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
) -> RuntimeConfig:
    """
    Load configuration from config.yaml and the environment.

    Args:
        path: YAML file; the project config.yaml when omitted. A missing
            default file is not an error, a missing explicit file is.
        env_file: .env file loaded with python-dotenv before reading
            environment overrides (existing variables are not overridden)

    Returns:
        RuntimeConfig: Validated configuration

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse configuration file: {e}", {"path": str(config_path)})

        if not isinstance(data, dict):
            raise ConfigError(
                "Configuration file must contain a mapping",
                {"path": str(config_path), "type": type(data).__name__},
            )
    elif path is not None:
        raise ConfigError(f"Configuration file not found: {config_path}")

    if env_file is not None:
        load_dotenv(env_file, override=False)

    data.update(_env_overrides())

    try:
        config = RuntimeConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", {"path": str(config_path)}) from e

    logger.debug(f"Configuration loaded from {config_path}")
    return config
