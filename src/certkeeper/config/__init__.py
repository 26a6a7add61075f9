"""Configuration subsystem for certkeeper.

Public API::

    from certkeeper.config import get_config, CertkeeperConfig

    # At startup (CLI only):
    CertkeeperConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    backend = cfg.settings.store.backend   # typed access
    port = cfg.get("metrics.port")         # dynamic dot-path
"""

from certkeeper.config.loader import (
    CertkeeperConfig,
    ConfigValidationError,
    get_config,
)
from certkeeper.config.settings import (
    CertkeeperSettings,
    ControllerSettings,
    IssuerSettings,
    LoggingSettings,
    MetricsSettings,
    RuntimeSettings,
    StoreSettings,
    build_settings,
    default_settings,
)

__all__ = [
    "CertkeeperConfig",
    "CertkeeperSettings",
    "ConfigValidationError",
    "ControllerSettings",
    "IssuerSettings",
    "LoggingSettings",
    "MetricsSettings",
    "RuntimeSettings",
    "StoreSettings",
    "build_settings",
    "default_settings",
    "get_config",
]
