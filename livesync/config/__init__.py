from .loader import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEMPLATE,
    load_config,
    require_valid_config,
    validate_config,
)
from .models import CouchDBSettings, LiveSyncConfig

__all__ = [
    "CONFIG_FILENAME",
    "CouchDBSettings",
    "DEFAULT_CONFIG_TEMPLATE",
    "LiveSyncConfig",
    "load_config",
    "require_valid_config",
    "validate_config",
]
