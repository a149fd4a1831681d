from .config import config
from .logging_setup import logger, get_logger
from .exceptions import (
    ReplenishmentError,
    SettingsUnavailable,
    GatewayFetchFailed,
    GatewayDispatchFailed,
    PersistenceWriteFailed
)

__all__ = [
    'config',
    'logger',
    'get_logger',
    'ReplenishmentError',
    'SettingsUnavailable',
    'GatewayFetchFailed',
    'GatewayDispatchFailed',
    'PersistenceWriteFailed'
]
