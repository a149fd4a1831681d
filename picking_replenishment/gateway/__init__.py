from .base import ReplenishmentGateway, StockItem, WaveTaskPayload, WavePayload, WaveAck
from .mock import MockGateway
from .http_gateway import HttpGateway


def create_gateway(settings, db) -> ReplenishmentGateway:
    """Build the gateway a company is configured for.

    Falls back to the simulated gateway when the mock flag is set or no API
    URL is configured.

    Args:
        settings: PickingSettings of the company
        db: DatabaseConnection, read by the simulated gateway
    """
    if settings.use_mock_gateway or not settings.api_url:
        return MockGateway(db)
    return HttpGateway(settings.api_url, settings.api_key)


__all__ = [
    'ReplenishmentGateway',
    'StockItem',
    'WaveTaskPayload',
    'WavePayload',
    'WaveAck',
    'MockGateway',
    'HttpGateway',
    'create_gateway'
]
