from .settings_service import SettingsService, PickingSettings
from .sync_log_service import SyncLogService
from .stock_service import StockService
from .fragmentation_service import FragmentationService
from .wave_service import WaveService
from .completion_service import WaveCompletionService
from .dashboard_service import DashboardService

__all__ = [
    'SettingsService',
    'PickingSettings',
    'SyncLogService',
    'StockService',
    'FragmentationService',
    'WaveService',
    'WaveCompletionService',
    'DashboardService'
]
