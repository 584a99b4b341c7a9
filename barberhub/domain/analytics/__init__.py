"""Analytics domain - Client patterns, slot occupancy and predictions"""

from .router import router
from .service import AnalyticsService, predict

__all__ = ["router", "AnalyticsService", "predict"]
