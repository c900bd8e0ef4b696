# =============================================================================
# barberpro/services/__init__.py
# Business Services
# =============================================================================

from barberpro.services.analytics_service import AnalyticsService, compute_analytics

__all__ = ["AnalyticsService", "compute_analytics"]
