"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /api/v1/analytics/track - Conversion event intake
- /api/v1/analytics/ping - Liveness check
"""
from .analytics import router as analytics_router

__all__ = ["analytics_router"]
