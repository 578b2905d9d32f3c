"""Route modules."""

from .audiobooks import router as audiobooks_router
from .jobs import router as jobs_router
from .transcriptions import router as transcriptions_router

__all__ = ["audiobooks_router", "jobs_router", "transcriptions_router"]
