"""Reviews domain - Public NPS reviews and summaries"""

from .router import router
from .service import ReviewService, nps_summary

__all__ = ["router", "ReviewService", "nps_summary"]
