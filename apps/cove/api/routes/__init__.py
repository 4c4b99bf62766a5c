"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error translation) lives here; every
sub-router imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from cove.services.exceptions import MatchingError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared error translation
# ---------------------------------------------------------------------------
def http_error(e: MatchingError) -> HTTPException:
    """Map a service-layer failure onto its HTTP status."""
    return HTTPException(status_code=e.status_code, detail=str(e))


def internal_error(action: str, e: Exception) -> HTTPException:
    """Log an unexpected failure and hide its details from the client."""
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from cove.api.routes.survey import router as survey_router  # noqa: E402
from cove.api.routes.intentions import router as intentions_router  # noqa: E402
from cove.api.routes.matches import router as matches_router  # noqa: E402
from cove.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(survey_router)
router.include_router(intentions_router)
router.include_router(matches_router)
router.include_router(admin_router)
