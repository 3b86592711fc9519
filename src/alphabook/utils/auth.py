"""
Shared-secret checks for the admin and cron endpoints.
"""

import hmac
import logging
from typing import Optional

from .errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)


def check_secret(provided: Optional[str], expected: Optional[str]) -> bool:
    """
    Compare a supplied secret against the configured one in constant time.

    An unset (empty) configured secret never matches, so an endpoint guarded
    by a missing secret is closed rather than open.
    """
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_admin(provided: Optional[str], admin_password: Optional[str]) -> None:
    """
    Raises:
        ForbiddenError: If the admin password is missing or wrong
    """
    if not check_secret(provided, admin_password):
        logger.warning("Rejected request with missing or invalid admin password")
        raise ForbiddenError()


def require_secret(provided: Optional[str], expected: Optional[str]) -> None:
    """
    Raises:
        UnauthorizedError: If the secret is missing or wrong
    """
    if not check_secret(provided, expected):
        logger.warning("Rejected request with missing or invalid secret")
        raise UnauthorizedError()
