"""Per-client request throttling (slowapi).

The credential endpoints in ``auth.router`` are decorated with
:data:`CREDENTIAL_LIMIT`. A hit raises ``RateLimitExceeded``, rendered as a
429 problem document by ``common.exceptions``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from attendease.config import settings

CREDENTIAL_LIMIT = settings.RATE_LIMIT_CREDENTIALS

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
)
