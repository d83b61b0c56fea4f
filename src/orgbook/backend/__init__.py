"""Backend REST client for Orgbook."""

from .client import DEFAULT_API_BASE_URL, BackendClient
from .errors import BackendError, NotFoundError

__all__ = [
    "DEFAULT_API_BASE_URL",
    "BackendClient",
    "BackendError",
    "NotFoundError",
]
