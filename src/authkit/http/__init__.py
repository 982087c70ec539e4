"""HTTP client utilities."""

from .client import (
    AuthorizedHttpClient,
    HttpClient,
    HttpError,
    HttpResponse,
    create_authorized_client,
    create_http_client,
)

__all__ = [
    "HttpClient",
    "AuthorizedHttpClient",
    "HttpResponse",
    "HttpError",
    "create_http_client",
    "create_authorized_client",
]
