# Assumptions:
# - The certs endpoint returns a JSON object mapping kid to a PEM string
# - The refresh interval is governed only by the Cache-Control max-age directive
# - Concurrent refreshes are allowed; the last completed fetch wins

import time
from typing import Any, Callable

import structlog

from ..errors import KeyFetchError
from ..http.client import HttpClient, HttpError, HttpResponse
from ..telemetry.otel import get_tracer, record_error

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


def parse_max_age(cache_control: str | None) -> int | None:
    """Return the max-age directive of a Cache-Control header in seconds, if present"""
    if not cache_control:
        return None
    for directive in cache_control.split(","):
        name, _, value = directive.strip().partition("=")
        if name.strip().lower() == "max-age":
            try:
                return int(value.strip())
            except ValueError:
                return None
    return None


def _fetch_error_message(response: HttpResponse | None, fallback: str) -> str:
    message = "Error fetching public keys for Google certs: "
    if response is None:
        return message + fallback
    if response.is_json() and isinstance(response.data, dict) and response.data.get("error"):
        message += f"{response.data['error']}"
        if response.data.get("error_description"):
            message += f" ({response.data['error_description']})"
        return message
    return message + (response.text or fallback)


class KeyCache:
    """Fetches and caches the public key set used to verify token signatures"""

    def __init__(
        self,
        cert_url: str,
        http_client: HttpClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cert_url = cert_url
        self.http_client = http_client or HttpClient()
        self.clock = clock
        self._keys: dict[str, str] | None = None
        self._expires_at: float | None = None

    @property
    def expires_at(self) -> float | None:
        return self._expires_at

    def is_valid(self) -> bool:
        """True when a cached key set exists and its max-age has not elapsed"""
        if self._keys is None or self._expires_at is None:
            return False
        return self.clock() < self._expires_at

    async def get_keys(self) -> dict[str, str]:
        """Return a copy of the current kid -> PEM map, fetching when missing or expired"""
        if self.is_valid():
            return dict(self._keys)
        return await self.refresh()

    async def refresh(self) -> dict[str, str]:
        with tracer.start_as_current_span("keys.fetch") as span:
            span.set_attribute("http.url", self.cert_url)
            try:
                response = await self.http_client.get(self.cert_url)
            except HttpError as e:
                logger.warning("Public key fetch failed", url=self.cert_url, error=str(e))
                error = KeyFetchError(_fetch_error_message(e.response, e.message))
                record_error(span, error)
                raise error from e

        keys = self._parse_keys(response)

        max_age = parse_max_age(response.headers.get("cache-control"))
        fetched_at = self.clock()
        self._expires_at = fetched_at + max_age if max_age is not None else None
        self._keys = keys

        logger.debug("Public keys fetched", url=self.cert_url, key_count=len(keys), max_age=max_age)
        return dict(keys)

    def _parse_keys(self, response: HttpResponse) -> dict[str, str]:
        if not response.is_json():
            raise KeyFetchError(_fetch_error_message(response, "response is not JSON"))

        data: Any = response.data
        if not isinstance(data, dict) or data.get("error"):
            raise KeyFetchError(_fetch_error_message(response, "unexpected response payload"))
        if not all(isinstance(kid, str) and isinstance(pem, str) for kid, pem in data.items()):
            raise KeyFetchError(_fetch_error_message(None, "key set must map key IDs to PEM strings"))
        return dict(data)
