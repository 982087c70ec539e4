import asyncio
import json as jsonlib
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

import httpx
import structlog

from ..errors import AuthKitError, ErrorCode
from ..logging.setup import get_correlation_id

logger = structlog.get_logger(__name__)


class HttpResponse:
    """Buffered HTTP response with lazily parsed JSON body"""

    def __init__(self, status_code: int, headers: Dict[str, str], text: str):
        self.status_code = status_code
        self.headers = {key.lower(): value for key, value in headers.items()}
        self.text = text
        self._data: Any = None
        self._parsed = False

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "HttpResponse":
        return cls(response.status_code, dict(response.headers), response.text)

    def _parse(self) -> None:
        if self._parsed:
            return
        self._parsed = True
        try:
            self._data = jsonlib.loads(self.text)
        except ValueError:
            self._data = None

    def is_json(self) -> bool:
        self._parse()
        return self._data is not None

    @property
    def data(self) -> Any:
        self._parse()
        if self._data is None:
            raise HttpError(
                f"Error while parsing response data: {self.text!r}",
                response=self,
                error_code=ErrorCode.INTERNAL_ERROR,
            )
        return self._data

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpError(AuthKitError):
    """Raised on non-2xx responses and transport failures"""

    def __init__(
        self,
        message: str,
        response: Optional[HttpResponse] = None,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    ):
        super().__init__(message, error_code)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response else None


class HttpClient:
    """Async HTTP client that buffers responses and raises HttpError on failure"""

    def __init__(
        self,
        timeout: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.default_headers = default_headers or {}
        self.transport = transport

    async def _build_headers(self) -> Dict[str, str]:
        headers = self.default_headers.copy()

        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        return headers

    @asynccontextmanager
    async def _client(self, **kwargs):
        """Create HTTP client with default configuration"""
        headers = await self._build_headers()

        if "headers" in kwargs:
            headers.update(kwargs.pop("headers") or {})

        client_kwargs = {"timeout": self.timeout, "headers": headers, **kwargs}
        if self.transport is not None:
            client_kwargs["transport"] = self.transport

        async with httpx.AsyncClient(**client_kwargs) as client:
            yield client

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Union[str, bytes, Dict[str, Any]]] = None,
    ) -> HttpResponse:
        """Send a request and return the buffered response; non-2xx raises HttpError"""
        try:
            async with self._client(headers=headers) as client:
                logger.debug("Making HTTP request", method=method, url=url)
                raw = await client.request(method, url, json=json, data=data)
        except httpx.RequestError as e:
            logger.warning("HTTP request failed", method=method, url=url, error=str(e))
            raise HttpError(
                f"Error while making request to {url}: {e}",
                error_code=ErrorCode.NETWORK_ERROR,
            ) from e

        response = HttpResponse.from_httpx(raw)
        logger.debug("HTTP response received", method=method, url=url, status_code=response.status_code)

        if not response.ok:
            raise HttpError(
                f"Server responded with status {response.status_code}.",
                response=response,
            )
        return response

    async def get(self, url: str, **kwargs) -> HttpResponse:
        """Make GET request"""
        return await self.send("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> HttpResponse:
        """Make POST request"""
        return await self.send("POST", url, **kwargs)


class AuthorizedHttpClient(HttpClient):
    """HTTP client that automatically adds bearer authentication headers"""

    def __init__(
        self,
        auth_provider,  # Can be a function that returns the access token
        auth_header: str = "Authorization",
        auth_prefix: str = "Bearer",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.auth_provider = auth_provider
        self.auth_header = auth_header
        self.auth_prefix = auth_prefix

    async def _get_auth_header(self) -> str:
        """Get authentication header value"""
        if callable(self.auth_provider):
            if asyncio.iscoroutinefunction(self.auth_provider):
                token = await self.auth_provider()
            else:
                token = self.auth_provider()
        else:
            token = self.auth_provider

        if self.auth_prefix:
            return f"{self.auth_prefix} {token}"
        return token

    async def _build_headers(self) -> Dict[str, str]:
        headers = await super()._build_headers()
        headers[self.auth_header] = await self._get_auth_header()
        return headers


def create_http_client(timeout: float = 30.0, **kwargs) -> HttpClient:
    """Factory function to create HTTP client"""
    return HttpClient(timeout=timeout, **kwargs)


def create_authorized_client(auth_provider, timeout: float = 30.0, **kwargs) -> AuthorizedHttpClient:
    """Factory function to create authorized HTTP client"""
    return AuthorizedHttpClient(auth_provider=auth_provider, timeout=timeout, **kwargs)
