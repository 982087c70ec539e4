# Assumptions:
# - Using pytest for testing framework
# - Requests are answered by httpx.MockTransport handlers

import httpx
import pytest

from authkit.errors import ErrorCode
from authkit.http.client import (
    AuthorizedHttpClient,
    HttpError,
    HttpResponse,
    create_authorized_client,
    create_http_client,
)
from authkit.logging.setup import set_correlation_id


@pytest.fixture(autouse=True)
def reset_correlation_id():
    yield
    set_correlation_id(None)


class TestHttpResponse:
    def test_headers_lowercased(self):
        response = HttpResponse(200, {"Cache-Control": "max-age=10"}, "{}")

        assert response.headers == {"cache-control": "max-age=10"}

    def test_json_data(self):
        response = HttpResponse(200, {}, '{"key": "value"}')

        assert response.is_json() is True
        assert response.data == {"key": "value"}

    def test_non_json_data_raises(self):
        response = HttpResponse(200, {}, "<html></html>")

        assert response.is_json() is False
        with pytest.raises(HttpError, match="Error while parsing response data"):
            response.data

    @pytest.mark.parametrize("status_code, ok", [(200, True), (204, True), (301, False), (404, False), (500, False)])
    def test_ok(self, status_code, ok):
        assert HttpResponse(status_code, {}, "").ok is ok


class TestHttpClient:
    """Test cases for the buffered async HTTP client"""

    @pytest.mark.asyncio
    async def test_get(self, mock_transport, json_response):
        client, requests = mock_transport(lambda request: json_response({"hello": "world"}))

        response = await client.get("https://api.example.com/resource")

        assert response.status_code == 200
        assert response.data == {"hello": "world"}
        assert requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_post_form_data(self, mock_transport, json_response):
        client, requests = mock_transport(lambda request: json_response({}))

        await client.post("https://api.example.com/token", data={"grant_type": "refresh_token"})

        assert requests[0].method == "POST"
        assert requests[0].content == b"grant_type=refresh_token"

    @pytest.mark.asyncio
    async def test_per_request_headers(self, mock_transport, json_response):
        client, requests = mock_transport(lambda request: json_response({}))

        await client.get("https://api.example.com/resource", headers={"Metadata-Flavor": "Google"})

        assert requests[0].headers["Metadata-Flavor"] == "Google"

    @pytest.mark.asyncio
    async def test_correlation_id_forwarded(self, mock_transport, json_response):
        client, requests = mock_transport(lambda request: json_response({}))
        set_correlation_id("corr-123")

        await client.get("https://api.example.com/resource")

        assert requests[0].headers["X-Correlation-ID"] == "corr-123"

    @pytest.mark.asyncio
    async def test_no_correlation_id_header_by_default(self, mock_transport, json_response):
        client, requests = mock_transport(lambda request: json_response({}))

        await client.get("https://api.example.com/resource")

        assert "X-Correlation-ID" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_error_status_raises_with_response(self, mock_transport, json_response):
        client, _ = mock_transport(lambda request: json_response({"error": "denied"}, status_code=403))

        with pytest.raises(HttpError) as exc_info:
            await client.get("https://api.example.com/resource")

        assert exc_info.value.status_code == 403
        assert exc_info.value.response.data == {"error": "denied"}

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_transport):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = mock_transport(unreachable)

        with pytest.raises(HttpError) as exc_info:
            await client.get("https://api.example.com/resource")

        assert exc_info.value.error_code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.status_code is None


class TestAuthorizedHttpClient:
    """Test cases for bearer token injection"""

    @pytest.mark.asyncio
    async def test_sync_provider(self, json_response):
        requests = []

        def handler(request):
            requests.append(request)
            return json_response({})

        client = AuthorizedHttpClient(lambda: "sync-token", transport=httpx.MockTransport(handler))

        await client.get("https://api.example.com/resource")

        assert requests[0].headers["Authorization"] == "Bearer sync-token"

    @pytest.mark.asyncio
    async def test_async_provider(self, json_response):
        requests = []

        async def provider():
            return "async-token"

        def handler(request):
            requests.append(request)
            return json_response({})

        client = create_authorized_client(provider, transport=httpx.MockTransport(handler))

        await client.post("https://api.example.com/resource", json={"a": 1})

        assert requests[0].headers["Authorization"] == "Bearer async-token"

    @pytest.mark.asyncio
    async def test_static_token_without_prefix(self, json_response):
        requests = []

        def handler(request):
            requests.append(request)
            return json_response({})

        client = AuthorizedHttpClient(
            "raw-token", auth_header="X-Api-Key", auth_prefix="", transport=httpx.MockTransport(handler)
        )

        await client.get("https://api.example.com/resource")

        assert requests[0].headers["X-Api-Key"] == "raw-token"


def test_create_http_client_timeout():
    assert create_http_client(timeout=5.0).timeout == 5.0
