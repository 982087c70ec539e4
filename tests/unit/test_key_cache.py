# Assumptions:
# - Using pytest for testing framework
# - A mutable fake clock drives cache expiry
# - The certs endpoint is served by httpx.MockTransport

import httpx
import pytest

from authkit.auth.key_cache import KeyCache, parse_max_age
from authkit.errors import KeyFetchError

CERT_URL = "https://certs.example.com/keys"
KEYS = {"kid-1": "-----BEGIN PUBLIC KEY-----\nAAA\n-----END PUBLIC KEY-----\n"}


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestParseMaxAge:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("public, max-age=19302, must-revalidate, no-transform", 19302),
            ("max-age=60", 60),
            ("  MAX-AGE = 15 ", 15),
            ("public, must-revalidate", None),
            ("max-age=abc", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, header, expected):
        assert parse_max_age(header) == expected


class TestKeyCache:
    """Test cases for public key fetching and caching"""

    @pytest.mark.asyncio
    async def test_two_calls_within_ttl_fetch_once(self, mock_transport, json_response, clock):
        client, requests = mock_transport(
            lambda request: json_response(KEYS, headers={"cache-control": "public, max-age=100"})
        )
        cache = KeyCache(CERT_URL, client, clock=clock)

        first = await cache.get_keys()
        clock.now += 50
        second = await cache.get_keys()

        assert first == KEYS
        assert second == KEYS
        assert len(requests) == 1
        assert str(requests[0].url) == CERT_URL

    @pytest.mark.asyncio
    async def test_caller_mutation_does_not_change_cache(self, mock_transport, json_response, clock):
        """Test returned key sets are copies of the cached map"""
        client, requests = mock_transport(
            lambda request: json_response(KEYS, headers={"cache-control": "max-age=100"})
        )
        cache = KeyCache(CERT_URL, client, clock=clock)

        fetched = await cache.get_keys()
        fetched["kid-evil"] = "not a key"
        cached = await cache.get_keys()
        cached.clear()

        assert await cache.get_keys() == KEYS
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_three_windows_three_fetches(self, mock_transport, json_response, clock):
        """Test a fetch at the start of each window and none mid-window"""
        client, requests = mock_transport(
            lambda request: json_response(KEYS, headers={"cache-control": "max-age=100"})
        )
        cache = KeyCache(CERT_URL, client, clock=clock)
        start = clock.now

        for window in range(3):
            for offset in (0, 1, 50, 99):
                clock.now = start + window * 100 + offset
                await cache.get_keys()
            assert len(requests) == window + 1

        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_missing_cache_control_always_fetches(self, mock_transport, json_response, clock):
        client, requests = mock_transport(lambda request: json_response(KEYS))
        cache = KeyCache(CERT_URL, client, clock=clock)

        await cache.get_keys()
        await cache.get_keys()
        await cache.get_keys()

        assert len(requests) == 3
        assert cache.is_valid() is False

    @pytest.mark.asyncio
    async def test_refresh_replaces_keys(self, mock_transport, json_response, clock):
        responses = iter([{"kid-1": "one"}, {"kid-2": "two"}])
        client, _ = mock_transport(
            lambda request: json_response(next(responses), headers={"cache-control": "max-age=10"})
        )
        cache = KeyCache(CERT_URL, client, clock=clock)

        assert await cache.get_keys() == {"kid-1": "one"}
        clock.now += 10
        assert await cache.get_keys() == {"kid-2": "two"}
        assert cache.expires_at == clock.now + 10

    @pytest.mark.asyncio
    async def test_error_payload_not_cached(self, mock_transport, json_response, clock):
        """Test an error payload raises and the next call fetches again"""
        responses = iter(
            [
                json_response({"error": "backend_error", "error_description": "try later"}),
                json_response(KEYS, headers={"cache-control": "max-age=100"}),
            ]
        )
        client, requests = mock_transport(lambda request: next(responses))
        cache = KeyCache(CERT_URL, client, clock=clock)

        with pytest.raises(KeyFetchError) as exc_info:
            await cache.get_keys()
        assert "backend_error (try later)" in str(exc_info.value)

        assert await cache.get_keys() == KEYS
        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_http_error_status(self, mock_transport, json_response, clock):
        client, _ = mock_transport(lambda request: json_response({"error": "not_found"}, status_code=404))
        cache = KeyCache(CERT_URL, client, clock=clock)

        with pytest.raises(KeyFetchError, match="not_found"):
            await cache.get_keys()

    @pytest.mark.asyncio
    async def test_network_error(self, mock_transport, clock):
        def unreachable(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        client, _ = mock_transport(unreachable)
        cache = KeyCache(CERT_URL, client, clock=clock)

        with pytest.raises(KeyFetchError, match="Error fetching public keys"):
            await cache.get_keys()
        assert cache.is_valid() is False

    @pytest.mark.asyncio
    async def test_non_json_response(self, mock_transport, clock):
        client, _ = mock_transport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        cache = KeyCache(CERT_URL, client, clock=clock)

        with pytest.raises(KeyFetchError, match="oops"):
            await cache.get_keys()

    @pytest.mark.asyncio
    async def test_non_string_values_rejected(self, mock_transport, json_response, clock):
        client, _ = mock_transport(lambda request: json_response({"kid-1": 42}))
        cache = KeyCache(CERT_URL, client, clock=clock)

        with pytest.raises(KeyFetchError, match="PEM strings"):
            await cache.get_keys()
