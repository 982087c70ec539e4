# Assumptions:
# - Credential sources follow the application default credential chain:
#   explicit key file, then CLI login cache, then the platform metadata service
# - Access tokens are short lived and are re-fetched shortly before expiry

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

import jwt
import structlog

from ..config.settings import Settings, get_settings
from ..errors import CredentialError
from ..http.client import HttpClient, HttpError
from ..telemetry.otel import get_tracer, record_error
from .models import AccessToken, Certificate, RefreshToken

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

GOOGLE_TOKEN_AUDIENCE = "https://accounts.google.com/o/oauth2/token"
REFRESH_TOKEN_URL = "https://www.googleapis.com/oauth2/v4/token"

# The metadata service is plain HTTP on a link-local network
METADATA_SERVICE_BASE = "http://metadata.google.internal/computeMetadata/v1"
METADATA_TOKEN_URL = f"{METADATA_SERVICE_BASE}/instance/service-accounts/default/token"
METADATA_PROJECT_ID_URL = f"{METADATA_SERVICE_BASE}/project/project-id"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ONE_HOUR_IN_SECONDS = 60 * 60

SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/firebase.database",
    "https://www.googleapis.com/auth/firebase.messaging",
    "https://www.googleapis.com/auth/identitytoolkit",
    "https://www.googleapis.com/auth/userinfo.email",
]


def _token_error_message(payload: dict[str, Any]) -> str:
    message = f"Error fetching access token: {payload['error']}"
    if payload.get("error_description"):
        message += f" ({payload['error_description']})"
    return message


async def _request_access_token(
    http_client: HttpClient,
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
) -> AccessToken:
    """Perform a token exchange and validate the response shape"""
    with tracer.start_as_current_span("credential.fetch_access_token") as span:
        span.set_attribute("http.url", url)
        try:
            response = await http_client.send(method, url, headers=headers, data=data)
            payload = response.data
        except HttpError as e:
            failed = e.response
            if failed is not None and failed.is_json() and isinstance(failed.data, dict) and failed.data.get("error"):
                error = CredentialError(_token_error_message(failed.data))
            else:
                error = CredentialError(f"Error fetching access token: {e.message}")
            logger.warning("Access token fetch failed", url=url, status_code=e.status_code)
            record_error(span, error)
            raise error from e

    if not isinstance(payload, dict):
        raise CredentialError("Unexpected response while fetching access token: expected a JSON object")
    if payload.get("error"):
        raise CredentialError(_token_error_message(payload))
    if not payload.get("access_token") or not payload.get("expires_in"):
        raise CredentialError(
            'Unexpected response while fetching access token: missing "access_token" or "expires_in"'
        )

    logger.debug("Access token fetched", url=url, expires_in=payload["expires_in"])
    return AccessToken(access_token=payload["access_token"], expires_in=int(payload["expires_in"]))


class Credential(ABC):
    """Source of OAuth2 access tokens and, optionally, local signing material"""

    source: str = "unknown"

    def __init__(self, http_client: HttpClient | None = None):
        self.http_client = http_client or HttpClient()

    @abstractmethod
    async def get_access_token(self) -> AccessToken:
        """Fetch a fresh OAuth2 access token"""
        pass

    def get_certificate(self) -> Certificate | None:
        """Return the service account certificate, or None when only remote signing is possible"""
        return None


class ServiceAccountCredential(Credential):
    """Credential backed by a service account key"""

    source = "service_account"

    def __init__(self, certificate: Certificate, http_client: HttpClient | None = None):
        super().__init__(http_client)
        if certificate is None:
            raise CredentialError("Must provide a certificate to initialize ServiceAccountCredential.")
        self.certificate = certificate

    @classmethod
    def from_path(cls, path: str | Path, http_client: HttpClient | None = None) -> "ServiceAccountCredential":
        return cls(Certificate.from_path(path), http_client)

    async def get_access_token(self) -> AccessToken:
        data = {"grant_type": JWT_BEARER_GRANT, "assertion": self._create_auth_jwt()}
        return await _request_access_token(self.http_client, "POST", GOOGLE_TOKEN_AUDIENCE, data=data)

    def get_certificate(self) -> Certificate:
        return self.certificate

    def _create_auth_jwt(self) -> str:
        now = int(time.time())
        claims = {
            "scope": " ".join(SCOPES),
            "iss": self.certificate.client_email,
            "aud": GOOGLE_TOKEN_AUDIENCE,
            "iat": now,
            "exp": now + ONE_HOUR_IN_SECONDS,
        }
        return jwt.encode(claims, self.certificate.load_private_key(), algorithm="RS256")


class RefreshTokenCredential(Credential):
    """Credential backed by a CLI-login refresh token"""

    source = "refresh_token"

    def __init__(self, refresh_token: RefreshToken, http_client: HttpClient | None = None):
        super().__init__(http_client)
        self.refresh_token = refresh_token

    @classmethod
    def from_path(cls, path: str | Path, http_client: HttpClient | None = None) -> "RefreshTokenCredential":
        return cls(RefreshToken.from_path(path), http_client)

    async def get_access_token(self) -> AccessToken:
        data = {
            "client_id": self.refresh_token.client_id,
            "client_secret": self.refresh_token.client_secret,
            "refresh_token": self.refresh_token.refresh_token,
            "grant_type": "refresh_token",
        }
        return await _request_access_token(self.http_client, "POST", REFRESH_TOKEN_URL, data=data)


class MetadataServiceCredential(Credential):
    """Credential for the default service account of the current compute instance"""

    source = "metadata_service"

    async def get_access_token(self) -> AccessToken:
        return await _request_access_token(self.http_client, "GET", METADATA_TOKEN_URL, headers=METADATA_HEADERS)


class CredentialResolver:
    """
    Resolves the credential backing this process

    Selection order, first match wins:
    1. the file named by GOOGLE_APPLICATION_CREDENTIALS (must be a valid service account key)
    2. the CLI login cache file (skipped if absent, must be valid if present)
    3. the platform metadata service (never fails here; errors surface on first token fetch)
    """

    def __init__(self, settings: Settings | None = None, http_client: HttpClient | None = None):
        self.settings = settings or get_settings()
        self.http_client = http_client or HttpClient(timeout=self.settings.http_timeout)
        self._credential: Credential | None = None

    def resolve(self) -> Credential:
        if self._credential is None:
            self._credential = self._resolve()
            logger.info("Credential resolved", source=self._credential.source)
        return self._credential

    def _resolve(self) -> Credential:
        key_path = self.settings.google_application_credentials
        if key_path:
            return ServiceAccountCredential.from_path(key_path, self.http_client)

        cli_path = self.settings.cli_credential_path
        if cli_path is not None and cli_path.is_file():
            return RefreshTokenCredential.from_path(cli_path, self.http_client)

        return MetadataServiceCredential(self.http_client)

    async def get_access_token(self) -> AccessToken:
        return await self.resolve().get_access_token()

    def get_certificate(self) -> Certificate | None:
        return self.resolve().get_certificate()


class AccessTokenProvider:
    """Caches a credential's access token until shortly before it expires"""

    # Refresh this many seconds before the token actually expires
    REFRESH_BUFFER_SECONDS = 5 * 60

    def __init__(self, credential: Credential, clock: Callable[[], float] = time.time):
        self.credential = credential
        self.clock = clock
        self._token: AccessToken | None = None

    async def get(self) -> str:
        """Return a usable access token string, fetching a new one if needed"""
        token = self._token
        if token is None or token.is_expiring(self.clock(), self.REFRESH_BUFFER_SECONDS):
            token = await self.credential.get_access_token()
            self._token = token
        return token.access_token


async def find_project_id(
    credential: Credential,
    settings: Settings,
    http_client: HttpClient | None = None,
) -> str | None:
    """
    Determine the project ID for token verification

    Checks the certificate, then configuration, then the metadata service.
    Returns None when none of them yields a project ID.
    """
    certificate = credential.get_certificate()
    if certificate is not None:
        return certificate.project_id

    if settings.project_id:
        return settings.project_id

    if not isinstance(credential, MetadataServiceCredential):
        return None

    client = http_client or credential.http_client
    try:
        response = await client.get(METADATA_PROJECT_ID_URL, headers=METADATA_HEADERS)
    except HttpError as e:
        logger.debug("Project ID discovery failed", error=str(e))
        return None
    return response.text.strip() or None
