# Assumptions:
# - Custom tokens are always RS256 except in emulator mode, where they are unsigned
# - Remote signing goes through the IAM credentials signBlob API
# - The default service account can be discovered from the metadata service

import base64
from abc import ABC, abstractmethod

import structlog
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from ..credential.models import Certificate
from ..credential.resolver import (
    METADATA_HEADERS,
    METADATA_SERVICE_BASE,
    AccessTokenProvider,
    Credential,
)
from ..errors import ArgumentError, CredentialError, ErrorCode, SignerError
from ..http.client import AuthorizedHttpClient, HttpClient, HttpError
from ..telemetry.otel import get_tracer, record_error

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

ALGORITHM_RS256 = "RS256"
ALGORITHM_NONE = "none"

IAM_SIGN_BLOB_URL = "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/{account}:signBlob"
METADATA_ACCOUNT_URL = f"{METADATA_SERVICE_BASE}/instance/service-accounts/default/email"
EMULATOR_ACCOUNT_ID = "firebase-auth-emulator@example.com"

SIGN_BLOB_REMEDIATION = (
    "Make sure the service account has the iam.serviceAccounts.signBlob permission "
    "(for example through the roles/iam.serviceAccountTokenCreator role). See "
    "https://firebase.google.com/docs/auth/admin/create-custom-tokens#troubleshooting for details."
)
ACCOUNT_DISCOVERY_REMEDIATION = (
    "Make sure to initialize with a service account credential. Alternatively specify "
    "a service account ID with the iam.serviceAccounts.signBlob permission."
)


class CryptoSigner(ABC):
    """Signs token payloads on behalf of a service account"""

    algorithm: str = ALGORITHM_RS256

    @abstractmethod
    async def sign(self, data: bytes) -> bytes:
        """Return the raw signature bytes for data"""
        pass

    @abstractmethod
    async def get_account_id(self) -> str:
        """Return the ID of the service account tokens are issued by"""
        pass


class ServiceAccountSigner(CryptoSigner):
    """Signs locally with the service account private key (RSA-SHA256)"""

    def __init__(self, certificate: Certificate):
        if certificate is None:
            raise CredentialError("Must provide a service account certificate to initialize ServiceAccountSigner.")
        self.certificate = certificate
        self._private_key = certificate.load_private_key()

    async def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())

    async def get_account_id(self) -> str:
        return self.certificate.client_email


class IAMSigner(CryptoSigner):
    """Delegates signing to the remote signBlob API"""

    def __init__(
        self,
        http_client: HttpClient,
        service_account_id: str | None = None,
        metadata_client: HttpClient | None = None,
    ):
        if http_client is None:
            raise ArgumentError("Must provide a HTTP client to initialize IAMSigner.")
        if service_account_id is not None and (not isinstance(service_account_id, str) or not service_account_id):
            raise ArgumentError("Service account ID must be None or a non-empty string.")

        self.http_client = http_client
        self.metadata_client = metadata_client or HttpClient()
        self._service_account_id = service_account_id

    async def sign(self, data: bytes) -> bytes:
        account = await self.get_account_id()
        url = IAM_SIGN_BLOB_URL.format(account=account)

        with tracer.start_as_current_span("signer.sign_blob") as span:
            try:
                response = await self.http_client.post(
                    url, json={"payload": base64.b64encode(data).decode("ascii")}
                )
            except HttpError as e:
                logger.error("signBlob request failed", account=account, status_code=e.status_code)
                error = SignerError(_sign_blob_error_message(e), remediation=SIGN_BLOB_REMEDIATION)
                record_error(span, error)
                raise error from e

        try:
            signed_blob = response.data["signedBlob"]
            return base64.b64decode(signed_blob)
        except (HttpError, KeyError, TypeError, ValueError) as e:
            raise SignerError(
                "signBlob response did not contain a valid signedBlob.",
                remediation=SIGN_BLOB_REMEDIATION,
            ) from e

    async def get_account_id(self) -> str:
        if self._service_account_id:
            return self._service_account_id

        with tracer.start_as_current_span("signer.discover_account") as span:
            try:
                response = await self.metadata_client.get(METADATA_ACCOUNT_URL, headers=METADATA_HEADERS)
            except HttpError as e:
                error = SignerError(
                    f"Failed to determine service account: {e.message}",
                    remediation=ACCOUNT_DISCOVERY_REMEDIATION,
                    error_code=ErrorCode.INVALID_CREDENTIAL,
                )
                record_error(span, error)
                raise error from e

        account = response.text.strip()
        if not account:
            raise SignerError(
                "Failed to determine service account: metadata response missing payload.",
                remediation=ACCOUNT_DISCOVERY_REMEDIATION,
                error_code=ErrorCode.INVALID_CREDENTIAL,
            )

        self._service_account_id = account
        logger.info("Service account discovered", account=account)
        return account


class EmulatedSigner(CryptoSigner):
    """Produces unsigned tokens for the auth emulator"""

    algorithm = ALGORITHM_NONE

    async def sign(self, data: bytes) -> bytes:
        return b""

    async def get_account_id(self) -> str:
        return EMULATOR_ACCOUNT_ID


def _sign_blob_error_message(error: HttpError) -> str:
    response = error.response
    if response is not None and response.is_json():
        body = response.data.get("error") if isinstance(response.data, dict) else None
        if isinstance(body, dict):
            status = body.get("status") or "UNKNOWN"
            message = body.get("message") or "no error message returned"
            return f"signBlob request failed with {status}: {message}."
    return f"signBlob request failed: {error.message}"


def crypto_signer_from_credential(
    credential: Credential,
    service_account_id: str | None = None,
    timeout: float = 30.0,
) -> CryptoSigner:
    """
    Select a signer for the credential

    A credential with a usable certificate signs locally; anything else
    signs remotely as the current identity.
    """
    certificate = credential.get_certificate()
    if certificate is not None and certificate.private_key and certificate.client_email:
        return ServiceAccountSigner(certificate)

    token_provider = AccessTokenProvider(credential)
    client = AuthorizedHttpClient(auth_provider=token_provider.get, timeout=timeout)
    return IAMSigner(client, service_account_id, metadata_client=credential.http_client)
