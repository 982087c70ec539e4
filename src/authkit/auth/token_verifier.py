# Assumptions:
# - ID tokens and session cookies are RS256 JWTs whose kid names a key in the certs endpoint
# - aud is the project ID and iss is the token kind's issuer prefix followed by the project ID
# - Emulator tokens are unsigned (alg "none") and are accepted only by an emulator verifier

import time
from dataclasses import dataclass
from typing import Any, Callable

import jwt
import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..errors import (
    ArgumentError,
    CredentialError,
    ErrorCode,
    ExpiredTokenError,
    InvalidSignatureError,
    KeyFetchError,
    MalformedTokenError,
    TenantMismatchError,
    UnknownKeyIdError,
    WrongAudienceError,
    WrongIssuerError,
    WrongTokenTypeError,
)
from ..http.client import HttpClient
from .crypto_signer import ALGORITHM_NONE, ALGORITHM_RS256
from .key_cache import KeyCache
from .token_generator import FIREBASE_AUDIENCE, MAX_UID_LENGTH, utf16_length

logger = structlog.get_logger(__name__)

# Public keys for the certs whose private keys sign ID tokens
CLIENT_CERT_URL = "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"

# Public keys for session cookies
SESSION_COOKIE_CERT_URL = "https://www.googleapis.com/identitytoolkit/v3/relyingparty/publicKeys"

ID_TOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
SESSION_COOKIE_ISSUER_PREFIX = "https://session.firebase.google.com/"

# iat is required but never time-checked; exp is checked against the injected clock
VERIFY_OPTIONS = {"require": ["exp", "iat", "sub"], "verify_exp": False, "verify_iat": False}


@dataclass(frozen=True)
class TokenInfo:
    """Describes one kind of verifiable token"""

    url: str  # documentation URL quoted in error messages
    verify_api_name: str
    jwt_name: str
    short_name: str
    expired_error_code: ErrorCode
    cert_url: str
    issuer: str  # issuer prefix; the project ID is appended

    @property
    def short_name_article(self) -> str:
        return "an" if self.short_name[:1].lower() in "aeiou" else "a"

    def expected_issuer(self, project_id: str) -> str:
        return f"{self.issuer}{project_id}"


ID_TOKEN_INFO = TokenInfo(
    url="https://firebase.google.com/docs/auth/admin/verify-id-tokens",
    verify_api_name="verify_id_token()",
    jwt_name="Firebase ID token",
    short_name="ID token",
    expired_error_code=ErrorCode.ID_TOKEN_EXPIRED,
    cert_url=CLIENT_CERT_URL,
    issuer=ID_TOKEN_ISSUER_PREFIX,
)

SESSION_COOKIE_INFO = TokenInfo(
    url="https://firebase.google.com/docs/auth/admin/manage-cookies",
    verify_api_name="verify_session_cookie()",
    jwt_name="Firebase session cookie",
    short_name="session cookie",
    expired_error_code=ErrorCode.SESSION_COOKIE_EXPIRED,
    cert_url=SESSION_COOKIE_CERT_URL,
    issuer=SESSION_COOKIE_ISSUER_PREFIX,
)


def load_public_key(pem: str) -> Any:
    """Load a verification key from an X.509 certificate PEM or a public key PEM"""
    data = pem.encode("utf-8")
    try:
        if b"BEGIN CERTIFICATE" in data:
            return x509.load_pem_x509_certificate(data).public_key()
        return serialization.load_pem_public_key(data)
    except ValueError as e:
        raise KeyFetchError(f"Failed to parse public key: {e}") from e


class TokenVerifier:
    """Verifies ID tokens or session cookies, depending on its TokenInfo"""

    def __init__(
        self,
        token_info: TokenInfo,
        project_id: str | None,
        http_client: HttpClient | None = None,
        key_cache: KeyCache | None = None,
        tenant_id: str | None = None,
        emulator: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.token_info = token_info
        self.project_id = project_id
        self.http_client = http_client
        self.tenant_id = tenant_id
        self.emulator = emulator
        self.clock = clock
        self.algorithm = ALGORITHM_NONE if emulator else ALGORITHM_RS256
        self._key_cache = key_cache

    @property
    def key_cache(self) -> KeyCache:
        """Created on first use and kept for the verifier's lifetime"""
        if self._key_cache is None:
            self._key_cache = KeyCache(self.token_info.cert_url, self.http_client, clock=self.clock)
        return self._key_cache

    async def verify(self, token: Any) -> dict[str, Any]:
        """
        Verify a token and return its claims with a derived "uid"

        Structural and claim checks run before any key fetch. The signature
        is checked last, against the key named by the token's kid.
        """
        validate_token_argument(token, self.token_info)
        project_id = self._require_project_id()
        header, payload = self._decode(token)
        self._check_header_and_claims(header, payload, project_id)

        if self.emulator:
            claims = self._verify_unsigned(token, project_id)
        else:
            public_key = await self._resolve_key(header["kid"])
            claims = self._verify_signature(token, public_key, project_id)
        self._check_expiry(claims)

        if self.tenant_id is not None:
            token_tenant = (claims.get("firebase") or {}).get("tenant")
            if token_tenant != self.tenant_id:
                raise TenantMismatchError(
                    f'{self.token_info.jwt_name} has tenant ID "{token_tenant}" which does not match '
                    f'the current tenant ID "{self.tenant_id}".'
                )

        claims["uid"] = claims["sub"]
        logger.debug("Token verified", kind=self.token_info.short_name, uid=claims["uid"])
        return claims

    def _docs_message(self) -> str:
        info = self.token_info
        return f" See {info.url} for details on how to retrieve {info.short_name_article} {info.short_name}."

    def _project_match_message(self) -> str:
        return (
            f" Make sure the {self.token_info.short_name} comes from the same project as the "
            "service account used to authenticate this SDK."
        )

    def _require_project_id(self) -> str:
        if not isinstance(self.project_id, str) or not self.project_id:
            raise CredentialError(
                "Must initialize with a service account credential or set your project ID as the "
                f"GOOGLE_CLOUD_PROJECT environment variable to call {self.token_info.verify_api_name}."
            )
        return self.project_id

    def _decode(self, token: str) -> tuple[dict[str, Any], dict[str, Any]]:
        info = self.token_info
        try:
            header = jwt.get_unverified_header(token)
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(
                f"Decoding {info.jwt_name} failed. Make sure you passed the entire string JWT which "
                f"represents {info.short_name_article} {info.short_name}." + self._docs_message()
            ) from e
        return header, payload

    def _check_header_and_claims(self, header: dict[str, Any], payload: dict[str, Any], project_id: str) -> None:
        info = self.token_info
        docs = self._docs_message()
        article = info.short_name_article

        if "kid" not in header and not self.emulator:
            if payload.get("aud") == FIREBASE_AUDIENCE:
                raise WrongTokenTypeError(
                    f"{info.verify_api_name} expects {article} {info.short_name}, but was given a custom token."
                    + docs
                )
            if _is_legacy_custom_token(header, payload):
                raise WrongTokenTypeError(
                    f"{info.verify_api_name} expects {article} {info.short_name}, but was given a legacy "
                    "custom token." + docs
                )
            raise MalformedTokenError(f'{info.jwt_name} has no "kid" claim.' + docs)

        if header.get("alg") != self.algorithm:
            raise MalformedTokenError(
                f'{info.jwt_name} has incorrect algorithm. Expected "{self.algorithm}" but got '
                f'"{header.get("alg")}".' + docs
            )

        if payload.get("aud") != project_id:
            raise WrongAudienceError(
                f'{info.jwt_name} has incorrect "aud" (audience) claim. Expected "{project_id}" but got '
                f'"{payload.get("aud")}".' + self._project_match_message() + docs
            )

        expected_issuer = info.expected_issuer(project_id)
        if payload.get("iss") != expected_issuer:
            raise WrongIssuerError(
                f'{info.jwt_name} has incorrect "iss" (issuer) claim. Expected "{expected_issuer}" but got '
                f'"{payload.get("iss")}".' + self._project_match_message() + docs
            )

        sub = payload.get("sub")
        if not isinstance(sub, str):
            raise MalformedTokenError(f'{info.jwt_name} has no "sub" (subject) claim.' + docs)
        if sub == "":
            raise MalformedTokenError(f'{info.jwt_name} has an empty string "sub" (subject) claim.' + docs)
        if utf16_length(sub) > MAX_UID_LENGTH:
            raise MalformedTokenError(
                f'{info.jwt_name} has "sub" (subject) claim longer than {MAX_UID_LENGTH} characters.' + docs
            )

    async def _resolve_key(self, kid: str) -> Any:
        public_keys = await self.key_cache.get_keys()
        if kid not in public_keys:
            info = self.token_info
            raise UnknownKeyIdError(
                f'{info.jwt_name} has "kid" claim which does not correspond to a known public key. '
                f"Most likely the {info.short_name} is expired, so get a fresh token from your client "
                "app and try again."
            )
        return load_public_key(public_keys[kid])

    def _verify_signature(self, token: str, public_key: Any, project_id: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                public_key,
                algorithms=[ALGORITHM_RS256],
                audience=project_id,
                issuer=self.token_info.expected_issuer(project_id),
                options=VERIFY_OPTIONS,
            )
        except jwt.InvalidTokenError as e:
            raise self._map_library_error(e) from e

    def _verify_unsigned(self, token: str, project_id: str) -> dict[str, Any]:
        try:
            return jwt.decode(token, options={**VERIFY_OPTIONS, "verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise self._map_library_error(e) from e

    def _check_expiry(self, claims: dict[str, Any]) -> None:
        """Expiry is judged by this verifier's clock, not pyjwt's wall clock"""
        exp = claims["exp"]
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise MalformedTokenError(
                f'{self.token_info.jwt_name} has a non-numeric "exp" (expiration) claim.' + self._docs_message()
            )
        if exp <= self.clock():
            raise self._expired_error()

    def _expired_error(self) -> ExpiredTokenError:
        info = self.token_info
        return ExpiredTokenError(
            f"{info.jwt_name} has expired. Get a fresh {info.short_name} from your client app and try "
            f"again (auth/{info.expired_error_code.value})." + self._docs_message(),
            error_code=info.expired_error_code,
        )

    def _map_library_error(self, error: jwt.InvalidTokenError) -> Exception:
        info = self.token_info
        docs = self._docs_message()

        if isinstance(error, jwt.ExpiredSignatureError):
            return self._expired_error()
        if isinstance(error, jwt.InvalidSignatureError):
            return InvalidSignatureError(f"{info.jwt_name} has invalid signature." + docs)
        if isinstance(error, jwt.InvalidAudienceError):
            return WrongAudienceError(f"{info.jwt_name} has incorrect audience: {error}." + docs)
        if isinstance(error, jwt.InvalidIssuerError):
            return WrongIssuerError(f"{info.jwt_name} has incorrect issuer: {error}." + docs)
        return MalformedTokenError(f"{info.jwt_name} is invalid: {error}." + docs)


def validate_token_argument(token: Any, token_info: TokenInfo) -> None:
    """Reject anything but a non-empty string before any other work is done"""
    if not isinstance(token, str) or not token:
        raise ArgumentError(
            f"First argument to {token_info.verify_api_name} must be a non-empty {token_info.jwt_name} string."
        )


def _is_legacy_custom_token(header: dict[str, Any], payload: dict[str, Any]) -> bool:
    # Deprecated HS256 custom token format: {"v": 0, "d": {"uid": ...}}
    data = payload.get("d")
    return header.get("alg") == "HS256" and payload.get("v") == 0 and isinstance(data, dict) and "uid" in data


def create_id_token_verifier(project_id: str | None, **kwargs) -> TokenVerifier:
    """Create a verifier for ID tokens"""
    return TokenVerifier(ID_TOKEN_INFO, project_id, **kwargs)


def create_session_cookie_verifier(project_id: str | None, **kwargs) -> TokenVerifier:
    """Create a verifier for session cookies"""
    return TokenVerifier(SESSION_COOKIE_INFO, project_id, **kwargs)
