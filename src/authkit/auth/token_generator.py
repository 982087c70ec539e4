import json
import time
from collections.abc import Mapping
from typing import Any, Callable

import structlog
from jwt.utils import base64url_encode

from ..errors import ArgumentError, CredentialError
from .crypto_signer import CryptoSigner

logger = structlog.get_logger(__name__)

# Audience of custom tokens exchanged by clients for a session
FIREBASE_AUDIENCE = "https://identitytoolkit.googleapis.com/google.identity.identitytoolkit.v1.IdentityToolkit"

ONE_HOUR_IN_SECONDS = 60 * 60
MAX_UID_LENGTH = 128

# Standard JWT claims that callers cannot set through developer claims
RESERVED_CLAIMS = frozenset(
    [
        "acr",
        "amr",
        "at_hash",
        "aud",
        "auth_time",
        "azp",
        "cnf",
        "c_hash",
        "exp",
        "iat",
        "iss",
        "jti",
        "nbf",
        "nonce",
    ]
)


def encode_segment(segment: dict[str, Any]) -> str:
    """Encode a JWT header or body as unpadded base64url JSON"""
    raw = json.dumps(segment, separators=(",", ":")).encode("utf-8")
    return base64url_encode(raw).decode("ascii")


def utf16_length(value: str) -> int:
    """Length in UTF-16 code units, the unit uid limits are expressed in"""
    return len(value.encode("utf-16-le", "surrogatepass")) // 2


class TokenGenerator:
    """Mints custom tokens signed by a CryptoSigner"""

    def __init__(
        self,
        signer: CryptoSigner,
        tenant_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if signer is None:
            raise CredentialError("Must provide a CryptoSigner to use TokenGenerator.")
        if tenant_id is not None and (not isinstance(tenant_id, str) or not tenant_id):
            raise ArgumentError("tenant_id must be None or a non-empty string.")

        self.signer = signer
        self.tenant_id = tenant_id
        self.clock = clock

    async def create_custom_token(self, uid: str, developer_claims: Mapping[str, Any] | None = None) -> str:
        """
        Create a signed custom token for uid

        Args:
            uid: User ID, a non-empty string of at most 128 characters
            developer_claims: Optional claims embedded under the "claims" field

        Returns:
            Compact JWT: header.body.signature, unpadded base64url segments

        Raises:
            ArgumentError: Before any I/O, for a bad uid or bad developer claims
            SignerError: When remote signing or account discovery fails
        """
        claims = self._validate(uid, developer_claims)

        account = await self.signer.get_account_id()
        iat = int(self.clock())

        header = {"alg": self.signer.algorithm, "typ": "JWT"}
        body: dict[str, Any] = {
            "aud": FIREBASE_AUDIENCE,
            "iat": iat,
            "exp": iat + ONE_HOUR_IN_SECONDS,
            "iss": account,
            "sub": account,
            "uid": uid,
        }
        if claims:
            body["claims"] = claims
        if self.tenant_id:
            body["tenant_id"] = self.tenant_id

        signing_input = f"{encode_segment(header)}.{encode_segment(body)}"
        signature = await self.signer.sign(signing_input.encode("ascii"))

        logger.debug("Custom token created", uid=uid, iss=account, tenant_id=self.tenant_id)
        return f"{signing_input}.{base64url_encode(signature).decode('ascii')}"

    @staticmethod
    def _validate(uid: Any, developer_claims: Any) -> dict[str, Any]:
        if not isinstance(uid, str) or uid == "":
            raise ArgumentError("uid must be a non-empty string.")
        if utf16_length(uid) > MAX_UID_LENGTH:
            raise ArgumentError(f"uid must be a string with at most {MAX_UID_LENGTH} characters.")
        if developer_claims is None:
            return {}
        if not isinstance(developer_claims, Mapping):
            raise ArgumentError("developer_claims must be a mapping containing the developer claims.")

        reserved = [key for key in developer_claims if key in RESERVED_CLAIMS]
        if len(reserved) == 1:
            raise ArgumentError(f'Developer claim "{reserved[0]}" is reserved and cannot be specified.')
        if reserved:
            names = ", ".join(f'"{key}"' for key in reserved)
            raise ArgumentError(f"Developer claims {names} are reserved and cannot be specified.")

        return dict(developer_claims)
