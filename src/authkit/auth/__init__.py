"""Custom token minting and ID token / session cookie verification."""

from .auth import Auth
from .crypto_signer import (
    CryptoSigner,
    EmulatedSigner,
    IAMSigner,
    ServiceAccountSigner,
    crypto_signer_from_credential,
)
from .key_cache import KeyCache, parse_max_age
from .token_generator import FIREBASE_AUDIENCE, RESERVED_CLAIMS, TokenGenerator
from .token_verifier import (
    ID_TOKEN_INFO,
    SESSION_COOKIE_INFO,
    TokenInfo,
    TokenVerifier,
    create_id_token_verifier,
    create_session_cookie_verifier,
)

__all__ = [
    "Auth",
    "CryptoSigner",
    "ServiceAccountSigner",
    "IAMSigner",
    "EmulatedSigner",
    "crypto_signer_from_credential",
    "TokenGenerator",
    "FIREBASE_AUDIENCE",
    "RESERVED_CLAIMS",
    "KeyCache",
    "parse_max_age",
    "TokenInfo",
    "TokenVerifier",
    "ID_TOKEN_INFO",
    "SESSION_COOKIE_INFO",
    "create_id_token_verifier",
    "create_session_cookie_verifier",
]
