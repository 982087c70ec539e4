from enum import Enum


class ErrorCode(Enum):
    """Stable error codes surfaced by the token subsystem"""

    # Argument errors
    INVALID_ARGUMENT = "argument-error"

    # Credential and signer errors
    INVALID_CREDENTIAL = "invalid-credential"
    SIGNER_ERROR = "signer-error"

    # Verification errors
    ID_TOKEN_EXPIRED = "id-token-expired"
    SESSION_COOKIE_EXPIRED = "session-cookie-expired"
    INVALID_SIGNATURE = "invalid-signature"
    UNKNOWN_KEY_ID = "unknown-key-id"
    WRONG_AUDIENCE = "wrong-audience"
    WRONG_ISSUER = "wrong-issuer"
    WRONG_TOKEN_TYPE = "wrong-token-type"
    MALFORMED_TOKEN = "malformed-token"
    MISMATCHING_TENANT_ID = "mismatching-tenant-id"
    KEY_FETCH_ERROR = "key-fetch-error"

    # Infrastructure errors
    NETWORK_ERROR = "network-error"
    INTERNAL_ERROR = "internal-error"


class AuthKitError(Exception):
    """Base exception for all token subsystem errors"""

    def __init__(self, message: str, error_code: ErrorCode | None = None, details: dict | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}
        self.message = message

    @property
    def code(self) -> str | None:
        return self.error_code.value if self.error_code else None

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code.value}] {self.message}"
        return self.message


class ArgumentError(AuthKitError):
    """Raised synchronously for malformed uids, claims or tokens"""

    def __init__(self, message: str = "Invalid argument provided", details: dict | None = None):
        super().__init__(message, ErrorCode.INVALID_ARGUMENT, details)


class CredentialError(AuthKitError):
    """Raised when local signing material is missing or invalid"""

    def __init__(self, message: str = "Invalid credential", details: dict | None = None):
        super().__init__(message, ErrorCode.INVALID_CREDENTIAL, details)


class SignerError(AuthKitError):
    """Raised when remote signing or service account discovery fails"""

    def __init__(
        self,
        message: str = "Signing failed",
        remediation: str | None = None,
        error_code: ErrorCode = ErrorCode.SIGNER_ERROR,
        details: dict | None = None,
    ):
        self.remediation = remediation
        if remediation:
            message = f"{message} {remediation}"
        super().__init__(message, error_code, details)


# Verification Errors
class VerificationError(AuthKitError):
    """Base class for token verification failures"""

    pass


class ExpiredTokenError(VerificationError):
    """Raised when the token exp claim has passed"""

    def __init__(
        self,
        message: str = "Token has expired",
        error_code: ErrorCode = ErrorCode.ID_TOKEN_EXPIRED,
        details: dict | None = None,
    ):
        super().__init__(message, error_code, details)


class InvalidSignatureError(VerificationError):
    """Raised when the token signature does not match the resolved key"""

    def __init__(self, message: str = "Token has invalid signature", details: dict | None = None):
        super().__init__(message, ErrorCode.INVALID_SIGNATURE, details)


class UnknownKeyIdError(VerificationError):
    """Raised when the token kid is absent from the refreshed key set"""

    def __init__(self, message: str = "Token kid does not match a known key", details: dict | None = None):
        super().__init__(message, ErrorCode.UNKNOWN_KEY_ID, details)


class WrongAudienceError(VerificationError):
    """Raised when the aud claim does not match the project"""

    def __init__(self, message: str = "Token has incorrect audience", details: dict | None = None):
        super().__init__(message, ErrorCode.WRONG_AUDIENCE, details)


class WrongIssuerError(VerificationError):
    """Raised when the iss claim does not match the expected issuer"""

    def __init__(self, message: str = "Token has incorrect issuer", details: dict | None = None):
        super().__init__(message, ErrorCode.WRONG_ISSUER, details)


class WrongTokenTypeError(VerificationError):
    """Raised when a custom token is presented where an ID token is expected"""

    def __init__(self, message: str = "Wrong token type", details: dict | None = None):
        super().__init__(message, ErrorCode.WRONG_TOKEN_TYPE, details)


class MalformedTokenError(VerificationError):
    """Raised when the token cannot be decoded or breaks a structural claim rule"""

    def __init__(self, message: str = "Malformed token", details: dict | None = None):
        super().__init__(message, ErrorCode.MALFORMED_TOKEN, details)


class TenantMismatchError(VerificationError):
    """Raised when a tenant-scoped verifier receives another tenant's token"""

    def __init__(
        self,
        message: str = "Token tenant ID does not match the current tenant ID",
        details: dict | None = None,
    ):
        super().__init__(message, ErrorCode.MISMATCHING_TENANT_ID, details)


class KeyFetchError(VerificationError):
    """Raised when the public key set cannot be fetched"""

    def __init__(self, message: str = "Error fetching public keys", details: dict | None = None):
        super().__init__(message, ErrorCode.KEY_FETCH_ERROR, details)
