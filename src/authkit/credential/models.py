import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..errors import CredentialError


def _copy_attr(raw: Mapping[str, Any], key: str, alt: str) -> Any:
    return raw.get(key) or raw.get(alt)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _read_json_file(path: str | Path, kind: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CredentialError(f"Failed to parse {kind} file: {e}") from e


@dataclass(frozen=True)
class Certificate:
    """Service account key material used for local signing"""

    project_id: str
    client_email: str
    private_key: str = field(repr=False)

    @classmethod
    def from_path(cls, path: str | Path) -> "Certificate":
        """Load a certificate from a service account JSON file"""
        return cls.from_json(_read_json_file(path, "service account json"))

    @classmethod
    def from_json(cls, raw: Any) -> "Certificate":
        """Validate a service account mapping; snake_case and camelCase keys are accepted"""
        if not isinstance(raw, Mapping):
            raise CredentialError("Service account must be an object.")

        project_id = _copy_attr(raw, "project_id", "projectId")
        private_key = _copy_attr(raw, "private_key", "privateKey")
        client_email = _copy_attr(raw, "client_email", "clientEmail")

        error_message = None
        if not _is_non_empty_string(project_id):
            error_message = 'Service account object must contain a string "project_id" property.'
        elif not _is_non_empty_string(private_key):
            error_message = 'Service account object must contain a string "private_key" property.'
        elif not _is_non_empty_string(client_email):
            error_message = 'Service account object must contain a string "client_email" property.'

        if error_message:
            raise CredentialError(error_message)

        certificate = cls(project_id=project_id, client_email=client_email, private_key=private_key)
        certificate.load_private_key()
        return certificate

    def load_private_key(self) -> rsa.RSAPrivateKey:
        """Parse the PEM private key; raises CredentialError if unusable"""
        try:
            key = serialization.load_pem_private_key(self.private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CredentialError(f"Failed to parse private key: {e}") from e

        if not isinstance(key, rsa.RSAPrivateKey):
            raise CredentialError("Failed to parse private key: key must be an RSA private key")
        return key


@dataclass(frozen=True)
class RefreshToken:
    """OAuth2 user credentials written by the CLI login flow"""

    client_id: str
    client_secret: str = field(repr=False)
    refresh_token: str = field(repr=False)
    type: str

    @classmethod
    def from_path(cls, path: str | Path) -> "RefreshToken":
        return cls.from_json(_read_json_file(path, "refresh token"))

    @classmethod
    def from_json(cls, raw: Any) -> "RefreshToken":
        if not isinstance(raw, Mapping):
            raise CredentialError("Refresh token must be an object.")

        values = {
            "client_id": _copy_attr(raw, "client_id", "clientId"),
            "client_secret": _copy_attr(raw, "client_secret", "clientSecret"),
            "refresh_token": _copy_attr(raw, "refresh_token", "refreshToken"),
            "type": raw.get("type"),
        }
        for name, value in values.items():
            if not _is_non_empty_string(value):
                raise CredentialError(f'Refresh token must contain a "{name}" property.')

        return cls(**values)


@dataclass(frozen=True)
class AccessToken:
    """OAuth2 access token returned by a token exchange"""

    access_token: str = field(repr=False)
    expires_in: int
    issued_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.expires_in

    def is_expiring(self, now: float, buffer_seconds: float = 0) -> bool:
        """Check if the token expires within buffer_seconds of now"""
        return now >= self.expires_at - buffer_seconds
