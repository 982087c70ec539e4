"""Credential resolution and OAuth2 access token utilities."""

from .models import AccessToken, Certificate, RefreshToken
from .resolver import (
    AccessTokenProvider,
    Credential,
    CredentialResolver,
    MetadataServiceCredential,
    RefreshTokenCredential,
    ServiceAccountCredential,
    find_project_id,
)

__all__ = [
    "AccessToken",
    "Certificate",
    "RefreshToken",
    "Credential",
    "CredentialResolver",
    "ServiceAccountCredential",
    "RefreshTokenCredential",
    "MetadataServiceCredential",
    "AccessTokenProvider",
    "find_project_id",
]
