from collections.abc import Mapping
from typing import Any

import structlog

from ..config.settings import Settings, get_settings
from ..credential.resolver import Credential, CredentialResolver, find_project_id
from ..http.client import HttpClient
from .crypto_signer import CryptoSigner, EmulatedSigner, crypto_signer_from_credential
from .token_generator import TokenGenerator
from .token_verifier import (
    ID_TOKEN_INFO,
    SESSION_COOKIE_INFO,
    TokenInfo,
    TokenVerifier,
    validate_token_argument,
)

logger = structlog.get_logger(__name__)


class Auth:
    """
    Entry point for minting custom tokens and verifying ID tokens and session cookies

    The credential and signer are resolved once at construction. Verifiers,
    and the key caches they own, are created on first use.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        credential: Credential | None = None,
        signer: CryptoSigner | None = None,
        http_client: HttpClient | None = None,
        tenant_id: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.http_client = http_client or HttpClient(timeout=self.settings.http_timeout)
        self.credential = credential or CredentialResolver(self.settings, self.http_client).resolve()

        if signer is None:
            if self.settings.emulator_enabled:
                signer = EmulatedSigner()
            else:
                signer = crypto_signer_from_credential(
                    self.credential,
                    service_account_id=self.settings.service_account_id,
                    timeout=self.settings.http_timeout,
                )
        self.signer = signer
        self.tenant_id = tenant_id
        self.token_generator = TokenGenerator(signer, tenant_id)

        self._project_id: str | None = None
        self._verifiers: dict[str, TokenVerifier] = {}

        logger.debug(
            "Auth initialized",
            signer=type(signer).__name__,
            tenant_id=tenant_id,
            emulator=self.settings.emulator_enabled,
        )

    def for_tenant(self, tenant_id: str) -> "Auth":
        """Return a tenant-scoped instance sharing this instance's credential and signer"""
        return Auth(
            settings=self.settings,
            credential=self.credential,
            signer=self.signer,
            http_client=self.http_client,
            tenant_id=tenant_id,
        )

    async def create_custom_token(self, uid: str, developer_claims: Mapping[str, Any] | None = None) -> str:
        return await self.token_generator.create_custom_token(uid, developer_claims)

    async def verify_id_token(self, id_token: str) -> dict[str, Any]:
        validate_token_argument(id_token, ID_TOKEN_INFO)
        verifier = await self._get_verifier(ID_TOKEN_INFO)
        return await verifier.verify(id_token)

    async def verify_session_cookie(self, session_cookie: str) -> dict[str, Any]:
        validate_token_argument(session_cookie, SESSION_COOKIE_INFO)
        verifier = await self._get_verifier(SESSION_COOKIE_INFO)
        return await verifier.verify(session_cookie)

    async def get_project_id(self) -> str | None:
        if self._project_id is None:
            self._project_id = await find_project_id(self.credential, self.settings, self.http_client)
        return self._project_id

    async def _get_verifier(self, token_info: TokenInfo) -> TokenVerifier:
        verifier = self._verifiers.get(token_info.short_name)
        if verifier is not None:
            return verifier

        project_id = await self.get_project_id()
        verifier = TokenVerifier(
            token_info,
            project_id,
            http_client=self.http_client,
            tenant_id=self.tenant_id,
            emulator=self.settings.emulator_enabled,
        )
        # Without a project ID the verifier only raises; look it up again next call
        if project_id:
            self._verifiers[token_info.short_name] = verifier
        return verifier
