"""
Identity provider client for Microsoft Entra ID.

The flow controller talks to the provider through the narrow
``IdentityProviderClient`` interface so it can be exercised with a fake in
tests. ``MsalIdentityProvider`` implements it with MSAL's
ConfidentialClientApplication, which builds the authorization URL, redeems
the code and validates the ID token.

This module handles:
- Fetching and caching cloud discovery and OIDC metadata for the authority
- Building the authorization URL (form_post, PKCE, state, nonce)
- Exchanging the authorization code, seeded with the session token cache
- Building the end-session URL
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit

import httpx
import msal
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from portal.auth.errors import ProviderError
from portal.config import Settings
from portal.models import AuthCodeRequest, AuthCodeUrlRequest, TokenExchangeResult

logger = logging.getLogger(__name__)

CLOUD_DISCOVERY_ENDPOINT = "https://login.microsoftonline.com/common/discovery/instance"


# =============================================================================
# Interface
# =============================================================================

class IdentityProviderClient(ABC):
    """Operations the sign-in flow needs from the identity provider."""

    @abstractmethod
    async def build_authorization_url(self, request: AuthCodeUrlRequest) -> str:
        """Return the URL the browser is redirected to for sign-in."""

    @abstractmethod
    async def exchange_code(
        self,
        request: AuthCodeRequest,
        token_cache: Optional[str] = None,
    ) -> TokenExchangeResult:
        """Redeem an authorization code. Raises ProviderError on failure."""

    @abstractmethod
    def end_session_url(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        """Return the provider sign-out URL."""


# =============================================================================
# Metadata
# =============================================================================

class ProviderMetadata(BaseModel):
    """Discovery documents for the configured authority."""
    cloud_discovery: Dict[str, Any] = Field(default_factory=dict)
    authority: Dict[str, Any] = Field(default_factory=dict)

    @property
    def end_session_endpoint(self) -> Optional[str]:
        return self.authority.get("end_session_endpoint")

    @property
    def instance_aliases(self) -> List[str]:
        """Host names the cloud treats as the same instance."""
        aliases: List[str] = []
        for entry in self.cloud_discovery.get("metadata", []):
            aliases.extend(entry.get("aliases", []))
        return aliases

    def is_known_instance(self, authority: str) -> bool:
        # No instance data to check against
        aliases = self.instance_aliases
        return not aliases or urlsplit(authority).hostname in aliases


async def fetch_cloud_discovery_metadata(client: httpx.AsyncClient, authority: str) -> Dict[str, Any]:
    """
    Fetch cloud instance discovery metadata for an authority.

    Raises:
        httpx.HTTPError: If the endpoint is unreachable or returns an error
    """
    response = await client.get(
        CLOUD_DISCOVERY_ENDPOINT,
        params={
            "api-version": "1.1",
            "authorization_endpoint": f"{authority}/oauth2/v2.0/authorize",
        },
    )
    response.raise_for_status()
    return response.json()


async def fetch_authority_metadata(client: httpx.AsyncClient, authority: str) -> Dict[str, Any]:
    """
    Fetch the OpenID Connect configuration document for an authority.

    Raises:
        httpx.HTTPError: If the endpoint is unreachable or returns an error
        ValueError: If the document is missing required endpoints
    """
    response = await client.get(f"{authority}/v2.0/.well-known/openid-configuration")
    response.raise_for_status()

    metadata = response.json()
    if "authorization_endpoint" not in metadata or "token_endpoint" not in metadata:
        raise ValueError("Invalid OpenID configuration: missing endpoints")

    return metadata


# =============================================================================
# MSAL Implementation
# =============================================================================

class MsalIdentityProvider(IdentityProviderClient):
    """
    Entra ID client backed by msal.ConfidentialClientApplication.

    Discovery metadata is fetched once, on first use, and kept for the life
    of the process. Concurrent first requests wait on one fetch. MSAL's own
    HTTP cache is shared across the per-request application instances.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._metadata: Optional[ProviderMetadata] = None
        self._metadata_lock = asyncio.Lock()
        self._http_cache: Dict[Any, Any] = {}

    @property
    def metadata(self) -> Optional[ProviderMetadata]:
        return self._metadata

    async def ensure_metadata(self) -> ProviderMetadata:
        """
        Return cached provider metadata, fetching it if absent.

        Raises:
            ProviderError: If either discovery document cannot be fetched, or
                the authority host is not an alias of the discovered instance
        """
        if self._metadata is not None:
            return self._metadata

        async with self._metadata_lock:
            if self._metadata is not None:
                return self._metadata

            authority = self.settings.authority
            logger.info("Fetching provider metadata for %s", authority)
            try:
                async with httpx.AsyncClient(timeout=self.settings.PROVIDER_TIMEOUT_SECONDS) as client:
                    cloud_discovery, authority_metadata = await asyncio.gather(
                        fetch_cloud_discovery_metadata(client, authority),
                        fetch_authority_metadata(client, authority),
                    )
            except (httpx.HTTPError, ValueError) as e:
                logger.error("Provider metadata fetch failed: %s", e)
                raise ProviderError(
                    "Unable to reach the sign-in service. Please try again."
                ) from e

            metadata = ProviderMetadata(
                cloud_discovery=cloud_discovery,
                authority=authority_metadata,
            )
            if not metadata.is_known_instance(authority):
                logger.error("Authority %s is not a known cloud instance", authority)
                raise ProviderError("The sign-in service is not configured correctly.")

            self._metadata = metadata
            return self._metadata

    def get_msal_app(self, token_cache: Optional[msal.SerializableTokenCache] = None) -> msal.ConfidentialClientApplication:
        """
        Instantiate a ConfidentialClientApplication.

        Instance discovery is disabled because ``ensure_metadata`` already
        checked the authority against the cloud discovery aliases.
        """
        return msal.ConfidentialClientApplication(
            self.settings.AZURE_CLIENT_ID,
            client_credential=self.settings.AZURE_CLIENT_SECRET,
            authority=self.settings.authority,
            token_cache=token_cache,
            http_cache=self._http_cache,
            instance_discovery=False,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
        )

    async def _call(self, func, *args, **kwargs):
        # Outer bound covers the app construction plus the token request
        try:
            return await asyncio.wait_for(
                run_in_threadpool(func, *args, **kwargs),
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS * 2,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError("The sign-in service timed out. Please try again.") from e
        except ProviderError:
            raise
        except Exception as e:
            logger.error("Identity provider call failed: %s", e, exc_info=True)
            raise ProviderError("Unable to communicate with the sign-in service.") from e

    async def build_authorization_url(self, request: AuthCodeUrlRequest) -> str:
        await self.ensure_metadata()

        def _build() -> str:
            app = self.get_msal_app()
            return app.get_authorization_request_url(
                request.scopes,
                state=request.state,
                redirect_uri=request.redirect_uri,
                nonce=request.nonce,
                response_mode=request.response_mode,
                code_challenge=request.code_challenge,
                code_challenge_method=request.code_challenge_method,
            )

        return await self._call(_build)

    async def exchange_code(
        self,
        request: AuthCodeRequest,
        token_cache: Optional[str] = None,
    ) -> TokenExchangeResult:
        await self.ensure_metadata()

        def _exchange() -> TokenExchangeResult:
            cache = msal.SerializableTokenCache()
            if token_cache:
                cache.deserialize(token_cache)

            app = self.get_msal_app(token_cache=cache)
            result = app.acquire_token_by_authorization_code(
                request.code,
                request.scopes,
                redirect_uri=request.redirect_uri,
                nonce=request.nonce,
                data={"code_verifier": request.code_verifier},
            )

            if "error" in result:
                description = (result.get("error_description") or "").split("\n")[0]
                logger.warning("Token exchange rejected: %s (%s)", result.get("error"), description)
                raise ProviderError("Sign-in could not be completed. Please try again.")

            if not result.get("id_token"):
                raise ProviderError("No ID token received from identity provider")

            claims = result.get("id_token_claims") or {}
            return TokenExchangeResult(
                id_token=result["id_token"],
                id_token_claims=claims,
                account=_find_account(app, claims),
                token_cache=cache.serialize(),
            )

        return await self._call(_exchange)

    def end_session_url(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        endpoint = None
        if self._metadata is not None:
            endpoint = self._metadata.end_session_endpoint
        if not endpoint:
            endpoint = f"{self.settings.authority}/oauth2/v2.0/logout"

        if post_logout_redirect_uri:
            separator = "&" if "?" in endpoint else "?"
            return f"{endpoint}{separator}{urlencode({'post_logout_redirect_uri': post_logout_redirect_uri})}"
        return endpoint


def _find_account(app: msal.ClientApplication, claims: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return the cached MSAL account for the signed-in user.

    Falls back to an account built from the ID token claims when the cache
    has no matching entry.
    """
    username = claims.get("preferred_username")
    accounts = app.get_accounts(username=username) if username else []
    if accounts:
        return accounts[0]

    oid = claims.get("oid") or claims.get("sub")
    tid = claims.get("tid")
    return {
        "home_account_id": f"{oid}.{tid}" if oid and tid else oid,
        "local_account_id": oid,
        "username": username,
        "name": claims.get("name"),
        "realm": tid,
    }
