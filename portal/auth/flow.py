"""
Sign-in flow controller.

Runs the OIDC authorization code flow for captive portal guests:

1. ``login`` validates the grant URL from the access point, stores PKCE
   codes and the pending request in the session, and redirects to Entra ID.
2. ``handle_redirect`` receives the provider's form post, checks the state
   against the session, re-validates the grant URL carried in the state,
   redeems the code and redirects the browser to the grant URL.
3. ``logout`` destroys the session and redirects to the provider sign-out.

Session states: anonymous -> pending (login) -> authenticated
(handle_redirect) -> anonymous (logout or expiry). Starting a new login
drops any earlier sign-in, and a failed handle_redirect drops the pending
flow without authenticating.
"""

import logging
import secrets
from typing import Mapping, Optional

from fastapi import Request, status
from fastapi.responses import RedirectResponse

from portal.auth.errors import (
    InvalidRedirectDomainError,
    InvalidStateError,
    MissingParameterError,
    ProviderError,
    ResponseNotFoundError,
    StateMismatchError,
)
from portal.auth.pkce import generate_pkce_codes
from portal.auth.provider import IdentityProviderClient
from portal.auth.redirects import build_success_redirect, is_http_url, is_valid_redirect_domain
from portal.auth.state import StateDecodeError, decode_state, encode_state
from portal.config import Settings
from portal.models import AuthCodeRequest, AuthCodeUrlRequest
from portal.sessions import ServerSession, get_session

logger = logging.getLogger(__name__)

# Session keys holding the pending flow
FLOW_KEYS = ("pkce_codes", "auth_code_url_request", "auth_code_request")

# Session keys that mark a completed sign-in
AUTH_KEYS = ("is_authenticated", "account", "id_token")


class AuthFlowController:
    """
    Orchestrates sign-in around an ``IdentityProviderClient``.

    Args:
        settings: Application settings (redirect URI, trusted domain, scopes)
        provider: Identity provider client
    """

    def __init__(self, settings: Settings, provider: IdentityProviderClient):
        self.settings = settings
        self.provider = provider

    def is_trusted_redirect(self, url: str) -> bool:
        return is_valid_redirect_domain(url, self.settings.TRUSTED_REDIRECT_DOMAIN)

    # =========================================================================
    # Login
    # =========================================================================

    async def login(
        self,
        request: Request,
        base_grant_url: Optional[str],
        user_continue_url: Optional[str],
    ) -> RedirectResponse:
        """
        Start the authorization code flow.

        Args:
            request: Incoming request (carries the session)
            base_grant_url: Access point grant URL from the splash redirect
            user_continue_url: Page the guest originally asked for

        Returns:
            302 redirect to the provider authorization URL

        Raises:
            MissingParameterError: If either query parameter is missing
            InvalidRedirectDomainError: If base_grant_url is not a trusted http(s) URL
            ProviderError: If the provider cannot be reached
        """
        if not base_grant_url or not user_continue_url:
            raise MissingParameterError("Missing required query parameters")

        if not self._is_safe_redirect(base_grant_url):
            logger.warning("Rejected sign-in with untrusted grant URL")
            raise InvalidRedirectDomainError("Invalid base_grant_url domain")

        session = get_session(request)
        state = encode_state(build_success_redirect(base_grant_url, user_continue_url))
        pkce_codes = generate_pkce_codes()
        nonce = secrets.token_urlsafe(32)
        scopes = self.settings.scopes_list
        redirect_uri = self.settings.redirect_uri

        auth_code_url_request = AuthCodeUrlRequest(
            state=state,
            scopes=scopes,
            redirect_uri=redirect_uri,
            response_mode="form_post",
            code_challenge=pkce_codes.challenge,
            code_challenge_method=pkce_codes.challenge_method,
            nonce=nonce,
        )
        auth_code_request = AuthCodeRequest(
            state=state,
            scopes=scopes,
            redirect_uri=redirect_uri,
            nonce=nonce,
        )

        # A new flow replaces any earlier sign-in until it completes
        for key in AUTH_KEYS:
            session.pop(key, None)
        session["pkce_codes"] = pkce_codes.model_dump()
        session["auth_code_url_request"] = auth_code_url_request.model_dump()
        session["auth_code_request"] = auth_code_request.model_dump()

        authorization_url = await self.provider.build_authorization_url(auth_code_url_request)
        logger.info("Redirecting guest to identity provider")
        return RedirectResponse(url=authorization_url, status_code=status.HTTP_302_FOUND)

    # =========================================================================
    # Provider Response
    # =========================================================================

    async def handle_redirect(self, request: Request, form: Mapping[str, str]) -> RedirectResponse:
        """
        Complete the flow from the provider's form post.

        Args:
            request: Incoming request (carries the session)
            form: Posted form fields (state, code, error, ...)

        Returns:
            302 redirect to the validated grant URL

        Raises:
            ResponseNotFoundError: If the response has no state
            StateMismatchError: If the state does not match the pending flow
            MissingParameterError: If the response has no code
            InvalidStateError: If the state cannot be decoded
            InvalidRedirectDomainError: If the decoded target is not trusted
            ProviderError: If the provider reported or caused a failure
        """
        session = get_session(request)
        pending = {key: session.pop(key, None) for key in FLOW_KEYS}

        state = form.get("state")
        if not state:
            raise ResponseNotFoundError("Error: response not found")

        expected_state = (pending["auth_code_url_request"] or {}).get("state")
        if not expected_state or state != expected_state:
            logger.warning("State mismatch on provider response, possible CSRF")
            raise StateMismatchError(
                "State mismatch. This may be a forged request or an expired session."
            )

        if form.get("error"):
            logger.warning("Provider returned error: %s", form.get("error"))
            raise ProviderError(f"Unable to authenticate: {form.get('error')}")

        code = form.get("code")
        if not code:
            raise MissingParameterError("Missing authorization code")

        success_redirect = self._decode_success_redirect(state)

        auth_code_request = AuthCodeRequest(
            **{
                **(pending["auth_code_request"] or {}),
                "code": code,
                "code_verifier": (pending["pkce_codes"] or {}).get("verifier"),
            }
        )

        result = await self.provider.exchange_code(
            auth_code_request,
            token_cache=session.get("token_cache"),
        )

        # Re-check the exact value handed to the redirect
        if not self._is_safe_redirect(success_redirect):
            raise InvalidRedirectDomainError("Invalid redirect URL in state")

        await session.cycle_id()
        session["token_cache"] = result.token_cache
        session["id_token"] = result.id_token
        session["account"] = result.account
        session["is_authenticated"] = True
        logger.info("Guest signed in, redirecting to grant URL")
        return RedirectResponse(url=success_redirect, status_code=status.HTTP_302_FOUND)

    def _decode_success_redirect(self, state: str) -> str:
        try:
            decoded = decode_state(state)
        except StateDecodeError as e:
            raise InvalidStateError("Invalid state parameter") from e

        success_redirect = decoded.get("successRedirect")
        if not success_redirect or not isinstance(success_redirect, str):
            raise InvalidStateError("Missing redirect URL in state")

        if not self._is_safe_redirect(success_redirect):
            logger.warning("Rejected untrusted redirect target in state")
            raise InvalidRedirectDomainError("Invalid redirect URL in state")

        return success_redirect

    def _is_safe_redirect(self, url: str) -> bool:
        return is_http_url(url) and self.is_trusted_redirect(url)

    # =========================================================================
    # Logout
    # =========================================================================

    async def logout(self, request: Request) -> RedirectResponse:
        """
        End the session and sign out at the provider.

        Raises:
            SessionError: If the session cannot be destroyed
        """
        session: ServerSession = get_session(request)
        logout_url = self.provider.end_session_url(self.settings.post_logout_redirect_uri)

        await session.destroy()
        logger.info("Guest signed out")
        return RedirectResponse(url=logout_url, status_code=status.HTTP_302_FOUND)
