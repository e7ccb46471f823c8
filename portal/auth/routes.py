"""
Authentication routes for the captive portal sign-in flow.

Endpoints:
----------
- GET  /auth/signin         : Start sign-in (Meraki base_grant_url + user_continue_url)
- POST /auth/openid/return  : Provider form post (state, code)
- GET  /auth/signout        : End the session and sign out at the provider
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from portal.auth.flow import AuthFlowController


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def get_auth_flow(request: Request) -> AuthFlowController:
    """Dependency returning the controller created by the app factory."""
    return request.app.state.auth_flow


# =============================================================================
# Endpoints
# =============================================================================

@auth_router.get("/signin", response_class=RedirectResponse)
async def signin(
    request: Request,
    base_grant_url: Optional[str] = Query(None, description="Access point grant URL"),
    user_continue_url: Optional[str] = Query(None, description="URL the guest originally requested"),
    flow: AuthFlowController = Depends(get_auth_flow),
):
    """
    Initiate sign-in by redirecting to Microsoft Entra ID.

    Missing parameters and grant URLs outside the trusted domain are
    rejected before the provider is contacted.
    """
    return await flow.login(request, base_grant_url, user_continue_url)


@auth_router.post("/openid/return", response_class=RedirectResponse)
async def openid_return(
    request: Request,
    flow: AuthFlowController = Depends(get_auth_flow),
):
    """
    Handle the provider's form post and redirect to the grant URL.
    """
    form = await request.form()
    fields = {key: value for key, value in form.items() if isinstance(value, str)}
    return await flow.handle_redirect(request, fields)


@auth_router.get("/signout", response_class=RedirectResponse)
async def signout(
    request: Request,
    flow: AuthFlowController = Depends(get_auth_flow),
):
    """Destroy the session and redirect to the provider sign-out page."""
    return await flow.logout(request)
