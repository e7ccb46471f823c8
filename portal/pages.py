"""
Portal pages: splash, account and error pages.

Pages are rendered inline; every value that comes from a request, the
session or the identity provider is escaped.
"""

import html
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse


pages_router = APIRouter(tags=["pages"])


# =============================================================================
# HTML Layout
# =============================================================================

_STYLE = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
            background: linear-gradient(135deg, #0078d4 0%, #005a9e 100%);
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            padding: 20px;
        }
        .container {
            background: white;
            border-radius: 12px;
            padding: 40px;
            max-width: 500px;
            width: 100%;
            box-shadow: 0 10px 40px rgba(0,0,0,0.2);
            text-align: center;
        }
        h1 { color: #1f2937; font-size: 24px; margin-bottom: 16px; }
        .message { color: #6b7280; font-size: 16px; line-height: 1.6; margin-bottom: 32px; }
        .button {
            display: inline-block;
            background: #0078d4;
            color: white;
            padding: 14px 32px;
            border-radius: 8px;
            text-decoration: none;
            font-weight: 600;
            font-size: 16px;
        }
        .support {
            margin-top: 24px;
            padding-top: 24px;
            border-top: 1px solid #e5e7eb;
            color: #9ca3af;
            font-size: 13px;
        }
"""


def _render_page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    html_content = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <style>{_STYLE}</style>
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>"""
    return HTMLResponse(content=html_content, status_code=status_code)


def render_error_page(
    title: str,
    message: str,
    status_code: int = 400,
    show_retry: bool = True,
) -> HTMLResponse:
    """
    Render error page for sign-in failures.

    Args:
        title: Error title
        message: Error message (no tokens or session data)
        status_code: HTTP status code
        show_retry: Whether to link back to the splash page

    Returns:
        HTMLResponse with error information
    """
    retry_button = '<a href="/" class="button">Try Again</a>' if show_retry else ""
    body = f"""
        <h1>{html.escape(title)}</h1>
        <p class="message">{html.escape(message)}</p>
        {retry_button}
        <div class="support">
            <p>Reconnect to the Wi-Fi network to restart sign-in. Need help? Contact your system administrator.</p>
        </div>"""
    return _render_page(title, body, status_code=status_code)


# =============================================================================
# Pages
# =============================================================================

@pages_router.get("/", response_class=HTMLResponse)
async def splash(
    request: Request,
    base_grant_url: Optional[str] = Query(None),
    user_continue_url: Optional[str] = Query(None),
):
    """
    Splash page the access point redirects new guests to.

    Shows the sign-in button carrying the access point parameters, or the
    signed-in user when the session is authenticated.
    """
    settings = request.app.state.settings
    session = request.session

    if session.get("is_authenticated"):
        username = (session.get("account") or {}).get("username") or "guest"
        body = f"""
        <h1>{html.escape(settings.PORTAL_TITLE)}</h1>
        <p class="message">Signed in to {html.escape(settings.SSID)} as {html.escape(username)}.</p>
        <a href="/auth/signout" class="button">Sign Out</a>"""
    elif base_grant_url:
        query = {"base_grant_url": base_grant_url}
        if user_continue_url:
            query["user_continue_url"] = user_continue_url
        signin_url = f"/auth/signin?{urlencode(query)}"
        body = f"""
        <h1>{html.escape(settings.PORTAL_TITLE)}</h1>
        <p class="message">Sign in with your organization account to use {html.escape(settings.SSID)}.</p>
        <a href="{html.escape(signin_url)}" class="button">Sign In</a>"""
    else:
        body = f"""
        <h1>{html.escape(settings.PORTAL_TITLE)}</h1>
        <p class="message">Connect to {html.escape(settings.SSID)} to sign in.</p>"""

    return _render_page(settings.PORTAL_TITLE, body)


@pages_router.get("/account", response_class=HTMLResponse)
async def account(request: Request):
    """Signed-in account details; anonymous guests go back to the splash page."""
    session = request.session
    if not session.get("is_authenticated"):
        return RedirectResponse(url="/", status_code=302)

    account = session.get("account") or {}
    name = account.get("name") or account.get("username") or "Guest"
    body = f"""
        <h1>{html.escape(name)}</h1>
        <p class="message">{html.escape(account.get("username") or "")}</p>
        <a href="/auth/signout" class="button">Sign Out</a>"""
    return _render_page("Account", body)
