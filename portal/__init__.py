"""
Captive portal sign-in service.

Admits guests on a captive Wi-Fi network after they sign in with
Microsoft Entra ID (OpenID Connect authorization code flow with PKCE).
"""

__version__ = "1.0.0"
