"""
PKCE (RFC 7636) helpers for the sign-in flow. S256 only.
"""

import base64
import hashlib
import secrets

from portal.models import PkceCodes


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters, 256 bits of entropy)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode('ascii').rstrip('=')


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii').rstrip('=')


def generate_pkce_codes() -> PkceCodes:
    """Generate a fresh verifier and its S256 challenge."""
    verifier = generate_code_verifier()
    return PkceCodes(
        verifier=verifier,
        challenge=generate_code_challenge(verifier),
        challenge_method="S256",
    )
