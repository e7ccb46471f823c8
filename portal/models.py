"""
Data Models Module

This module defines Pydantic models for the parameters that travel through
the sign-in flow. They are stored in the browser session between the
signin and return legs, so every model serializes to plain JSON.

Models are organized by flow step:
- PKCE codes generated for each authorization attempt
- Authorization URL request (first leg)
- Authorization code request (second leg)
- Token exchange result returned by the identity provider
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Flow State Models
# ============================================================================

class PkceCodes(BaseModel):
    """PKCE verifier/challenge pair for one authorization attempt."""
    verifier: str = Field(..., description="Random code verifier (kept server-side)")
    challenge: str = Field(..., description="base64url(SHA-256(verifier))")
    challenge_method: Literal["S256"] = Field(default="S256", description="Challenge method")


class AuthCodeUrlRequest(BaseModel):
    """Parameters used to build the provider authorization URL."""
    state: str = Field(..., description="Opaque state round-tripped through the provider")
    scopes: List[str] = Field(default_factory=list, description="Scopes in addition to OIDC defaults")
    redirect_uri: str = Field(..., description="Where the provider posts the response")
    response_mode: Literal["form_post"] = Field(default="form_post", description="Provider response mode")
    code_challenge: str = Field(..., description="PKCE challenge")
    code_challenge_method: Literal["S256"] = Field(default="S256", description="PKCE challenge method")
    nonce: Optional[str] = Field(None, description="OIDC nonce bound into the ID token")


class AuthCodeRequest(BaseModel):
    """Parameters used to redeem the authorization code."""
    state: str = Field(..., description="State sent with the authorization request")
    scopes: List[str] = Field(default_factory=list, description="Scopes requested for the tokens")
    redirect_uri: str = Field(..., description="Redirect URI used in the first leg")
    code: str = Field(default="", description="Authorization code from the provider response")
    code_verifier: Optional[str] = Field(None, description="PKCE verifier from the session")
    nonce: Optional[str] = Field(None, description="Expected ID token nonce")


# ============================================================================
# Provider Result Models
# ============================================================================

class TokenExchangeResult(BaseModel):
    """Outcome of a successful authorization code exchange."""
    id_token: str = Field(..., description="Raw ID token")
    id_token_claims: Dict[str, Any] = Field(default_factory=dict, description="Validated ID token claims")
    account: Dict[str, Any] = Field(default_factory=dict, description="Signed-in account")
    token_cache: Optional[str] = Field(None, description="Serialized token cache blob")
