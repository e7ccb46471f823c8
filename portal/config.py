"""
Configuration module for the captive portal sign-in service.

This module uses Pydantic Settings to load and validate environment variables
for Microsoft Entra ID authentication, the trusted grant domain, browser
sessions and portal branding.

Environment variables are loaded from .env file or system environment.
"""

import re
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Scopes MSAL adds on its own and refuses to receive explicitly
RESERVED_SCOPES = {"openid", "profile", "offline_access"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for Entra ID (OIDC), the captive portal redirect policy
    and session cookies is defined here.
    """

    # =========================================================================
    # Azure AD / Entra ID Configuration (OIDC Authentication)
    # =========================================================================

    AZURE_TENANT_ID: str = Field(
        ...,
        description="Azure AD Tenant ID (GUID) or tenant domain",
        min_length=1,
    )

    AZURE_CLIENT_ID: str = Field(
        ...,
        description="Application (client) ID of the portal app registration",
        min_length=36,
        max_length=36,
    )

    AZURE_CLIENT_SECRET: str = Field(
        ...,
        description="Client secret of the portal app registration (confidential client)",
        min_length=1,
    )

    CLOUD_INSTANCE: str = Field(
        default="https://login.microsoftonline.com",
        description="Entra ID cloud instance the tenant lives in",
    )

    REDIRECT_URL: str = Field(
        ...,
        description="Public base URL of the portal (e.g., https://portal.example.com)",
        min_length=1,
    )

    AUTH_SCOPES: str = Field(
        default="",
        description="Comma-separated extra scopes; OIDC scopes are added by MSAL",
    )

    # =========================================================================
    # Captive Portal Configuration
    # =========================================================================

    TRUSTED_REDIRECT_DOMAIN: str = Field(
        default="network-auth.com",
        description="Domain that grant URLs must belong to (subdomains allowed)",
    )

    PORTAL_TITLE: str = Field(
        default="Meraki Captive Portal for Azure Active Directory",
        description="Title shown on the splash page",
    )

    SSID: str = Field(
        default="WiFi",
        description="Wireless network name shown on the splash page",
    )

    # =========================================================================
    # Session Configuration
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret key used to sign the session cookie",
        min_length=32,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="portal_session",
        description="Name of the session cookie",
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=60,
        description="Session inactivity expiry in seconds",
        ge=10,
        le=3600,
    )

    # =========================================================================
    # Runtime Configuration
    # =========================================================================

    ENVIRONMENT: str = Field(
        default="production",
        description="Deployment environment (development or production)",
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Timeout for calls to the identity provider",
        gt=0,
        le=60,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars not defined here
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def authority(self) -> str:
        """
        Construct the Entra ID authority URL.

        Returns:
            Full authority URL, e.g. https://login.microsoftonline.com/<tenant>
        """
        return f"{self.CLOUD_INSTANCE.rstrip('/')}/{self.AZURE_TENANT_ID}"

    @property
    def redirect_uri(self) -> str:
        """OIDC redirect URI registered in Entra ID."""
        return f"{self.REDIRECT_URL.rstrip('/')}/auth/openid/return"

    @property
    def post_logout_redirect_uri(self) -> str:
        """Where the provider sends the browser after sign-out."""
        return f"{self.REDIRECT_URL.rstrip('/')}/"

    @property
    def scopes_list(self) -> List[str]:
        """
        Parse and return AUTH_SCOPES as a clean list.

        Returns:
            List of scope strings without whitespace.
        """
        return [
            scope.strip()
            for scope in self.AUTH_SCOPES.split(",")
            if scope.strip()
        ]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("AZURE_CLIENT_ID")
    @classmethod
    def validate_guid_format(cls, v: str) -> str:
        """
        Validate that the client ID is in GUID format.

        Raises:
            ValueError: If not a valid GUID format
        """
        guid_pattern = re.compile(
            r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
            re.IGNORECASE
        )

        if not guid_pattern.match(v):
            raise ValueError(
                f"Invalid GUID format: {v}. "
                "Expected format: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"
            )

        return v.lower()

    @field_validator("CLOUD_INSTANCE", "REDIRECT_URL")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Expected an http(s) URL, got: {v}")
        return v.rstrip("/")

    @field_validator("TRUSTED_REDIRECT_DOMAIN")
    @classmethod
    def validate_trusted_domain(cls, v: str) -> str:
        """
        Validate the trusted grant domain.

        Raises:
            ValueError: If the domain is empty or malformed
        """
        domain = v.strip().lower().strip(".")

        if not domain or "." not in domain:
            raise ValueError(
                f"Invalid domain format: '{v}'. "
                "Expected format: 'network-auth.com'"
            )

        if any(c in domain for c in " @/:\\"):
            raise ValueError(
                f"Invalid domain format: '{v}'. "
                "Domain should be a bare host name"
            )

        return domain

    @field_validator("AUTH_SCOPES")
    @classmethod
    def validate_scopes(cls, v: str) -> str:
        reserved = {s.strip() for s in v.split(",")} & RESERVED_SCOPES
        if reserved:
            raise ValueError(
                f"AUTH_SCOPES must not contain reserved scopes: {sorted(reserved)}"
            )
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of {allowed}, got: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v.upper()


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Validate deployment-sensitive settings and return a status report.

    Called during application startup so misconfiguration shows up in the
    logs before the first guest tries to sign in.

    Returns:
        Dictionary with validation status and any warnings.
    """
    settings = settings or get_settings()
    errors = []
    warnings = []

    if settings.is_production and not settings.REDIRECT_URL.startswith("https://"):
        errors.append(
            "REDIRECT_URL must use https in production "
            "(session cookie is Secure and SameSite=None)"
        )

    if not settings.is_production:
        warnings.append("Session cookie is not marked Secure outside production")

    if "localhost" in settings.REDIRECT_URL or "127.0.0.1" in settings.REDIRECT_URL:
        warnings.append("REDIRECT_URL points to localhost (provider cannot post back to it remotely)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "authority": settings.authority,
        "trusted_redirect_domain": settings.TRUSTED_REDIRECT_DOMAIN,
        "session_max_age_seconds": settings.SESSION_MAX_AGE_SECONDS,
    }
