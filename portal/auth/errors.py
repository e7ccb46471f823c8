"""
Sign-in flow exceptions.

Every failure of the flow controller is raised as an ``AuthFlowError``
subclass. The application exception handler renders them as the portal
error page using ``status_code`` and ``title``; ``str(exc)`` is the message
shown to the guest, so it never contains tokens, codes or session data.
"""

from fastapi import status


class AuthFlowError(Exception):
    """Base exception for sign-in flow errors"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    title: str = "Sign-in Failed"


# =============================================================================
# Input Validation Errors
# =============================================================================

class MissingParameterError(AuthFlowError):
    """A required query or form parameter is absent"""

    title = "Invalid Request"


class InvalidRedirectDomainError(AuthFlowError):
    """A redirect target is not on the trusted grant domain"""

    title = "Invalid Redirect"


class ResponseNotFoundError(AuthFlowError):
    """The provider response carries no state"""

    title = "Invalid Request"


class InvalidStateError(AuthFlowError):
    """The state value could not be decoded or lacks a redirect target"""

    title = "Invalid Request"


# =============================================================================
# CSRF Errors
# =============================================================================

class StateMismatchError(AuthFlowError):
    """Returned state does not match the pending flow in the session"""

    title = "Security Error"


# =============================================================================
# Upstream / Session Errors
# =============================================================================

class ProviderError(AuthFlowError):
    """The identity provider could not be reached or rejected the request"""

    status_code = status.HTTP_502_BAD_GATEWAY
    title = "Authentication Service Error"


class SessionError(AuthFlowError):
    """The session store failed to load, save or destroy a session"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Session Error"
