"""
Codec for the opaque OIDC ``state`` value.

The state carries the post-login redirect target through the provider
round trip as base64-encoded JSON: ``{"successRedirect": "<url>"}``.
"""

import base64
import binascii
import json
from typing import Any, Dict


class StateDecodeError(ValueError):
    """Raised when a state token is not base64-encoded JSON object"""
    pass


def encode_state(success_redirect: str) -> str:
    """
    Encode the post-login redirect target into a state token.

    Args:
        success_redirect: URL the browser is sent to after sign-in

    Returns:
        Base64 string safe to send as the OIDC state parameter
    """
    payload = json.dumps({"successRedirect": success_redirect}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_state(token: str) -> Dict[str, Any]:
    """
    Decode a state token produced by ``encode_state``.

    Args:
        token: State value returned by the provider

    Returns:
        The decoded JSON object

    Raises:
        StateDecodeError: If the token is not valid base64, not UTF-8,
            not JSON, or not a JSON object
    """
    try:
        raw = base64.b64decode(token, validate=True)
        value = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StateDecodeError(f"Malformed state token: {e}") from e

    if not isinstance(value, dict):
        raise StateDecodeError("State token does not contain a JSON object")

    return value
