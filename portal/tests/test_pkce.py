"""
Tests for PKCE code generation (portal/auth/pkce.py)
"""

import base64
import hashlib
import re

from portal.auth.pkce import generate_code_challenge, generate_code_verifier, generate_pkce_codes

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def test_verifier_length_and_charset():
    for _ in range(20):
        verifier = generate_code_verifier()
        assert 43 <= len(verifier) <= 128
        assert URL_SAFE.match(verifier)


def test_challenge_is_sha256_of_verifier():
    codes = generate_pkce_codes()
    digest = hashlib.sha256(codes.verifier.encode("ascii")).digest()
    expected = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    assert codes.challenge == expected
    assert codes.challenge_method == "S256"
    assert URL_SAFE.match(codes.challenge)


def test_rfc7636_appendix_b_vector():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_codes_are_unique_per_attempt():
    verifiers = {generate_pkce_codes().verifier for _ in range(50)}
    assert len(verifiers) == 50
