"""
Tests for the opaque state codec (portal/auth/state.py)
"""

import base64

import pytest

from portal.auth.state import StateDecodeError, decode_state, encode_state


@pytest.mark.parametrize(
    "success_redirect",
    [
        "https://n143.network-auth.com/splash/grant?continue_url=https%3A%2F%2Fwww.example.com%2F",
        "https://n143.network-auth.com/grant?continue_url=https://例え.jp/パス",
        "",
    ],
)
def test_decode_reverses_encode(success_redirect):
    assert decode_state(encode_state(success_redirect)) == {"successRedirect": success_redirect}


def test_encoded_state_is_base64_json():
    token = encode_state("https://n1.network-auth.com/grant")
    assert base64.b64decode(token) == b'{"successRedirect":"https://n1.network-auth.com/grant"}'


@pytest.mark.parametrize(
    "token",
    [
        "",
        "%%%",
        "abc",  # bad padding
        base64.b64encode(b"not json").decode(),
        base64.b64encode(b'"a string"').decode(),
        base64.b64encode(b"[1, 2]").decode(),
        base64.b64encode(b"\xff\xfe\x00").decode(),
        base64.b64encode(b'{"successRedirect": ').decode(),
    ],
)
def test_malformed_tokens_raise_decode_error(token):
    with pytest.raises(StateDecodeError):
        decode_state(token)


def test_decode_error_is_value_error():
    with pytest.raises(ValueError):
        decode_state("%%%")
