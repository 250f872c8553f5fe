import base64

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from deelauto.bunq import BunqConfigError, analyze_private_key, normalize_private_key, sign_body
from deelauto.bunq.signing import load_private_key

BODY = b'{"secret": "sandbox_api_key"}'

def _verify(pem: str, signature: str) -> None:
    public_key = load_private_key(pem).public_key()
    # lève InvalidSignature si la signature ne correspond pas au corps exact
    public_key.verify(base64.b64decode(signature), BODY, padding.PKCS1v15(), hashes.SHA256())

def test_sign_with_proper_pem(rsa_private_pem):
    _verify(rsa_private_pem, sign_body(BODY, rsa_private_pem))

def test_sign_with_escaped_newlines(rsa_private_pem):
    escaped = rsa_private_pem.strip().replace("\n", "\\n")
    assert "\n" not in escaped
    assert normalize_private_key(escaped) == rsa_private_pem.strip()
    _verify(rsa_private_pem, sign_body(BODY, escaped))

def test_sign_with_base64_encoded_pem(rsa_private_pem):
    encoded = base64.b64encode(rsa_private_pem.encode("utf-8")).decode("ascii")
    _verify(rsa_private_pem, sign_body(BODY, encoded))

def test_str_body_signed_as_utf8(rsa_private_pem):
    _verify(rsa_private_pem, sign_body(BODY.decode("utf-8"), rsa_private_pem))

@pytest.mark.parametrize("raw", ["", "   ", "not a key at all!", base64.b64encode(b"hello").decode()])
def test_unusable_keys_raise_config_error(raw):
    with pytest.raises(BunqConfigError):
        load_private_key(raw)

def test_analyze_reports_working_format_without_leaking_key(rsa_private_pem):
    escaped = rsa_private_pem.strip().replace("\n", "\\n")
    report = analyze_private_key(escaped)
    assert report["results"]["as_is"]["success"] is False
    assert report["results"]["with_newlines"]["success"] is True
    assert "\\n" in report["recommendation"]
    assert escaped not in str(report)
