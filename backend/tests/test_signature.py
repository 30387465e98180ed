"""Tests for HMAC request signing and verification."""
import hashlib
import hmac

import pytest

from tracklab.models.project import Project
from tracklab.services.signature import (
    SignatureError,
    SignatureFailure,
    build_signature_payload,
    compute_signature,
    sign_payload,
    verify,
)

SECRET = "s3cr3t-api-key"
NOW = 1_700_000_000_000
PROJECT = Project(id=None, name="p", url="https://example.com", api_key=SECRET, allowed_origins=[])


def lookup(project_id):
    return PROJECT if project_id == "proj-1" else None


def base_payload(**extra):
    payload = {"projectId": "proj-1", "url": "https://example.com/page?x=1"}
    payload.update(extra)
    return payload


def test_payload_format():
    assert build_signature_payload(123, "p", "https://x") == "123.p.https://x"


def test_compute_signature_is_hmac_sha256_hex():
    expected = hmac.new(SECRET.encode(), b"123.p.https://x", hashlib.sha256).hexdigest()

    assert compute_signature(123, "p", "https://x", SECRET) == expected
    assert len(expected) == 64


def test_round_trip_succeeds():
    signed = sign_payload(base_payload(userAgent="UA"), SECRET, timestamp=NOW)

    verified = verify(signed, lookup, now=NOW + 1000)

    assert verified.project is PROJECT
    assert verified.timestamp == NOW


def test_string_timestamp_is_accepted():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    signed["_ts"] = str(NOW)

    assert verify(signed, lookup, now=NOW).timestamp == NOW


@pytest.mark.parametrize("field", ["projectId", "url", "_ts", "_sig"])
def test_missing_field_is_rejected(field):
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    del signed[field]

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.MISSING
    assert exc_info.value.code == "SIGNATURE_MISSING"


def test_replayed_request_outside_window_is_expired():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW - 400_000)

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW, window_ms=300_000)

    assert exc_info.value.code == "SIGNATURE_EXPIRED"


def test_future_timestamp_outside_window_is_expired():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW + 300_001)

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.EXPIRED


def test_window_edge_is_inclusive():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW - 300_000)

    assert verify(signed, lookup, now=NOW).timestamp == NOW - 300_000


def test_non_numeric_timestamp_is_expired():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    signed["_ts"] = "yesterday"

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.EXPIRED


def test_unknown_project_is_invalid_project():
    signed = sign_payload(base_payload(projectId="nope"), SECRET, timestamp=NOW)

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.INVALID_PROJECT
    assert exc_info.value.code == "SIGNATURE_INVALID"


def test_tampered_signature_byte_is_rejected():
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    first = signed["_sig"][0]
    signed["_sig"] = ("0" if first != "0" else "1") + signed["_sig"][1:]

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.INVALID


@pytest.mark.parametrize("field,value", [
    ("url", "https://example.com/other"),
    ("projectId", "proj-2"),
])
def test_mutating_signed_fields_after_signing_is_rejected(field, value):
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    signed[field] = value

    def lookup_any(project_id):
        return PROJECT

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup_any, now=NOW)

    assert exc_info.value.failure is SignatureFailure.INVALID


def test_unsigned_fields_may_change():
    """Only timestamp, projectId and url are covered by the signature."""
    signed = sign_payload(base_payload(visitCount=1), SECRET, timestamp=NOW)
    signed["visitCount"] = 99

    assert verify(signed, lookup, now=NOW).project is PROJECT


@pytest.mark.parametrize("sig", ["abc", 12345, "z" * 64])
def test_malformed_signature_is_rejected(sig):
    signed = sign_payload(base_payload(), SECRET, timestamp=NOW)
    signed["_sig"] = sig

    with pytest.raises(SignatureError) as exc_info:
        verify(signed, lookup, now=NOW)

    assert exc_info.value.failure is SignatureFailure.INVALID


def test_wrong_secret_is_rejected():
    signed = sign_payload(base_payload(), "another-key", timestamp=NOW)

    with pytest.raises(SignatureError):
        verify(signed, lookup, now=NOW)
