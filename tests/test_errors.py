"""
Tests for provider error classification.
"""

from core.errors import classify_error, is_quota_or_auth_error
from engines.base import ProviderError


def test_quota_errors():
    exc = ProviderError("You exceeded your current quota", provider="openai", status_code=429)

    assert is_quota_or_auth_error(exc)
    assert classify_error(exc) == "quota"


def test_auth_errors_trigger_fallback_but_show_default_message():
    exc = ProviderError("Incorrect API key provided", provider="openai", status_code=401)

    assert is_quota_or_auth_error(exc)
    assert classify_error(exc) == "default"


def test_network_errors():
    assert classify_error(ConnectionError("refused")) == "network"
    assert classify_error(TimeoutError()) == "network"
    assert classify_error(ProviderError("network error: Read timed out", provider="gemini")) == "network"
    assert not is_quota_or_auth_error(ConnectionError("refused"))


def test_other_errors_are_default():
    assert classify_error(ValueError("bad payload")) == "default"
    assert not is_quota_or_auth_error(ValueError("bad payload"))
