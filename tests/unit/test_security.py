"""
Unit tests for log sanitizing helpers.
"""
from app.core.security import sanitize_dict_for_logging, sanitize_string_for_logging


def test_sanitize_dict_redacts_nested_keys():
    data = {"page": 1, "X-API-Key": "abc", "nested": {"token": "t"}, "items": [{"password": "p"}]}

    result = sanitize_dict_for_logging(data)

    assert result == {
        "page": 1,
        "X-API-Key": "***REDACTED***",
        "nested": {"token": "***REDACTED***"},
        "items": [{"password": "***REDACTED***"}],
    }
    assert data["X-API-Key"] == "abc"


def test_sanitize_string_masks_api_keys():
    assert sanitize_string_for_logging('{"api_key": "abc123"}') == '{"api_key": "***"}'
    assert sanitize_string_for_logging("GET /x?apikey=abc&page=2") == "GET /x?apikey=***&page=2"
    assert sanitize_string_for_logging("") == ""
