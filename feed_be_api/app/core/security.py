"""
Security utilities - never log or return secrets.
"""

import re
from typing import Any, Dict


SENSITIVE_KEYS = (
    'api_key',
    'x-api-key',
    'password',
    'secret',
    'token',
)


def sanitize_dict_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove sensitive fields from dict for logging.

    Args:
        data: Dictionary that may contain secrets (request params, headers).

    Returns:
        Sanitized copy with secrets replaced.
    """
    result = {}
    for k, v in data.items():
        if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
            result[k] = '***REDACTED***'
        elif isinstance(v, dict):
            result[k] = sanitize_dict_for_logging(v)
        elif isinstance(v, list):
            result[k] = [
                sanitize_dict_for_logging(item) if isinstance(item, dict) else item
                for item in v
            ]
        else:
            result[k] = v

    return result


def sanitize_string_for_logging(text: str) -> str:
    """
    Remove API keys from a string, e.g. an upstream error body or a URL.
    """
    if not text:
        return text

    patterns = [
        (r'(api[_-]?key["\']?\s*[:=]\s*["\']?)[^"\'&\s,}]+', r'\1***'),
        (r'(X-API-Key:\s*)\S+', r'\1***'),
    ]

    result = text
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    return result
