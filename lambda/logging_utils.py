"""
Logging helpers that keep member data and credentials out of CloudWatch.

Everything is printed (Lambda ships stdout to CloudWatch). Structured data
goes through sanitize_for_logging() first; free text through sanitize_string().
"""
import re
import json
from typing import Any, Optional


REDACTED = '***REDACTED***'

# Dictionary keys whose values are never logged
SENSITIVE_KEYS = frozenset({
    'email', 'work_email', 'token', 'verification_token', 'discount_code',
    'password', 'secret', 'authorization', 'x-admin-key',
    'x-shopify-access-token', 'shopify_token', 'admin_key', 'api_key'
})

# Applied in order; emails first so an address is never half-matched as a token
_REDACTIONS = (
    (re.compile(r'\b[a-zA-Z0-9._%+-]+(?:@|%40)[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b'), '***EMAIL***'),
    (re.compile(r'shp(?:at|ca|pa|ss)_[a-fA-F0-9]{16,}'), '***SHOPIFY_TOKEN***'),
    (re.compile(r'(?:AKIA|ASIA)[0-9A-Z]{16}'), '***AWS_KEY***'),
    (re.compile(r'\b[a-fA-F0-9]{32,}\b'), '***TOKEN***'),
    (re.compile(r'INNERCIRCLE-[A-Z0-9]+-[A-Z0-9]+'), '***DISCOUNT_CODE***'),
)


def sanitize_string(text: str) -> str:
    """
    Redact emails, verification tokens, Shopify tokens, AWS keys and
    discount codes from free text. Non-strings are returned unchanged.
    """
    if not isinstance(text, str):
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_for_logging(data: Any) -> Any:
    """
    Return a copy of `data` that is safe to log.

    Values under SENSITIVE_KEYS (matched case-insensitively, so HTTP header
    names work) are replaced outright; nested dicts and lists are walked and
    strings are passed through sanitize_string().
    """
    if isinstance(data, dict):
        return {
            key: REDACTED if isinstance(key, str) and key.lower() in SENSITIVE_KEYS
            else sanitize_for_logging(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_for_logging(item) for item in data]
    return sanitize_string(data)


def log_safe(message: str, data: Any = None) -> None:
    """Print a message, followed by sanitized data when given."""
    if data is None:
        print(message)
        return

    sanitized = sanitize_for_logging(data)
    if isinstance(sanitized, (dict, list)):
        sanitized = json.dumps(sanitized, default=str)
    print(f"{message}: {sanitized}")


def log_email_event(operation: str, email: str, success: bool, details: Optional[str] = None) -> None:
    """
    Log an email send, naming only the recipient's domain.

    Args:
        operation: What happened (e.g. "sent")
        email: Recipient address; only the part after '@' is printed
        success: Whether SES accepted the message
        details: Optional extra text, sanitized before printing
    """
    domain = email.split('@')[1] if '@' in email else 'unknown'
    line = f"Email {operation} {'SUCCESS' if success else 'FAILED'} to domain @{domain}"
    if details:
        line = f"{line}: {sanitize_string(details)}"
    print(line)


def log_shopify_error(operation: str, status_code: Optional[int], errors: Any = None) -> None:
    """
    Log a failed Shopify Admin API call.

    Args:
        operation: Client operation (e.g. "create_customer", "create_price_rule")
        status_code: HTTP status, None when no response arrived
        errors: The 'errors' member of Shopify's response body, if any
    """
    print("Shopify API error: " + json.dumps({
        'operation': operation,
        'status_code': status_code,
        'errors': sanitize_for_logging(errors)
    }, default=str))
