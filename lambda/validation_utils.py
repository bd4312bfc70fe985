"""
Input validation utilities for the admin endpoints.
"""
import re
from datetime import timezone
from typing import Any, Optional, Tuple

from verification_logic import parse_timestamp


# Input length limits
MAX_DOMAIN_LENGTH = 253  # RFC 1035
MAX_COMPANY_CODE_LENGTH = 64
MAX_COMPANY_NAME_LENGTH = 200


def validate_domain(domain: str) -> bool:
    """
    Validate domain name format.

    Args:
        domain: Domain name to validate (without '@')

    Returns:
        True if valid format, False otherwise
    """
    if not domain or not isinstance(domain, str):
        return False

    if len(domain) > MAX_DOMAIN_LENGTH:
        return False

    # Alphanumeric labels with hyphens, at least one dot
    pattern = r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)+$'
    return bool(re.match(pattern, domain))


def validate_company_code(code: str) -> bool:
    """
    Validate a company code: letters, digits, '-' and '_' only.
    """
    if not code or not isinstance(code, str):
        return False
    return bool(re.match(rf'^[A-Za-z0-9_-]{{1,{MAX_COMPANY_CODE_LENGTH}}}$', code))


def parse_max_activations(value: Any) -> Tuple[bool, Optional[int]]:
    """
    Parse an optional activation cap.

    Falsy values (None, 0, '') mean unlimited.

    Returns:
        Tuple of (is_valid, max_activations)
    """
    if not value:
        return (True, None)
    if isinstance(value, bool):
        return (False, None)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return (False, None)
    if isinstance(value, float) and value != parsed:
        return (False, None)
    if parsed < 0:
        return (False, None)
    return (True, parsed or None)


def parse_expires_at(value: Any) -> Tuple[bool, Optional[str]]:
    """
    Parse an optional ISO-8601 expiry.

    Returns:
        Tuple of (is_valid, normalized ISO-8601 UTC string or None)
    """
    if not value:
        return (True, None)
    parsed = parse_timestamp(value)
    if parsed is None:
        return (False, None)
    return (True, parsed.astimezone(timezone.utc).isoformat())


def validate_company_code_payload(payload: dict) -> Tuple[Optional[dict], Optional[str]]:
    """
    Validate the body of a create-company-code request.

    Args:
        payload: Parsed JSON body

    Returns:
        Tuple of (cleaned fields, None) or (None, error_message)
    """
    if not isinstance(payload, dict):
        return (None, 'Request body must be a JSON object')

    company_code = payload.get('company_code')
    company_name = payload.get('company_name')
    allowed_domain = payload.get('allowed_domain')

    if not all(isinstance(v, str) and v.strip() for v in (company_code, company_name, allowed_domain)):
        return (None, 'company_code, company_name and allowed_domain are required')

    company_code = company_code.strip()
    company_name = company_name.strip()
    allowed_domain = allowed_domain.strip().lstrip('@')

    if not validate_company_code(company_code):
        return (None, f'Invalid company code (letters, digits, - and _ only, max {MAX_COMPANY_CODE_LENGTH})')

    if len(company_name) > MAX_COMPANY_NAME_LENGTH:
        return (None, f'Company name too long (max {MAX_COMPANY_NAME_LENGTH} characters)')

    if not validate_domain(allowed_domain):
        return (None, f"Invalid domain: {allowed_domain}")

    valid, expires_at = parse_expires_at(payload.get('expires_at'))
    if not valid:
        return (None, 'expires_at must be an ISO-8601 date')

    valid, max_activations = parse_max_activations(payload.get('max_activations'))
    if not valid:
        return (None, 'max_activations must be a positive integer')

    active = payload.get('active', True)
    if not isinstance(active, bool):
        return (None, 'active must be true or false')

    return ({
        'company_code': company_code,
        'company_name': company_name,
        'allowed_domain': allowed_domain,
        'expires_at': expires_at,
        'max_activations': max_activations,
        'active': active
    }, None)
