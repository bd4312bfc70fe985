"""
Verification logic helpers.
Pure functions with no database or network dependencies.
"""
import hmac
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode


# Configuration
TOKEN_BYTES = 32
TOKEN_TTL_HOURS = 24
DISCOUNT_CODE_PREFIX = 'INNERCIRCLE'
# 36**6 suffixes, about 31 bits; Shopify rejects a duplicate code on create
DISCOUNT_SUFFIX_LENGTH = 6
DISCOUNT_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """
    Generate an opaque verification token.

    Args:
        nbytes: Bytes of randomness (default: 32, i.e. 256 bits)

    Returns:
        Hex-encoded random token
    """
    return secrets.token_hex(nbytes)


def token_expiry(now: datetime, ttl_hours: int = TOKEN_TTL_HOURS) -> datetime:
    """Return the expiry time of a token issued at `now`."""
    return now + timedelta(hours=ttl_hours)


def tokens_match(expected: Optional[str], presented: Optional[str]) -> bool:
    """Constant-time token comparison; a missing side never matches."""
    if not expected or not presented:
        return False
    return hmac.compare_digest(expected.encode(), presented.encode())


def email_domain(email: str) -> Optional[str]:
    """
    Return the part of an email address after the '@'.

    Args:
        email: Email address

    Returns:
        Domain, or None if the address has no '@'
    """
    if '@' not in email:
        return None
    return email.split('@')[1]


def is_domain_eligible(email: str, allowed_domain: str) -> bool:
    """
    Check an email against a company's allowed domain.

    The comparison is exact and case-sensitive.
    """
    return email_domain(email) == allowed_domain


def derive_first_name(email: str) -> str:
    """
    Derive a display name from the local part of an email.

    Only the first character is upper-cased: 'jane.doe@acme.com' -> 'Jane.doe'.
    """
    local_part = email.split('@')[0]
    return local_part[:1].upper() + local_part[1:]


def generate_discount_code(first_name: str, suffix_length: int = DISCOUNT_SUFFIX_LENGTH) -> str:
    """
    Generate a discount code of the form INNERCIRCLE-<NAME>-<RANDOM>.

    <NAME> is the upper-cased first name reduced to letters and digits;
    <RANDOM> keeps members who share a name from colliding.

    Args:
        first_name: Member's display name
        suffix_length: Length of the random suffix

    Returns:
        Discount code string
    """
    name = re.sub(r'[^A-Z0-9]', '', first_name.upper()) or 'MEMBER'
    suffix = ''.join(secrets.choice(DISCOUNT_SUFFIX_ALPHABET) for _ in range(suffix_length))
    return f"{DISCOUNT_CODE_PREFIX}-{name}-{suffix}"


def build_verification_link(frontend_url: str, token: str, email: str) -> str:
    """Build the link emailed to the member."""
    query = urlencode({'token': token, 'email': email})
    return f"{frontend_url.rstrip('/')}/verify?{query}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored ISO-8601 timestamp.

    Naive values are taken to be UTC. Returns None for empty or
    unparseable values.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_expired(expires_at: Any, now: datetime) -> bool:
    """True if a stored expiry timestamp is set and `now` is past it."""
    parsed = parse_timestamp(expires_at)
    return parsed is not None and now > parsed


def activation_limit_reached(company: dict) -> bool:
    """True if the company code has a cap and has used all of it."""
    max_activations = company.get('max_activations')
    if not max_activations:
        return False
    return int(company.get('current_activations', 0)) >= int(max_activations)
