"""
Service configuration.

Settings are read once per Lambda cold start from environment variables and
SSM Parameter Store, then handed to the engine and gateways explicitly.
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from ssm_utils import get_parameter


DEFAULT_ADMIN_KEY_PARAMETER = '/inner-circle/admin-key'
DEFAULT_SHOPIFY_TOKEN_PARAMETER = '/inner-circle/shopify-token'
DISCOUNT_PERCENT = 15


@dataclass(frozen=True)
class Settings:
    aws_region: str
    admin_key: str
    from_email: str
    frontend_url: str
    shopify_store: str
    shopify_token: str
    shop_url: str
    http_timeout_seconds: float = 10.0
    token_ttl_hours: int = 24
    discount_percent: int = DISCOUNT_PERCENT


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        print(f"WARNING: Invalid value for {name}: {raw!r}, using default {default}")
        return default


def settings_from_environment() -> Settings:
    """
    Build Settings from the process environment and SSM.

    Secrets are never taken from plain environment variables; the environment
    only names the SSM parameters that hold them.
    """
    admin_key_parameter = os.environ.get('ADMIN_KEY_PARAMETER', DEFAULT_ADMIN_KEY_PARAMETER)
    shopify_token_parameter = os.environ.get('SHOPIFY_TOKEN_PARAMETER', DEFAULT_SHOPIFY_TOKEN_PARAMETER)

    return Settings(
        aws_region=os.environ.get('AWS_REGION', 'us-east-1'),
        admin_key=get_parameter(admin_key_parameter),
        from_email=os.environ.get('FROM_EMAIL', 'innercircle.noreply@athloun.com'),
        frontend_url=os.environ.get('FRONTEND_URL', '').rstrip('/'),
        shopify_store=os.environ.get('SHOPIFY_STORE', ''),
        shopify_token=get_parameter(shopify_token_parameter),
        shop_url=os.environ.get('SHOPIFY_DOMAIN', ''),
        http_timeout_seconds=_env_number('HTTP_TIMEOUT_SECONDS', 10.0, float),
        token_ttl_hours=_env_number('TOKEN_TTL_HOURS', 24, int),
    )


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load settings once per container."""
    settings = settings_from_environment()

    missing = [
        name for name, value in (
            ('admin_key', settings.admin_key),
            ('frontend_url', settings.frontend_url),
            ('shopify_store', settings.shopify_store),
            ('shopify_token', settings.shopify_token),
        )
        if not value
    ]
    if missing:
        print(f"WARNING: Missing configuration values: {', '.join(missing)}")

    return settings
