"""
AWS Systems Manager Parameter Store access for service secrets.

The admin key and the Shopify access token live in SecureString parameters.
Values read successfully are cached for the lifetime of the container;
failed reads are retried on the next call.
"""
import os
import boto3
from functools import lru_cache
from botocore.exceptions import BotoCoreError, ClientError


ssm_client = boto3.client('ssm', region_name=os.environ.get('AWS_REGION', 'us-east-1'))


@lru_cache(maxsize=32)
def _read_parameter(name: str) -> str:
    response = ssm_client.get_parameter(Name=name, WithDecryption=True)
    return response['Parameter']['Value']


def get_parameter(name: str) -> str:
    """
    Get a decrypted SSM parameter.

    Args:
        name: Parameter name (e.g., '/inner-circle/admin-key')

    Returns:
        Parameter value, or an empty string if it cannot be read
    """
    try:
        return _read_parameter(name)
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code')
        if code == 'ParameterNotFound':
            print(f"WARNING: SSM parameter {name} does not exist")
        else:
            print(f"ERROR: Reading SSM parameter {name} failed: {code}")
    except BotoCoreError as e:
        print(f"ERROR: Reading SSM parameter {name} failed: {e}")
    return ""


def clear_cache() -> None:
    """Forget cached parameter values."""
    _read_parameter.cache_clear()
