"""
DynamoDB operations for company codes and members.

Both tables are keyed by a single string attribute:
- company codes table: company_code
- members table: work_email

Writes that guard an invariant (activation cap, one verified member per
email) are conditional updates, so they hold under concurrent invocations.
"""
import boto3
import os
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from botocore.exceptions import ClientError


STATUS_PENDING = 'pending'
STATUS_VERIFIED = 'verified'

# Initialize DynamoDB resource
dynamodb = boto3.resource(
    'dynamodb',
    region_name=os.environ.get('AWS_REGION', 'us-east-1'),
    endpoint_url=os.environ.get('DYNAMODB_ENDPOINT_URL') or None
)
company_codes_table = dynamodb.Table(os.environ.get('COMPANY_CODES_TABLE', 'inner-circle-company-codes'))
members_table = dynamodb.Table(os.environ.get('MEMBERS_TABLE', 'inner-circle-members'))


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _scan_all(table, **kwargs) -> List[Dict[str, Any]]:
    """Scan a table following LastEvaluatedKey until exhausted."""
    items = []
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get('Items', []))
        last_key = response.get('LastEvaluatedKey')
        if not last_key:
            return items
        kwargs['ExclusiveStartKey'] = last_key


# ==============================================================================
# Company codes
# ==============================================================================

def get_company_code(company_code: str) -> Optional[Dict[str, Any]]:
    """
    Get a company code record.

    Args:
        company_code: The code printed on the Inner Circle card

    Returns:
        Company code item or None if it does not exist
    """
    response = company_codes_table.get_item(Key={'company_code': company_code})
    return response.get('Item')


def create_company_code(
    company_code: str,
    company_name: str,
    allowed_domain: str,
    expires_at: Optional[str] = None,
    max_activations: Optional[int] = None,
    active: bool = True
) -> bool:
    """
    Create a new company code.

    Args:
        company_code: Unique code
        company_name: Display name of the company
        allowed_domain: Email domain eligible for this code (e.g. 'acme.com')
        expires_at: ISO-8601 expiry timestamp, None for no expiry
        max_activations: Activation cap, None for unlimited
        active: Whether the code accepts submissions

    Returns:
        True if created, False if the code already exists
    """
    item = {
        'company_code': company_code,
        'company_name': company_name,
        'allowed_domain': allowed_domain,
        'active': active,
        'created_at': _utcnow_iso(),
        'current_activations': 0
    }
    # Absent attributes mean "no expiry" / "unlimited"
    if expires_at:
        item['expires_at'] = expires_at
    if max_activations:
        item['max_activations'] = max_activations

    try:
        company_codes_table.put_item(
            Item=item,
            ConditionExpression='attribute_not_exists(company_code)'
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            print(f"Company code {company_code} already exists")
            return False
        raise

    print(f"Created company code {company_code} for domain @{allowed_domain}")
    return True


def list_company_codes() -> List[Dict[str, Any]]:
    """Return every company code record."""
    return _scan_all(company_codes_table)


def reserve_activation(company_code: str) -> bool:
    """
    Atomically count one activation against a company code.

    The increment only happens while the code exists and is below its
    activation cap (or has no cap).

    Args:
        company_code: Company code to charge

    Returns:
        True if an activation was reserved, False if the cap is reached
        or the code no longer exists
    """
    try:
        company_codes_table.update_item(
            Key={'company_code': company_code},
            UpdateExpression='ADD current_activations :one',
            ConditionExpression=(
                'attribute_exists(company_code) AND '
                '(attribute_not_exists(max_activations) OR current_activations < max_activations)'
            ),
            ExpressionAttributeValues={':one': 1}
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            print(f"Activation limit reached for company code {company_code}")
            return False
        raise

    print(f"Reserved activation on company code {company_code}")
    return True


def release_activation(company_code: str) -> None:
    """
    Give back an activation reserved by reserve_activation().

    Args:
        company_code: Company code to credit
    """
    try:
        company_codes_table.update_item(
            Key={'company_code': company_code},
            UpdateExpression='ADD current_activations :minus_one',
            ConditionExpression='attribute_exists(company_code) AND current_activations > :zero',
            ExpressionAttributeValues={':minus_one': -1, ':zero': 0}
        )
        print(f"Released activation on company code {company_code}")
    except ClientError as e:
        # Never let compensation hide the original failure
        print(f"ERROR: Failed to release activation on {company_code}: {e}")


# ==============================================================================
# Members
# ==============================================================================

def get_member(work_email: str) -> Optional[Dict[str, Any]]:
    """
    Get a member by work email.

    Args:
        work_email: Member's work email address

    Returns:
        Member item or None
    """
    response = members_table.get_item(Key={'work_email': work_email})
    return response.get('Item')


def upsert_pending_member(
    work_email: str,
    company_code: str,
    company_name: str,
    verification_token: str,
    token_expires_at: str
) -> bool:
    """
    Create or reset a member as pending with a fresh verification token.

    Existing pending members get their token, expiry and company linkage
    overwritten. A verified member is never touched.

    Args:
        work_email: Member's work email address
        company_code: Company code the member signed up with
        company_name: Company name (denormalized)
        verification_token: New verification token
        token_expires_at: ISO-8601 token expiry

    Returns:
        True if written, False if the member is already verified
    """
    try:
        members_table.update_item(
            Key={'work_email': work_email},
            UpdateExpression=(
                'SET company_code = :company_code, company_name = :company_name, '
                'verification_token = :token, token_expires_at = :expires_at, '
                'verification_status = :pending, '
                'created_at = if_not_exists(created_at, :now), '
                'total_orders = if_not_exists(total_orders, :zero), '
                'total_spent = if_not_exists(total_spent, :zero)'
            ),
            ConditionExpression='attribute_not_exists(work_email) OR verification_status <> :verified',
            ExpressionAttributeValues={
                ':company_code': company_code,
                ':company_name': company_name,
                ':token': verification_token,
                ':expires_at': token_expires_at,
                ':pending': STATUS_PENDING,
                ':verified': STATUS_VERIFIED,
                ':now': _utcnow_iso(),
                ':zero': 0
            }
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            print("Refusing to reset an already verified member")
            return False
        raise

    print(f"Stored pending member for company code {company_code}")
    return True


def mark_member_verified(
    work_email: str,
    verification_token: str,
    discount_code: str,
    shopify_customer_id: str,
    first_name: str
) -> bool:
    """
    Transition a pending member to verified.

    The write only succeeds while the member is still pending with the same
    token and the token has not expired, so a link can complete verification
    at most once and only inside its time box.

    Args:
        work_email: Member's work email address
        verification_token: Token the caller presented
        discount_code: Discount code issued in Shopify
        shopify_customer_id: Shopify customer ID
        first_name: Display name derived from the email

    Returns:
        True if the member was verified, False if the condition no longer held
    """
    try:
        members_table.update_item(
            Key={'work_email': work_email},
            UpdateExpression=(
                'SET discount_code = :discount_code, shopify_customer_id = :customer_id, '
                'first_name = :first_name, verification_status = :verified, '
                'verified_at = :now '
                'REMOVE verification_token, token_expires_at'
            ),
            ConditionExpression=(
                'verification_status = :pending AND verification_token = :token '
                'AND token_expires_at > :now'
            ),
            ExpressionAttributeValues={
                ':discount_code': discount_code,
                ':customer_id': str(shopify_customer_id),
                ':first_name': first_name,
                ':verified': STATUS_VERIFIED,
                ':pending': STATUS_PENDING,
                ':token': verification_token,
                ':now': _utcnow_iso()
            }
        )
    except ClientError as e:
        if _is_conditional_failure(e):
            print("Member is no longer pending with this token")
            return False
        raise

    print("Marked member as verified")
    return True


def count_members_by_status(status: str) -> int:
    """
    Count members with a given verification status.

    Args:
        status: 'pending' or 'verified'

    Returns:
        Number of matching members
    """
    kwargs = {
        'FilterExpression': '#status = :status',
        'ExpressionAttributeNames': {'#status': 'verification_status'},
        'ExpressionAttributeValues': {':status': status},
        'Select': 'COUNT'
    }
    total = 0
    while True:
        response = members_table.scan(**kwargs)
        total += response.get('Count', 0)
        last_key = response.get('LastEvaluatedKey')
        if not last_key:
            return total
        kwargs['ExclusiveStartKey'] = last_key
