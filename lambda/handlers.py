"""
HTTP handlers for the Inner Circle verification API.
Translate API Gateway requests into engine calls and JSON responses.
"""
import hmac
import json
from decimal import Decimal
from typing import Any, Optional

import dynamodb_operations as db
from validation_utils import validate_company_code_payload


CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,x-admin-key',
    'Access-Control-Allow-Methods': 'GET,POST,OPTIONS'
}


def json_response(status_code: int, body: dict) -> dict:
    """Build an API Gateway proxy response with a JSON body."""
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json', **CORS_HEADERS},
        'body': json.dumps(body)
    }


def error_response(status_code: int, message: str) -> dict:
    """Helper for error responses."""
    return json_response(status_code, {'error': message})


def handle_health() -> dict:
    """Liveness check."""
    return json_response(200, {'status': 'OK'})


def handle_options() -> dict:
    """CORS preflight."""
    return {
        'statusCode': 204,
        'headers': dict(CORS_HEADERS),
        'body': ''
    }


def result_response(result, **success_fields) -> dict:
    """Map a VerificationResult onto an HTTP response."""
    if result.success:
        return json_response(200, {'success': True, 'message': result.message, **success_fields})
    return error_response(result.failure.status_code, result.message)


def handle_verify_form(body: Any, engine) -> dict:
    """
    POST /api/verify-form

    Args:
        body: Parsed JSON body with company_code and work_email
        engine: VerificationEngine

    Returns:
        Lambda response dict
    """
    if not isinstance(body, dict):
        body = {}

    try:
        result = engine.submit_verification(body.get('company_code'), body.get('work_email'))
    except Exception as e:
        print(f"ERROR: Form submission error: {e}")
        return error_response(500, 'An error occurred. Please try again.')

    return result_response(result)


def handle_verify_email(query: Optional[dict], engine) -> dict:
    """
    GET /api/verify-email?token=&email=

    Args:
        query: Query string parameters
        engine: VerificationEngine

    Returns:
        Lambda response dict
    """
    query = query or {}

    try:
        result = engine.verify_email(query.get('token'), query.get('email'))
    except Exception as e:
        print(f"ERROR: Verification error: {e}")
        return error_response(500, 'An error occurred during verification.')

    if not result.success:
        return result_response(result)
    return result_response(result, discount_code=result.discount_code, first_name=result.first_name)


def is_authorized_admin(headers: Optional[dict], settings) -> bool:
    """
    Check the x-admin-key header against the configured admin key.

    Header names are matched case-insensitively; an unconfigured key
    rejects every request.
    """
    if not settings.admin_key:
        print("ERROR: Admin key is not configured")
        return False

    presented = ''
    for name, value in (headers or {}).items():
        if name.lower() == 'x-admin-key':
            presented = value or ''
            break

    authorized = hmac.compare_digest(presented.encode(), settings.admin_key.encode())
    if not authorized:
        print("Authorization check failed for admin request")
    return authorized


def handle_create_company_code(headers: Optional[dict], body: Any, settings) -> dict:
    """
    POST /api/admin/company-codes

    Args:
        headers: Request headers (must carry x-admin-key)
        body: Parsed JSON body
        settings: config.Settings

    Returns:
        Lambda response dict
    """
    if not is_authorized_admin(headers, settings):
        return error_response(401, 'Unauthorized')

    fields, error = validate_company_code_payload(body)
    if error:
        return error_response(400, error)

    try:
        created = db.create_company_code(**fields)
    except Exception as e:
        print(f"ERROR: Creating company code failed: {e}")
        return error_response(500, 'Error creating company code')

    if not created:
        return error_response(400, f"Company code {fields['company_code']} already exists")

    return json_response(200, {
        'success': True,
        'message': f"Company code {fields['company_code']} created successfully"
    })


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (Decimal, int, float)):
        return int(value)
    return None


def handle_stats(headers: Optional[dict], settings) -> dict:
    """
    GET /api/admin/stats

    Returns:
        Lambda response dict with verification counts and per-company activations
    """
    if not is_authorized_admin(headers, settings):
        return error_response(401, 'Unauthorized')

    try:
        total_verifications = db.count_members_by_status(db.STATUS_VERIFIED)
        pending_verifications = db.count_members_by_status(db.STATUS_PENDING)
        companies = db.list_company_codes()
    except Exception as e:
        print(f"ERROR: Fetching stats failed: {e}")
        return error_response(500, 'Error fetching stats')

    return json_response(200, {
        'total_verifications': total_verifications,
        'pending_verifications': pending_verifications,
        'companies': [
            {
                'code': company.get('company_code'),
                'name': company.get('company_name'),
                'activations': _to_int(company.get('current_activations', 0)),
                'max': _to_int(company.get('max_activations'))
            }
            for company in sorted(companies, key=lambda c: c.get('company_code', ''))
        ]
    })
