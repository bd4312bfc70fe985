"""
AWS Lambda handler for the Inner Circle verification API.
Main entry point for all API Gateway requests.
"""
import base64
import json
import traceback
from functools import lru_cache

from config import load_settings
from handlers import (
    handle_create_company_code,
    handle_health,
    handle_options,
    handle_stats,
    handle_verify_email,
    handle_verify_form,
    error_response
)
from logging_utils import log_safe
from ses_email import SesEmailGateway
from shopify_api import ShopifyClient
from verification_engine import VerificationEngine


@lru_cache(maxsize=1)
def get_engine() -> VerificationEngine:
    """Wire the engine and its gateways once per container."""
    settings = load_settings()
    email_gateway = SesEmailGateway(
        from_email=settings.from_email,
        region=settings.aws_region,
        timeout_seconds=settings.http_timeout_seconds
    )
    commerce_gateway = ShopifyClient(
        store=settings.shopify_store,
        access_token=settings.shopify_token,
        timeout=settings.http_timeout_seconds
    )
    return VerificationEngine(settings, email_gateway, commerce_gateway)


def _request_line(event: dict) -> tuple:
    """Return (method, path) for REST (v1) and HTTP API (v2) proxy events."""
    http_context = event.get('requestContext', {}).get('http', {})
    method = event.get('httpMethod') or http_context.get('method') or ''
    path = event.get('path') or event.get('rawPath') or http_context.get('path') or '/'
    if len(path) > 1:
        path = path.rstrip('/')
    return method.upper(), path


def _parse_body(event: dict):
    """Decode the JSON body; raises ValueError on malformed input."""
    body_str = event.get('body') or ''
    if event.get('isBase64Encoded') and body_str:
        body_str = base64.b64decode(body_str).decode('utf-8')
    if not body_str.strip():
        return {}
    return json.loads(body_str)


def lambda_handler(event, context):
    """
    Main Lambda handler for API Gateway proxy events.

    Routes:
        POST /api/verify-form
        GET  /api/verify-email
        POST /api/admin/company-codes
        GET  /api/admin/stats
        GET  /health

    Args:
        event: API Gateway event
        context: Lambda context

    Returns:
        API Gateway response
    """
    method, path = _request_line(event)
    log_safe(f"Request: {method} {path}", {
        'query': event.get('queryStringParameters') or {},
        'headers': event.get('headers') or {}
    })

    headers = event.get('headers') or {}

    try:
        if method == 'OPTIONS':
            return handle_options()

        if method == 'GET' and path == '/health':
            return handle_health()

        if method == 'GET' and path == '/api/verify-email':
            return handle_verify_email(event.get('queryStringParameters'), get_engine())

        if method == 'GET' and path == '/api/admin/stats':
            return handle_stats(headers, load_settings())

        if method == 'POST' and path in ('/api/verify-form', '/api/admin/company-codes'):
            try:
                body = _parse_body(event)
            except (ValueError, UnicodeDecodeError) as e:
                print(f"ERROR: Invalid JSON: {e}")
                return error_response(400, 'Invalid JSON')

            if path == '/api/verify-form':
                return handle_verify_form(body, get_engine())
            return handle_create_company_code(headers, body, load_settings())

        print(f"WARNING: No route for {method} {path}")
        return error_response(404, 'Not found')

    except Exception as e:
        print(f"ERROR: Exception handling request: {e}")
        traceback.print_exc()
        return error_response(500, 'An internal error occurred')
