"""
Eligibility and verification engine for the Inner Circle discount program.

Member lifecycle:

    unregistered --submit--> pending --verify--> verified (terminal)
                             pending --submit--> pending (fresh token)

A company code's activation is reserved with a conditional increment before
the discount is provisioned and released again if provisioning or the final
member update fails, so the activation cap holds under concurrent
verifications.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import dynamodb_operations as db
from logging_utils import log_safe
from ses_email import build_discount_email, build_verification_email
from shopify_api import ShopifyAPIError
from verification_logic import (
    activation_limit_reached,
    build_verification_link,
    derive_first_name,
    generate_discount_code,
    generate_token,
    is_domain_eligible,
    is_expired,
    parse_timestamp,
    token_expiry,
    tokens_match,
)


class FailureKind(Enum):
    INVALID_REQUEST = 'InvalidRequest'
    INVALID_CODE = 'InvalidCode'
    PROGRAM_EXPIRED = 'ProgramExpired'
    ACTIVATION_LIMIT_REACHED = 'ActivationLimitReached'
    DOMAIN_NOT_ELIGIBLE = 'DomainNotEligible'
    ALREADY_REGISTERED = 'AlreadyRegistered'
    EMAIL_DELIVERY_FAILED = 'EmailDeliveryFailed'
    LINK_INVALID_OR_EXPIRED = 'LinkInvalidOrExpired'
    PROVISIONING_FAILED = 'ProvisioningFailed'

    @property
    def status_code(self) -> int:
        if self in (FailureKind.EMAIL_DELIVERY_FAILED, FailureKind.PROVISIONING_FAILED):
            return 500
        return 400


MESSAGES = {
    FailureKind.INVALID_REQUEST: 'All fields required',
    FailureKind.INVALID_CODE: 'Invalid code. Please check your Inner Circle card and try again.',
    FailureKind.PROGRAM_EXPIRED: 'This Insider program is no longer active. Contact support for assistance.',
    FailureKind.ACTIVATION_LIMIT_REACHED: 'This company code has reached its activation limit.',
    FailureKind.DOMAIN_NOT_ELIGIBLE: 'This email domain is not eligible. Use your @{domain} work email.',
    FailureKind.ALREADY_REGISTERED: (
        'This email is already registered. Log in to your account to access your discount.'
    ),
    FailureKind.EMAIL_DELIVERY_FAILED: 'An error occurred. Please try again.',
    FailureKind.LINK_INVALID_OR_EXPIRED: 'Verification link expired. Please request a new verification email.',
    FailureKind.PROVISIONING_FAILED: 'An error occurred during verification.',
}

SUBMIT_SUCCESS_MESSAGE = 'Verification email sent! Please check your inbox.'
VERIFY_SUCCESS_MESSAGE = 'Email verified! Your discount code has been generated.'


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    failure: Optional[FailureKind] = None
    discount_code: Optional[str] = None
    first_name: Optional[str] = None

    @classmethod
    def ok(cls, message: str, **kwargs) -> 'VerificationResult':
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, failure: FailureKind, **format_args) -> 'VerificationResult':
        return cls(success=False, message=MESSAGES[failure].format(**format_args), failure=failure)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationEngine:
    """
    Runs form submission and email verification.

    Args:
        settings: config.Settings
        email_gateway: object with send(to, subject, html_body) -> bool
        commerce_gateway: object with provision_discount(email, first_name,
            discount_code, percent_off) returning a DiscountProvision
    """

    def __init__(self, settings, email_gateway, commerce_gateway):
        self.settings = settings
        self.email_gateway = email_gateway
        self.commerce_gateway = commerce_gateway

    def submit_verification(self, company_code: Optional[str], work_email: Optional[str]) -> VerificationResult:
        """
        Validate a company code and work email and send a verification link.

        Checks run in order and the first failure is returned. On success the
        member is stored as pending with a fresh 24-hour token before the
        email goes out; a failed send is reported but the record is kept.
        """
        company_code = company_code.strip() if isinstance(company_code, str) else ''
        work_email = work_email.strip() if isinstance(work_email, str) else ''

        if not company_code or not work_email:
            return VerificationResult.fail(FailureKind.INVALID_REQUEST)

        company = db.get_company_code(company_code)
        if not company or company.get('active') is not True:
            print(f"Rejected submission: unknown or inactive company code {company_code}")
            return VerificationResult.fail(FailureKind.INVALID_CODE)

        now = _now()
        if is_expired(company.get('expires_at'), now):
            return VerificationResult.fail(FailureKind.PROGRAM_EXPIRED)

        if activation_limit_reached(company):
            return VerificationResult.fail(FailureKind.ACTIVATION_LIMIT_REACHED)

        allowed_domain = company.get('allowed_domain', '')
        if not is_domain_eligible(work_email, allowed_domain):
            return VerificationResult.fail(FailureKind.DOMAIN_NOT_ELIGIBLE, domain=allowed_domain)

        existing = db.get_member(work_email)
        if existing and existing.get('verification_status') == db.STATUS_VERIFIED:
            return VerificationResult.fail(FailureKind.ALREADY_REGISTERED)

        token = generate_token()
        expires_at = token_expiry(now, self.settings.token_ttl_hours)

        stored = db.upsert_pending_member(
            work_email=work_email,
            company_code=company_code,
            company_name=company.get('company_name', ''),
            verification_token=token,
            token_expires_at=expires_at.isoformat()
        )
        if not stored:
            # Verified between the pre-check and the write
            return VerificationResult.fail(FailureKind.ALREADY_REGISTERED)

        link = build_verification_link(self.settings.frontend_url, token, work_email)
        subject, html_body = build_verification_email(link, self.settings.token_ttl_hours)
        if not self.email_gateway.send(work_email, subject, html_body):
            print("ERROR: Verification email could not be delivered; pending member kept")
            return VerificationResult.fail(FailureKind.EMAIL_DELIVERY_FAILED)

        log_safe("Verification email sent", {'company_code': company_code, 'work_email': work_email})
        return VerificationResult.ok(SUBMIT_SUCCESS_MESSAGE)

    def verify_email(self, token: Optional[str], work_email: Optional[str]) -> VerificationResult:
        """
        Complete verification from an emailed link and issue the discount.

        Wrong token, wrong email, expired link and already-verified member
        all produce the same LinkInvalidOrExpired result.
        """
        token = token.strip() if isinstance(token, str) else ''
        work_email = work_email.strip() if isinstance(work_email, str) else ''
        if not token or not work_email:
            return VerificationResult.fail(FailureKind.LINK_INVALID_OR_EXPIRED)

        member = db.get_member(work_email)
        if not self._is_verifiable(member, token):
            return VerificationResult.fail(FailureKind.LINK_INVALID_OR_EXPIRED)

        company_code = member.get('company_code', '')
        first_name = derive_first_name(work_email)
        discount_code = generate_discount_code(first_name)

        if not db.reserve_activation(company_code):
            return VerificationResult.fail(FailureKind.ACTIVATION_LIMIT_REACHED)

        try:
            provision = self.commerce_gateway.provision_discount(
                work_email, first_name, discount_code, self.settings.discount_percent
            )
        except ShopifyAPIError as e:
            print(f"ERROR: Discount provisioning failed: {e}")
            db.release_activation(company_code)
            return VerificationResult.fail(FailureKind.PROVISIONING_FAILED)
        except Exception:
            db.release_activation(company_code)
            raise

        try:
            verified = db.mark_member_verified(
                work_email=work_email,
                verification_token=token,
                discount_code=provision.discount_code,
                shopify_customer_id=provision.customer_id,
                first_name=first_name
            )
        except Exception:
            db.release_activation(company_code)
            raise

        if not verified:
            # Another request consumed this link first, or it expired while provisioning
            print(f"WARNING: Discarding discount on price rule {provision.price_rule_id}, "
                  f"link no longer valid for this member")
            db.release_activation(company_code)
            return VerificationResult.fail(FailureKind.LINK_INVALID_OR_EXPIRED)

        self._send_discount_email(work_email, first_name, provision.discount_code)

        log_safe("Member verified", {'company_code': company_code, 'work_email': work_email})
        return VerificationResult.ok(
            VERIFY_SUCCESS_MESSAGE,
            discount_code=provision.discount_code,
            first_name=first_name
        )

    @staticmethod
    def _is_verifiable(member: Optional[dict], token: str) -> bool:
        if not member:
            return False
        if member.get('verification_status') != db.STATUS_PENDING:
            return False
        if not tokens_match(member.get('verification_token'), token):
            return False
        expires_at = parse_timestamp(member.get('token_expires_at'))
        # A pending member without a readable expiry is treated as expired
        return expires_at is not None and expires_at > _now()

    def _send_discount_email(self, work_email: str, first_name: str, discount_code: str) -> None:
        """Best effort: the code is already returned to the caller."""
        subject, html_body = build_discount_email(
            first_name, discount_code, self.settings.shop_url, self.settings.discount_percent
        )
        try:
            sent = self.email_gateway.send(work_email, subject, html_body)
        except Exception as e:
            print(f"ERROR: Confirmation email raised: {e}")
            return
        if not sent:
            print("WARNING: Confirmation email failed; verification already complete")
