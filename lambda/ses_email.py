"""
Amazon SES email gateway for verification links and discount codes.
"""
import html
import re
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from logging_utils import log_email_event


def _create_ses_client(region: str, timeout_seconds: float):
    return boto3.client(
        'ses',
        region_name=region,
        config=Config(
            connect_timeout=timeout_seconds,
            read_timeout=timeout_seconds,
            retries={'max_attempts': 1}
        )
    )


def html_to_text(html_body: str) -> str:
    """Rough plain-text fallback for clients that do not render HTML."""
    text = re.sub(r'<(br|/p|/h\d|/li|/div)\s*/?>', '\n', html_body, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', '', text)
    text = html.unescape(text)
    lines = [line.strip() for line in text.splitlines()]
    return '\n'.join(line for line in lines if line)


class SesEmailGateway:
    """Sends transactional email through Amazon SES."""

    def __init__(self, from_email: str, region: str = 'us-east-1', timeout_seconds: float = 10.0, client=None):
        self.from_email = from_email
        self.client = client or _create_ses_client(region, timeout_seconds)

    def send(self, to: str, subject: str, html_body: str) -> bool:
        """
        Send an HTML email with a plain-text alternative.

        Args:
            to: Recipient address
            subject: Subject line
            html_body: HTML body

        Returns:
            True if SES accepted the message, False otherwise
        """
        try:
            response = self.client.send_email(
                Source=self.from_email,
                Destination={'ToAddresses': [to]},
                Message={
                    'Subject': {
                        'Data': subject,
                        'Charset': 'UTF-8'
                    },
                    'Body': {
                        'Text': {
                            'Data': html_to_text(html_body),
                            'Charset': 'UTF-8'
                        },
                        'Html': {
                            'Data': html_body,
                            'Charset': 'UTF-8'
                        }
                    }
                }
            )

            message_id = response['MessageId']
            log_email_event("sent", to, True, f"MessageId: {message_id}")
            return True

        except ClientError as e:
            error_message = e.response['Error']['Message']
            log_email_event("sent", to, False, f"SES Error: {error_message}")
            return False
        except Exception as e:
            log_email_event("sent", to, False, f"Unexpected error: {e}")
            return False


def build_verification_email(verification_link: str, ttl_hours: int = 24) -> tuple:
    """
    Build the verification email.

    Args:
        verification_link: Link containing the token and email
        ttl_hours: Hours until the link expires

    Returns:
        (subject, html_body)
    """
    link = html.escape(verification_link, quote=True)
    subject = 'Verify your ATHLOUN Inner Circle membership'
    html_body = f"""<html>
<head></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: linear-gradient(135deg, #f4a460 0%, #cd853f 100%); padding: 30px; text-align: center; color: white;">
        <h1 style="margin: 0;">Confirm your work email</h1>
    </div>

    <div style="padding: 30px; background: #f9f9f9;">
        <p>You're one step away from your ATHLOUN Inner Circle discount.</p>
        <p>Click the button below to verify your email address:</p>

        <p style="text-align: center; margin: 30px 0;">
            <a href="{link}" style="background: #cd853f; color: white; padding: 14px 28px; text-decoration: none; border-radius: 4px; font-weight: bold;">Verify my email</a>
        </p>

        <p style="color: #666; font-size: 14px;">
            <strong>This link will expire in {ttl_hours} hours.</strong>
        </p>

        <p style="color: #999; font-size: 12px; margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd;">
            If you did not request this verification, please ignore this email.
        </p>
    </div>
</body>
</html>"""
    return subject, html_body


def build_discount_email(first_name: str, discount_code: str, shop_url: str = '', percent_off: int = 15) -> tuple:
    """
    Build the confirmation email carrying the issued discount code.

    Returns:
        (subject, html_body)
    """
    name = html.escape(first_name)
    code = html.escape(discount_code)

    shop_link = ''
    if shop_url:
        shop_link = (
            f'<p style="margin-top: 20px;">Ready to shop? '
            f'<a href="{html.escape(shop_url, quote=True)}" style="color: #cd853f; text-decoration: none; '
            f'font-weight: bold;">Start shopping now</a></p>'
        )

    subject = 'Your ATHLOUN Inner Circle Discount Code'
    html_body = f"""<html>
<head></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: linear-gradient(135deg, #f4a460 0%, #cd853f 100%); padding: 30px; text-align: center; color: white;">
        <h1 style="margin: 0;">Email Verified!</h1>
    </div>

    <div style="padding: 30px; background: #f9f9f9;">
        <h2>Welcome to ATHLOUN Inner Circle, {name}!</h2>
        <p>Your {percent_off}% discount is ready! Here's your exclusive code:</p>

        <div style="background: white; border: 3px solid #cd853f; padding: 20px; text-align: center; margin: 20px 0; border-radius: 4px;">
            <p style="margin: 0 0 10px 0; color: #666; font-size: 12px;">Your Discount Code:</p>
            <h1 style="margin: 0; color: #cd853f; letter-spacing: 2px;">{code}</h1>
        </div>

        <h3>Your Benefits:</h3>
        <ul>
            <li>{percent_off}% OFF all purchases</li>
            <li>Free shipping</li>
            <li>Early access to new collections</li>
            <li>Lifetime discount - never expires</li>
        </ul>

        {shop_link}

        <p style="color: #666; font-size: 12px;">Note: COD orders are not eligible for discount.</p>
    </div>
</body>
</html>"""
    return subject, html_body
