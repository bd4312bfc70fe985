"""
Shopify Admin REST API operations.
Finds or creates customers and provisions percentage-off discount codes.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests
from logging_utils import log_shopify_error


SHOPIFY_API_VERSION = '2024-01'


class ShopifyAPIError(Exception):
    """Raised when a Shopify Admin API call fails or times out."""

    def __init__(self, operation: str, status_code: Optional[int] = None, message: str = ''):
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"Shopify {operation} failed"
                         f"{f' with status {status_code}' if status_code else ''}"
                         f"{f': {message}' if message else ''}")


@dataclass(frozen=True)
class DiscountProvision:
    discount_code: str
    customer_id: str
    price_rule_id: str


class ShopifyClient:
    """Thin client for the parts of the Admin API the discount program uses."""

    def __init__(self, store: str, access_token: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = f"https://{store}/admin/api/{SHOPIFY_API_VERSION}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            'X-Shopify-Access-Token': access_token,
            'Content-Type': 'application/json'
        }

    def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            log_shopify_error(operation, None, 'timeout')
            raise ShopifyAPIError(operation, message='request timed out') from e
        except requests.RequestException as e:
            log_shopify_error(operation, None, str(e))
            raise ShopifyAPIError(operation, message='request failed') from e

        if not 200 <= response.status_code < 300:
            try:
                body = response.json() if response.content else None
            except ValueError:
                body = None
            errors = body.get('errors') if isinstance(body, dict) else body
            log_shopify_error(operation, response.status_code, errors)
            raise ShopifyAPIError(operation, response.status_code)

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            log_shopify_error(operation, response.status_code, 'invalid JSON')
            raise ShopifyAPIError(operation, response.status_code, 'invalid JSON') from e
        if not isinstance(data, dict):
            log_shopify_error(operation, response.status_code, 'unexpected response body')
            raise ShopifyAPIError(operation, response.status_code, 'unexpected response body')
        return data

    def search_customer(self, email: str) -> Optional[str]:
        """
        Look up a customer by email.

        Returns:
            Shopify customer ID as a string, or None if not found
        """
        data = self._request(
            'search_customer', 'GET', 'customers/search.json',
            params={'query': f'email:{email}'}
        )
        customers = data.get('customers') or []
        if not customers:
            return None
        try:
            return str(customers[0]['id'])
        except (KeyError, TypeError) as e:
            raise ShopifyAPIError('search_customer', message='missing customer id') from e

    def find_or_create_customer(self, email: str, first_name: str) -> str:
        """
        Return the ID of the customer with this email, creating it if needed.

        A failed search is treated as "no customer" and falls through to
        creation; Shopify rejects duplicates on create anyway.

        Args:
            email: Customer email
            first_name: Customer first name

        Returns:
            Shopify customer ID as a string
        """
        try:
            customer_id = self.search_customer(email)
        except ShopifyAPIError as e:
            print(f"Customer search failed, creating customer instead: {e}")
            customer_id = None

        if customer_id:
            print("Found existing Shopify customer")
            return customer_id

        data = self._request('create_customer', 'POST', 'customers.json', json={
            'customer': {
                'email': email,
                'first_name': first_name,
                'verified_email': True
            }
        })
        try:
            customer_id = str(data['customer']['id'])
        except (KeyError, TypeError) as e:
            raise ShopifyAPIError('create_customer', message='missing customer id') from e
        print("Created Shopify customer")
        return customer_id

    def create_percentage_discount(self, title: str, percent_off: int) -> str:
        """
        Create a store-wide percentage-off price rule.

        Args:
            title: Price rule title shown in the Shopify admin
            percent_off: Discount percentage (15 means 15% off)

        Returns:
            Price rule ID as a string
        """
        data = self._request('create_price_rule', 'POST', 'price_rules.json', json={
            'price_rule': {
                'title': title,
                'target_type': 'line_item',
                'target_selection': 'all',
                'allocation_method': 'across',
                'value': f"-{percent_off}",
                'value_type': 'percentage',
                'customer_selection': 'all',
                'starts_at': datetime.now(timezone.utc).isoformat(),
                'usage_limit': None,
                'once_per_customer': False
            }
        })
        try:
            return str(data['price_rule']['id'])
        except (KeyError, TypeError) as e:
            raise ShopifyAPIError('create_price_rule', message='missing price rule id') from e

    def attach_code(self, price_rule_id: str, code: str) -> None:
        """Attach a redeemable code to a price rule."""
        self._request(
            'create_discount_code', 'POST',
            f'price_rules/{price_rule_id}/discount_codes.json',
            json={'discount_code': {'code': code}}
        )

    def provision_discount(self, email: str, first_name: str, discount_code: str, percent_off: int = 15) -> DiscountProvision:
        """
        Issue a discount code for a member.

        Finds or creates the customer, creates a dedicated price rule and
        attaches the code to it.

        Raises:
            ShopifyAPIError: if any step fails
        """
        customer_id = self.find_or_create_customer(email, first_name)
        price_rule_id = self.create_percentage_discount(f"Inner Circle - {first_name}", percent_off)
        self.attach_code(price_rule_id, discount_code)
        print(f"Provisioned discount on price rule {price_rule_id}")
        return DiscountProvision(
            discount_code=discount_code,
            customer_id=customer_id,
            price_rule_id=price_rule_id
        )
