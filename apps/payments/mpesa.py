"""
Safaricom Daraja (M-Pesa Express) client.

Only the calls the payment flow needs: OAuth token, STK push and STK query.
"""
import base64
import logging
import re
from django.conf import settings
from django.utils import timezone
import requests

logger = logging.getLogger(__name__)

BASE_URLS = {
    'sandbox': 'https://sandbox.safaricom.co.ke',
    'production': 'https://api.safaricom.co.ke',
}

# STK query result codes meaning the customer has not finished yet
PENDING_RESULT_CODES = ('4999', '500.001.1001')

PHONE_PATTERN = re.compile(r'^254[17]\d{8}$')


class MpesaError(Exception):
    """Raised when Daraja rejects a request or returns an unusable response."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def format_phone_number(phone):
    """
    Normalise a Kenyan number to 2547XXXXXXXX / 2541XXXXXXXX.

    Raises ValueError when the result is not a valid Safaricom MSISDN.
    """
    cleaned = re.sub(r'[\s\-()]', '', str(phone or ''))
    if cleaned.startswith('+'):
        cleaned = cleaned[1:]
    if cleaned.startswith('0'):
        cleaned = '254' + cleaned[1:]
    elif not cleaned.startswith('254'):
        cleaned = '254' + cleaned
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError(f"Invalid phone number: {phone}")
    return cleaned


def get_timestamp(now=None):
    now = timezone.localtime(now or timezone.now())
    return now.strftime('%Y%m%d%H%M%S')


def generate_password(shortcode, passkey, timestamp):
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class MpesaClient:
    def __init__(self, consumer_key=None, consumer_secret=None, shortcode=None, passkey=None,
                 environment=None, callback_url=None, timeout=None):
        self.consumer_key = consumer_key or settings.MPESA_CONSUMER_KEY
        self.consumer_secret = consumer_secret or settings.MPESA_CONSUMER_SECRET
        self.shortcode = shortcode or settings.MPESA_SHORTCODE
        self.passkey = passkey or settings.MPESA_PASSKEY
        self.callback_url = callback_url or settings.MPESA_CALLBACK_URL
        self.timeout = timeout or settings.MPESA_TIMEOUT
        environment = environment or settings.MPESA_ENVIRONMENT
        self.base_url = BASE_URLS['production' if environment == 'production' else 'sandbox']

    def get_access_token(self):
        if not self.consumer_key or not self.consumer_secret:
            raise MpesaError("M-Pesa credentials are not configured")
        try:
            response = requests.get(
                f"{self.base_url}/oauth/v1/generate",
                params={'grant_type': 'client_credentials'},
                auth=(self.consumer_key, self.consumer_secret),
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"M-Pesa token request failed: {str(e)}")
            raise MpesaError(f"Failed to get M-Pesa access token: {str(e)}")
        token = response.json().get('access_token')
        if not token:
            raise MpesaError("M-Pesa token response did not include an access token")
        return token

    def _post(self, path, payload):
        headers = {
            'Authorization': f"Bearer {self.get_access_token()}",
            'Content-Type': 'application/json',
        }
        try:
            response = requests.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"M-Pesa request to {path} failed: {str(e)}")
            raise MpesaError(f"M-Pesa request failed: {str(e)}")
        try:
            data = response.json()
        except ValueError:
            raise MpesaError(f"M-Pesa returned a non-JSON response (HTTP {response.status_code})",
                             status_code=response.status_code)
        if response.status_code >= 400 or data.get('errorCode') or data.get('errorMessage'):
            message = data.get('errorMessage') or data.get('ResponseDescription') or 'Unknown error'
            logger.error(f"M-Pesa {path} error: {data}")
            raise MpesaError(message, status_code=response.status_code, payload=data)
        return data

    def stk_push(self, phone_number, amount, account_reference, description):
        """Start an STK push. Returns the Daraja response with both request IDs."""
        timestamp = get_timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': generate_password(self.shortcode, self.passkey, timestamp),
            'Timestamp': timestamp,
            'TransactionType': 'CustomerPayBillOnline',
            'Amount': int(amount),
            'PartyA': format_phone_number(phone_number),
            'PartyB': self.shortcode,
            'PhoneNumber': format_phone_number(phone_number),
            'CallBackURL': self.callback_url,
            'AccountReference': account_reference,
            'TransactionDesc': description[:13],
        }
        logger.info(f"Sending STK push for {account_reference}")
        data = self._post('/mpesa/stkpush/v1/processrequest', payload)
        if not data.get('CheckoutRequestID') or not data.get('MerchantRequestID'):
            raise MpesaError("M-Pesa response is missing request IDs", payload=data)
        return data

    def stk_query(self, checkout_request_id):
        timestamp = get_timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': generate_password(self.shortcode, self.passkey, timestamp),
            'Timestamp': timestamp,
            'CheckoutRequestID': checkout_request_id,
        }
        return self._post('/mpesa/stkpushquery/v1/query', payload)
