import base64
from datetime import datetime
from unittest.mock import MagicMock
import pytest
import requests
from django.utils import timezone
from apps.payments.mpesa import MpesaClient, MpesaError, format_phone_number, generate_password, get_timestamp


@pytest.mark.parametrize('raw,expected', [
    ('0712345678', '254712345678'),
    ('0112345678', '254112345678'),
    ('+254712345678', '254712345678'),
    ('254 712-345-678', '254712345678'),
    ('712345678', '254712345678'),
])
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


@pytest.mark.parametrize('raw', ['', '0812345678', '07123', 'not-a-number'])
def test_format_phone_number_rejects_invalid(raw):
    with pytest.raises(ValueError):
        format_phone_number(raw)


def test_password_is_base64_of_shortcode_passkey_timestamp():
    password = generate_password('174379', 'passkey', '20250630101500')
    assert base64.b64decode(password).decode() == '174379passkey20250630101500'


def test_timestamp_format():
    now = timezone.make_aware(datetime(2025, 6, 30, 10, 15, 0))
    assert get_timestamp(now) == '20250630101500'


@pytest.fixture
def http(monkeypatch):
    mock_requests = MagicMock()
    mock_requests.exceptions = requests.exceptions
    token = MagicMock(status_code=200)
    token.json.return_value = {'access_token': 'abc'}
    mock_requests.get.return_value = token
    monkeypatch.setattr('apps.payments.mpesa.requests', mock_requests)
    return mock_requests


def client():
    return MpesaClient(consumer_key='key', consumer_secret='secret', shortcode='174379', passkey='passkey',
                       environment='sandbox', callback_url='https://example.com/cb/', timeout=5)


def respond(http, data, status_code=200):
    response = MagicMock(status_code=status_code)
    response.json.return_value = data
    http.post.return_value = response


def test_stk_push_payload(http):
    respond(http, {'CheckoutRequestID': 'ws_CO_9', 'MerchantRequestID': 'm-9', 'ResponseCode': '0'})
    data = client().stk_push('0712345678', '1500.00', 'TL-7', 'Order #25000007')
    assert data['CheckoutRequestID'] == 'ws_CO_9'

    url = http.post.call_args.args[0]
    assert url == 'https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest'
    payload = http.post.call_args.kwargs['json']
    assert payload['Amount'] == 1500
    assert payload['PhoneNumber'] == '254712345678'
    assert payload['PartyB'] == '174379'
    assert payload['CallBackURL'] == 'https://example.com/cb/'
    assert payload['TransactionDesc'] == 'Order #250000'
    assert base64.b64decode(payload['Password']).decode() == f"174379passkey{payload['Timestamp']}"
    assert http.get.call_args.kwargs['auth'] == ('key', 'secret')


def test_production_uses_live_host(http):
    respond(http, {'CheckoutRequestID': 'ws_CO_9', 'MerchantRequestID': 'm-9'})
    mpesa = MpesaClient(consumer_key='key', consumer_secret='secret', environment='production')
    mpesa.stk_push('0712345678', 10, 'TL-1', 'Order')
    assert http.post.call_args.args[0].startswith('https://api.safaricom.co.ke/')


def test_error_response_raises(http):
    respond(http, {'errorCode': '400.002.02', 'errorMessage': 'Invalid Amount'}, status_code=400)
    with pytest.raises(MpesaError) as excinfo:
        client().stk_push('0712345678', 10, 'TL-1', 'Order')
    assert str(excinfo.value) == 'Invalid Amount'
    assert excinfo.value.status_code == 400
    assert excinfo.value.payload['errorCode'] == '400.002.02'


def test_missing_request_ids_raise(http):
    respond(http, {'ResponseCode': '0'})
    with pytest.raises(MpesaError):
        client().stk_push('0712345678', 10, 'TL-1', 'Order')


def test_network_failure_raises(http):
    http.post.side_effect = requests.exceptions.ConnectionError('down')
    with pytest.raises(MpesaError):
        client().stk_query('ws_CO_1')


def test_missing_credentials(http):
    mpesa = client()
    mpesa.consumer_key = ''
    with pytest.raises(MpesaError):
        mpesa.get_access_token()
    http.get.assert_not_called()


def test_stk_query(http):
    respond(http, {'ResultCode': '0', 'ResultDesc': 'ok'})
    assert client().stk_query('ws_CO_1')['ResultCode'] == '0'
    assert http.post.call_args.kwargs['json']['CheckoutRequestID'] == 'ws_CO_1'
