"""
Unit tests for ssm_utils module.

Tests AWS Systems Manager Parameter Store utilities including:
- Parameter retrieval and decryption
- Caching of successful reads only
- Error handling
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError, EndpointConnectionError

# Add lambda directory to path
lambda_dir = Path(__file__).parent.parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))

from ssm_utils import get_parameter, clear_cache


@pytest.fixture(autouse=True)
def clear_parameter_cache():
    clear_cache()
    yield
    clear_cache()


def _client_error(code):
    return ClientError({'Error': {'Code': code, 'Message': code}}, 'GetParameter')


@pytest.mark.unit
class TestGetParameter:
    """Tests for get_parameter() function."""

    def test_get_parameter_success(self, mock_ssm_parameters):
        assert get_parameter('/inner-circle/admin-key') == pytest.TEST_ADMIN_KEY

    def test_secure_string_is_decrypted(self, mock_ssm_parameters):
        assert get_parameter('/inner-circle/shopify-token').startswith('shpat_')

    def test_missing_parameter_returns_empty_string(self, mock_ssm_parameters, capsys):
        assert get_parameter('/inner-circle/does-not-exist') == ''
        assert 'does not exist' in capsys.readouterr().out

    def test_result_is_cached(self):
        mock_client = MagicMock()
        mock_client.get_parameter.return_value = {'Parameter': {'Value': 'cached-value'}}

        with patch('ssm_utils.ssm_client', mock_client):
            assert get_parameter('/inner-circle/admin-key') == 'cached-value'
            assert get_parameter('/inner-circle/admin-key') == 'cached-value'

        mock_client.get_parameter.assert_called_once_with(
            Name='/inner-circle/admin-key', WithDecryption=True
        )

    def test_failures_are_not_cached(self):
        mock_client = MagicMock()
        mock_client.get_parameter.side_effect = [
            _client_error('ThrottlingException'),
            {'Parameter': {'Value': 'second-try'}}
        ]

        with patch('ssm_utils.ssm_client', mock_client):
            assert get_parameter('/inner-circle/admin-key') == ''
            assert get_parameter('/inner-circle/admin-key') == 'second-try'

    def test_access_denied_returns_empty_string(self, capsys):
        mock_client = MagicMock()
        mock_client.get_parameter.side_effect = _client_error('AccessDeniedException')

        with patch('ssm_utils.ssm_client', mock_client):
            assert get_parameter('/inner-circle/admin-key') == ''

        assert 'AccessDeniedException' in capsys.readouterr().out

    def test_connection_error_returns_empty_string(self):
        mock_client = MagicMock()
        mock_client.get_parameter.side_effect = EndpointConnectionError(endpoint_url='https://ssm.us-east-1.amazonaws.com')

        with patch('ssm_utils.ssm_client', mock_client):
            assert get_parameter('/inner-circle/admin-key') == ''
