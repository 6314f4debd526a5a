#!/usr/bin/env python3
"""
Test suite for HTTPClient authentication and request handling.

Connections are mocked at http.client level so no network traffic occurs.
"""

import os
import ssl
import sys
import json
import base64
import unittest
from unittest.mock import MagicMock, Mock, patch

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from people_sync.connectors.http_client import HTTPAuthenticationError, HTTPClient, HTTPError


def mock_response(status, body=''):
    response = Mock()
    response.status = status
    response.read.return_value = body.encode('utf-8')
    return response


class TestAuthentication(unittest.TestCase):
    """Test cases for authentication header setup."""

    def test_basic(self):
        client = HTTPClient({'base_url': 'https://api.example.com',
                             'auth': {'method': 'basic', 'username': 'u', 'password': 'p'}})

        expected = base64.b64encode(b'u:p').decode()
        self.assertEqual(client.auth_headers['Authorization'], f'Basic {expected}')

    def test_bearer_token_alias(self):
        client = HTTPClient({'base_url': 'https://api.example.com',
                             'auth': {'method': 'token', 'password': 'tkn'}})

        self.assertEqual(client.auth_headers['Authorization'], 'Bearer tkn')

    def test_missing_credentials_logged(self):
        with patch('people_sync.connectors.http_client.logger') as mock_logger:
            client = HTTPClient({'base_url': 'https://api.example.com', 'auth': {'method': 'basic'}})

        mock_logger.error.assert_called_once()
        self.assertEqual(client.auth_headers, {})

    def test_unverified_context(self):
        client = HTTPClient({'base_url': 'https://api.example.com', 'verify_ssl': False})

        self.assertEqual(client.ssl_context.verify_mode, ssl.CERT_NONE)

    def test_unsupported_truststore_type(self):
        with self.assertRaises(HTTPError):
            HTTPClient({'base_url': 'https://api.example.com', 'truststore_file': 'ca.jks',
                        'truststore_type': 'JKS'})


@patch('people_sync.connectors.http_client.HTTPSConnection')
class TestRequest(unittest.TestCase):
    """Test cases for HTTPClient.request."""

    def setUp(self):
        self.config = {
            'base_url': 'https://api.example.com/v1/',
            'auth': {'method': 'bearer', 'token': 'tkn'}
        }

    def test_json_round_trip(self, mock_https):
        connection = MagicMock()
        connection.getresponse.return_value = mock_response(200, '{"id": 7}')
        mock_https.return_value = connection
        client = HTTPClient(self.config)

        result = client.request('POST', '/users?x=1', {'email': 'a@example.com'})

        self.assertEqual(result, {'id': 7})
        method, path, body, headers = connection.request.call_args[0]
        self.assertEqual(method, 'POST')
        self.assertEqual(path, '/v1/users?x=1')
        self.assertEqual(json.loads(body), {'email': 'a@example.com'})
        self.assertEqual(headers['Authorization'], 'Bearer tkn')
        self.assertEqual(headers['Content-Type'], 'application/json')
        connection.close.assert_called_once()

    def test_empty_body_returns_none(self, mock_https):
        mock_https.return_value.getresponse.return_value = mock_response(204)

        self.assertIsNone(HTTPClient(self.config).request('DELETE', '/users/1'))

    def test_error_status_carries_code(self, mock_https):
        mock_https.return_value.getresponse.return_value = mock_response(503, 'busy')

        with self.assertRaises(HTTPError) as context:
            HTTPClient(self.config).request('GET', '/users')

        self.assertEqual(context.exception.status_code, 503)
        self.assertEqual(context.exception.body, 'busy')

    def test_unauthorized(self, mock_https):
        mock_https.return_value.getresponse.return_value = mock_response(401)

        with self.assertRaises(HTTPAuthenticationError):
            HTTPClient(self.config).request('GET', '/users')

    def test_connection_error(self, mock_https):
        mock_https.return_value.request.side_effect = OSError('refused')

        with self.assertRaises(HTTPError) as context:
            HTTPClient(self.config).request('GET', '/users')
        self.assertIsNone(context.exception.status_code)

    def test_invalid_json(self, mock_https):
        mock_https.return_value.getresponse.return_value = mock_response(200, 'not json')

        with self.assertRaises(HTTPError):
            HTTPClient(self.config).request('GET', '/users')


@patch('people_sync.connectors.http_client.HTTPSConnection')
class TestOAuth2(unittest.TestCase):
    """Test cases for the OAuth2 client credentials flow."""

    def setUp(self):
        self.config = {
            'base_url': 'https://api.example.com',
            'auth': {
                'method': 'oauth2',
                'client_id': 'id',
                'client_secret': 'secret',
                'token_url': 'https://auth.example.com/token',
                'scope': 'users'
            }
        }

    def test_token_fetched_then_used(self, mock_https):
        connection = MagicMock()
        connection.getresponse.side_effect = [
            mock_response(200, '{"access_token": "abc", "expires_in": 3600}'),
            mock_response(200, '[]'),
        ]
        mock_https.return_value = connection

        result = HTTPClient(self.config).request('GET', '/users')

        self.assertEqual(result, [])
        token_call, api_call = connection.request.call_args_list
        self.assertEqual(token_call[0][1], '/token')
        self.assertIn('grant_type=client_credentials', token_call[0][2])
        self.assertIn('scope=users', token_call[0][2])
        self.assertEqual(api_call[0][3]['Authorization'], 'Bearer abc')

    def test_token_refreshed_once_on_401(self, mock_https):
        connection = MagicMock()
        connection.getresponse.side_effect = [
            mock_response(200, '{"access_token": "old", "expires_in": 3600}'),
            mock_response(401),
            mock_response(200, '{"access_token": "new", "expires_in": 3600}'),
            mock_response(200, '{"ok": true}'),
        ]
        mock_https.return_value = connection

        result = HTTPClient(self.config).request('GET', '/users')

        self.assertEqual(result, {'ok': True})
        self.assertEqual(connection.request.call_args_list[3][0][3]['Authorization'], 'Bearer new')

    def test_token_failure(self, mock_https):
        mock_https.return_value.getresponse.return_value = mock_response(400, '{"error": "invalid_client"}')

        with self.assertRaises(HTTPAuthenticationError):
            HTTPClient(self.config).request('GET', '/users')


if __name__ == '__main__':
    unittest.main()
