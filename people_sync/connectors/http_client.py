"""
HTTP client shared by REST based connectors.

Provides SSL context setup (custom truststores, client certificates),
authentication handling (Basic, Bearer, OAuth2 client credentials) and JSON
request/response handling on top of ``http.client``.
"""

import json
import ssl
import time
import base64
import logging
import tempfile
from typing import Dict, Any, Optional, Tuple, Union
from urllib.parse import urlparse, urlencode
from http.client import HTTPSConnection, HTTPConnection

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class HTTPError(Exception):
    """Raised for transport failures and HTTP error responses."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class HTTPAuthenticationError(HTTPError):
    """Raised when the remote API rejects our credentials."""
    pass


class HTTPClient:
    """
    Minimal JSON-over-HTTP client bound to one base URL.

    A fresh connection is opened per request so the client can be shared by
    concurrent worker threads.
    """

    def __init__(self, config: Dict[str, Any], name: str = 'http'):
        """
        Initialize HTTP client.

        Args:
            config: Connector configuration (base_url, auth, verify_ssl, truststore/keystore settings)
            name: Label used in log messages
        """
        self.config = config
        self.name = name
        self.base_url = config.get('base_url', '').rstrip('/')
        self.auth_config = config.get('auth') or {}
        self.verify_ssl = config.get('verify_ssl', True)
        self.timeout = config.get('timeout', DEFAULT_TIMEOUT_SECONDS)
        self.user_agent = config.get('user_agent', 'people-sync')

        self.ssl_context = None
        self.auth_headers = {}
        self._token_expires_at = 0.0

        self._setup_ssl_context()
        self._setup_authentication()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.name}")
            return

        self.ssl_context = ssl.create_default_context()

        truststore_file = self.config.get('truststore_file')
        if truststore_file:
            self._load_truststore(truststore_file)

        keystore_file = self.config.get('keystore_file')
        if keystore_file:
            self._load_client_cert(keystore_file)

    def _load_truststore(self, truststore_file: str):
        """Load custom truststore/CA certificates."""
        truststore_type = self.config.get('truststore_type', 'PEM').upper()
        truststore_password = self.config.get('truststore_password')

        try:
            if truststore_type == 'PEM':
                self.ssl_context.load_verify_locations(cafile=truststore_file)
            elif truststore_type == 'PKCS12':
                from cryptography.hazmat.primitives import serialization
                from cryptography.hazmat.primitives.serialization import pkcs12

                with open(truststore_file, 'rb') as f:
                    p12_data = f.read()

                _, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                    p12_data, truststore_password.encode() if truststore_password else None
                )

                ca_certs = []
                if certificate:
                    ca_certs.append(certificate.public_bytes(serialization.Encoding.PEM))
                for cert in (additional_certificates or []):
                    ca_certs.append(cert.public_bytes(serialization.Encoding.PEM))

                if ca_certs:
                    self.ssl_context.load_verify_locations(cadata=b'\n'.join(ca_certs).decode('ascii'))
            else:
                raise HTTPError(f"Unsupported truststore type: {truststore_type}")

            logger.info(f"Loaded {truststore_type} truststore: {truststore_file}")

        except HTTPError:
            raise
        except Exception as e:
            logger.error(f"Failed to load truststore {truststore_file}: {e}")
            raise HTTPError(f"Truststore loading failed: {e}")

    def _load_client_cert(self, keystore_file: str):
        """Load client certificate for mutual TLS."""
        keystore_type = self.config.get('keystore_type', 'PEM').upper()
        keystore_password = self.config.get('keystore_password')

        try:
            if keystore_type == 'PEM':
                self.ssl_context.load_cert_chain(keystore_file, password=keystore_password)
            elif keystore_type == 'PKCS12':
                from cryptography.hazmat.primitives import serialization
                from cryptography.hazmat.primitives.serialization import pkcs12

                with open(keystore_file, 'rb') as f:
                    p12_data = f.read()

                private_key, certificate, _ = pkcs12.load_key_and_certificates(
                    p12_data, keystore_password.encode() if keystore_password else None
                )
                if not (private_key and certificate):
                    raise HTTPError(f"No key and certificate found in {keystore_file}")

                with tempfile.NamedTemporaryFile(mode='wb', suffix='.pem') as pem_file:
                    pem_file.write(certificate.public_bytes(serialization.Encoding.PEM))
                    pem_file.write(private_key.private_bytes(
                        encoding=serialization.Encoding.PEM,
                        format=serialization.PrivateFormat.PKCS8,
                        encryption_algorithm=serialization.NoEncryption()
                    ))
                    pem_file.flush()
                    self.ssl_context.load_cert_chain(pem_file.name)
            else:
                raise HTTPError(f"Unsupported keystore type: {keystore_type}")

            logger.info(f"Loaded {keystore_type} client certificate: {keystore_file}")

        except HTTPError:
            raise
        except Exception as e:
            logger.error(f"Failed to load client certificate {keystore_file}: {e}")
            raise HTTPError(f"Client certificate loading failed: {e}")

    def _setup_authentication(self):
        """Set up authentication headers based on configuration."""
        auth_method = self.auth_config.get('method', '').lower()

        if auth_method == 'basic':
            username = self.auth_config.get('username')
            password = self.auth_config.get('password')
            if username and password:
                credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
                self.auth_headers['Authorization'] = f"Basic {credentials}"
            else:
                logger.error(f"Basic auth configured but missing username or password for {self.name}")

        elif auth_method in ('token', 'bearer'):
            token = self.auth_config.get('token') or self.auth_config.get('password')
            if token:
                self.auth_headers['Authorization'] = f"Bearer {token}"
            else:
                logger.error(f"Token auth configured but missing token for {self.name}")

        elif auth_method == 'oauth2':
            required = ('client_id', 'client_secret', 'token_url')
            if not all(self.auth_config.get(field) for field in required):
                logger.error(f"OAuth2 auth configured but missing required fields "
                             f"(client_id, client_secret, token_url) for {self.name}")

        elif auth_method:
            logger.warning(f"Unknown authentication method '{auth_method}' for {self.name}")

    @property
    def uses_oauth2(self) -> bool:
        return self.auth_config.get('method', '').lower() == 'oauth2'

    def authenticate(self) -> bool:
        """Obtain an OAuth2 token when needed; other methods need no round trip."""
        if not self.uses_oauth2 or time.time() < self._token_expires_at:
            return True
        return self._oauth2_get_token()

    def _oauth2_get_token(self) -> bool:
        """
        Retrieve OAuth2 access token using client credentials flow.

        Returns:
            True if token was successfully obtained
        """
        token_data = {
            'grant_type': 'client_credentials',
            'client_id': self.auth_config.get('client_id'),
            'client_secret': self.auth_config.get('client_secret')
        }
        if self.auth_config.get('scope'):
            token_data['scope'] = self.auth_config['scope']

        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Accept': 'application/json'
        }

        logger.debug(f"Requesting OAuth2 token for {self.name}")
        try:
            status, body = self._send('POST', self.auth_config.get('token_url', ''), urlencode(token_data), headers)
        except HTTPError as e:
            logger.error(f"OAuth2 token request error for {self.name}: {e}")
            return False

        if status != 200:
            logger.error(f"OAuth2 token request failed for {self.name}: {status}")
            return False

        try:
            token_response = json.loads(body)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in OAuth2 token response for {self.name}: {e}")
            return False

        access_token = token_response.get('access_token')
        if not access_token:
            logger.error(f"OAuth2 response missing access_token for {self.name}")
            return False

        self.auth_headers['Authorization'] = f"Bearer {access_token}"
        expires_in = token_response.get('expires_in')
        self._token_expires_at = time.time() + int(expires_in) - 60 if expires_in else float('inf')
        logger.info(f"Successfully obtained OAuth2 token for {self.name}")
        return True

    def _connection(self, scheme: str, netloc: str) -> Union[HTTPSConnection, HTTPConnection]:
        if scheme == 'https':
            return HTTPSConnection(netloc, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(netloc, timeout=self.timeout)

    def _send(self, method: str, url: str, body: Optional[str], headers: Dict[str, str]) -> Tuple[int, str]:
        parsed = urlparse(url)
        path = parsed.path or '/'
        if parsed.query:
            path = f"{path}?{parsed.query}"

        conn = self._connection(parsed.scheme, parsed.netloc)
        try:
            conn.request(method, path, body, headers)
            response = conn.getresponse()
            return response.status, response.read().decode('utf-8')
        except (ConnectionError, OSError) as e:
            raise HTTPError(f"Connection error to {parsed.netloc}: {e}")
        finally:
            conn.close()

    def url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, body: Optional[Any] = None,
                headers: Optional[Dict[str, str]] = None) -> Any:
        """
        Make an HTTP request and decode the JSON response.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: Path relative to base_url, may include a query string
            body: Request body; dicts and lists are sent as JSON
            headers: Additional headers

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            HTTPError: On transport errors, HTTP status >= 400 or invalid JSON
        """
        url = self.url(path)

        request_body = None
        if body is not None:
            request_body = body if isinstance(body, str) else json.dumps(body)

        for auth_attempt in range(2):
            if not self.authenticate():
                raise HTTPAuthenticationError(f"Authentication failed for {self.name}")

            request_headers = {'User-Agent': self.user_agent, 'Accept': 'application/json'}
            request_headers.update(self.auth_headers)
            if request_body is not None:
                request_headers['Content-Type'] = 'application/json'
            if headers:
                request_headers.update(headers)

            logger.debug(f"Making {method} request to {url}")
            status, response_data = self._send(method, url, request_body, request_headers)
            logger.debug(f"Response status: {status}")

            if status == 401 and self.uses_oauth2 and auth_attempt == 0:
                logger.info(f"401 error received, refreshing OAuth2 token for {self.name}")
                self._token_expires_at = 0.0
                continue

            if status == 401:
                raise HTTPAuthenticationError(f"Authentication failed for {self.name}", status, response_data)
            if status >= 400:
                raise HTTPError(f"HTTP {status} from {url}: {response_data}", status, response_data)
            break

        if not response_data:
            return None
        try:
            return json.loads(response_data)
        except json.JSONDecodeError as e:
            raise HTTPError(f"Invalid JSON response from {url}: {e}", status, response_data)
