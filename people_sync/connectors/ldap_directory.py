"""
LDAP directory source.

Lists people from an LDAP directory with a paged subtree search. Each sync
set chooses the search base and filter.
"""

import ssl
import time
import logging
from typing import Any, Dict, List, Optional

from ldap3 import ALL, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPBindError, LDAPException, LDAPSocketOpenError

from people_sync.connectors.base import ConnectorError, Source
from people_sync.filters import FilterError, Filters
from people_sync.person import Person, expand_repeated
from people_sync.sync import SyncError

logger = logging.getLogger(__name__)

PAGED_RESULTS_OID = '1.2.840.113556.1.4.319'


class LDAPConnectionError(SyncError):
    """Raised when LDAP connection fails."""
    pass


class LDAPSource(Source):
    """
    LDAP source connector.

    Supports LDAPS, StartTLS and mutual TLS, and retries the bind on
    socket and bind failures.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        for field in ('server_url', 'bind_dn', 'bind_password'):
            if not config.get(field):
                raise ConnectorError(f"Missing required LDAP field: {field}")

        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']
        self.compare_attribute = config.get('compare_attribute', 'mail')
        self.default_base_dn = config.get('base_dn', '')
        self.default_search_filter = config.get('search_filter', '(objectClass=person)')

        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')
        self.cert_file = config.get('cert_file')
        self.key_file = config.get('key_file')

        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)
        self.page_size = config.get('page_size', 1000)
        self.max_retries = config.get('max_retries', 3)
        self.retry_wait = config.get('retry_wait_seconds', 5)

        self.filters = Filters.from_config(config.get('filters'))
        try:
            self.filters.validate()
        except FilterError as e:
            raise ConnectorError(f"invalid configuration: {e}")

        self.base_dn = self.default_base_dn
        self.search_filter = self.default_search_filter
        self.server = None
        self.connection = None

    def for_set(self, set_config: Dict[str, Any]) -> None:
        self.base_dn = set_config.get('base_dn') or self.default_base_dn
        self.search_filter = set_config.get('search_filter') or self.default_search_filter
        if not self.base_dn:
            raise ConnectorError("base_dn missing from sync set and source configuration")

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for LDAP connection.

        Returns:
            Tls configuration object or None if not needed
        """
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {'validate': ssl.CERT_REQUIRED if self.verify_ssl else ssl.CERT_NONE}
        if not self.verify_ssl:
            logger.warning("SSL certificate verification disabled")

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file

        if self.cert_file and self.key_file:
            tls_config['local_certificate_file'] = self.cert_file
            tls_config['local_private_key_file'] = self.key_file

        return Tls(**tls_config)

    def connect(self):
        """
        Establish connection to LDAP server with retry logic.

        Raises:
            LDAPConnectionError: If connection fails after all retries
        """
        if self.connection is not None:
            return

        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=ALL,
                connect_timeout=self.connection_timeout
            )
        except LDAPException as e:
            raise LDAPConnectionError(f"Failed to create LDAP server: {e}")

        last_exception = None
        for attempt in range(self.max_retries):
            connection = Connection(
                self.server,
                user=self.bind_dn,
                password=self.bind_password,
                auto_bind=False,
                receive_timeout=self.receive_timeout
            )
            try:
                connection.open()
                if self.start_tls and not self.use_ssl:
                    if not connection.start_tls():
                        raise LDAPBindError(f"Failed to start TLS: {connection.result}")
                if not connection.bind():
                    raise LDAPBindError(f"Bind failed: {connection.result}")

                self.connection = connection
                logger.info(f"Successfully connected and bound to LDAP server {self.server_url}")
                return

            except (LDAPSocketOpenError, LDAPBindError, LDAPException) as e:
                last_exception = e
                logger.warning(f"LDAP connection attempt {attempt + 1}/{self.max_retries} failed: {e}")
                connection.unbind()
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_wait)

        raise LDAPConnectionError(f"Failed to connect to LDAP after {self.max_retries} attempts: {last_exception}")

    def list_users(self, desired_attrs: List[str]) -> List[Person]:
        """
        Search the sync set's base DN and return the filtered people.

        Raises:
            SyncError: If the directory cannot be reached or searched
        """
        self.connect()

        attributes = list(desired_attrs)
        for extra in [self.compare_attribute] + self.filters.attributes():
            if extra not in attributes:
                attributes.append(extra)

        people = []
        cookie = None
        page_count = 0
        try:
            while True:
                self.connection.search(
                    search_base=self.base_dn,
                    search_filter=self.search_filter,
                    search_scope=SUBTREE,
                    attributes=attributes,
                    paged_size=self.page_size,
                    paged_cookie=cookie
                )
                if self.connection.result.get('result', 0) != 0:
                    raise SyncError(f"LDAP search failed: {self.connection.result}")

                page_count += 1
                for entry in self.connection.response or []:
                    if entry.get('type') != 'searchResEntry':
                        continue
                    person = self.person_from_entry(entry)
                    if person is not None:
                        people.append(person)

                controls = self.connection.result.get('controls') or {}
                cookie = controls.get(PAGED_RESULTS_OID, {}).get('value', {}).get('cookie')
                if not cookie:
                    break
        except LDAPException as e:
            raise SyncError(f"LDAP query failed: {e}")

        logger.info(f"Retrieved {len(people)} people from {self.base_dn} across {page_count} pages")

        try:
            return self.filters.apply(people)
        except FilterError as e:
            raise SyncError(f"filter failure: {e}")

    def person_from_entry(self, entry: Dict[str, Any]) -> Optional[Person]:
        """Convert a search response entry, expanding multi-valued attributes to compound keys."""
        attributes = {'dn': entry.get('dn', '')}
        for name, value in (entry.get('attributes') or {}).items():
            if isinstance(value, list):
                attributes.update(expand_repeated(name, value))
            elif value is not None:
                attributes[name] = str(value)

        compare_value = attributes.get(self.compare_attribute, '')
        if not compare_value:
            logger.warning(f"Entry has no {self.compare_attribute}: {attributes['dn']}")
            return None

        return Person(compare_value=compare_value, attributes=attributes)

    def close(self) -> None:
        """Close LDAP connection."""
        if self.connection is not None:
            try:
                self.connection.unbind()
                logger.debug("LDAP connection closed")
            except LDAPException as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self.connection = None
