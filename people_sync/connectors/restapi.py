"""
REST API connector.

Reads people from one or more JSON endpoints (optionally paginated) and, as a
destination, creates, updates and deletes people with JSON requests.
"""

import os
import re
import json
import time
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from people_sync.connectors.base import ConnectorError, Destination, Source
from people_sync.connectors.http_client import HTTPClient, HTTPError
from people_sync.filters import FilterError, Filters
from people_sync.person import Person
from people_sync.retry import (
    MaxRetriesExceeded,
    create_retry_callback,
    is_retryable_error,
    is_transient_status,
    retry_call,
)
from people_sync.sync import SyncError

logger = logging.getLogger(__name__)

PAGINATION_SCHEME_ITEMS = 'items'
PAGINATION_SCHEME_PAGES = 'pages'

DEFAULT_HTTP_TIMEOUT_SECONDS = 30
HTTP_TIMEOUT_ENV = 'PEOPLE_SYNC_HTTP_TIMEOUT'

PATH_TEMPLATE = re.compile(r'\{([a-zA-Z0-9_]+)\}')

_MISSING = object()


def get_path(data: Any, path: str) -> Any:
    """Look up a dotted path in nested dictionaries."""
    current = data
    for key in path.split('.'):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def set_path(data: Dict[str, Any], path: str, value: Any):
    """Set a dotted path, creating intermediate dictionaries."""
    keys = path.split('.')
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def attributes_to_json(attributes: Dict[str, str]) -> Dict[str, Any]:
    body = {}
    for field in sorted(attributes):
        set_path(body, field, attributes[field])
    return body


def add_params_to_url(url: str, params: List[tuple]) -> str:
    """Append query parameters, keeping any already present."""
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params if k)
    return urlunparse(parsed._replace(query=urlencode(query)))


def parse_path_template(path_template: str) -> str:
    """
    Normalize an update/delete path to contain exactly one ``{id}`` placeholder.

    Raises:
        ConnectorError: If the path has no bracketed field
    """
    matches = PATH_TEMPLATE.findall(path_template)
    if len(matches) != 1:
        raise ConnectorError("path must contain a field bracketed with {}, e.g. /path/{id}")

    path = PATH_TEMPLATE.sub('{id}', path_template)
    if not path.startswith('/'):
        path = '/' + path
    return path


def format_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def http_timeout(configured: Any) -> int:
    """Configured timeout, else environment override, else the default; always 1..600."""
    timeout = configured
    if not timeout:
        env_value = os.getenv(HTTP_TIMEOUT_ENV, '')
        if env_value:
            try:
                timeout = int(env_value)
            except ValueError:
                logger.warning(f"Error reading {HTTP_TIMEOUT_ENV} environment variable: {env_value!r}")
    try:
        timeout = int(timeout or 0)
    except (TypeError, ValueError):
        timeout = 0
    if timeout < 1 or timeout > 600:
        timeout = DEFAULT_HTTP_TIMEOUT_SECONDS
    return timeout


class Pagination:
    """Pagination settings for list requests."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.scheme = config.get('scheme', '')
        self.first_index = int(config.get('first_index', 1 if self.scheme != PAGINATION_SCHEME_ITEMS else 0))
        self.number_key = config.get('number_key', 'page')
        self.page_size = int(config.get('page_size', 100))
        self.page_size_key = config.get('page_size_key', 'page_size')
        self.page_limit = int(config.get('page_limit', 1000))

    def validate(self):
        if self.scheme not in ('', PAGINATION_SCHEME_ITEMS, PAGINATION_SCHEME_PAGES):
            raise ConnectorError(f"invalid pagination scheme ({self.scheme}), must be "
                                 f"{PAGINATION_SCHEME_ITEMS} or {PAGINATION_SCHEME_PAGES}")
        if self.page_size < 1 or self.page_limit < 1:
            raise ConnectorError("pagination page_size and page_limit must be positive")

    def index(self, page_number: int) -> int:
        """Query value for the zero-based page_number."""
        if self.scheme == PAGINATION_SCHEME_ITEMS:
            return self.first_index + page_number * self.page_size
        return self.first_index + page_number


class RestAPI(Source, Destination):
    """REST API source and destination."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        if not config.get('base_url'):
            raise ConnectorError("RestAPI requires a base_url")

        self.list_method = config.get('list_method', 'GET')
        self.create_method = config.get('create_method', 'POST')
        self.update_method = config.get('update_method', 'PUT')
        self.delete_method = config.get('delete_method', 'DELETE')
        self.id_attribute = config.get('id_attribute', 'id')
        self.results_json_container = config.get('results_json_container', '')
        self.compare_attribute = config.get('compare_attribute', 'email')
        self.max_retries = int(config.get('max_retries', 2))
        self.retry_wait_seconds = float(config.get('retry_wait_seconds', 1))

        self.pagination = Pagination(config.get('pagination'))
        self.pagination.validate()

        self.filters = Filters.from_config(config.get('filters'))
        try:
            self.filters.validate()
        except FilterError as e:
            raise ConnectorError(f"invalid configuration: {e}")

        client_config = dict(config)
        client_config['timeout'] = http_timeout(config.get('http_timeout_seconds'))
        self.client = HTTPClient(client_config, name=f"RestAPI {config['base_url']}")
        logger.info(f"RestAPI timeout in seconds: {self.client.timeout}")

        self._base_disable_update = self.disable_update
        self._base_disable_delete = self.disable_delete
        self.paths: List[str] = []
        self.create_path = ''
        self.update_path = ''
        self.delete_path = ''

    def for_set(self, set_config: Dict[str, Any]) -> None:
        """
        Use the paths of one sync set.

        A missing update_path or delete_path disables that operation for the set.
        """
        paths = list(set_config.get('paths') or [])
        if not paths:
            raise ConnectorError("paths is empty in sync set")

        for i, path in enumerate(paths):
            if not path:
                raise ConnectorError("a path in sync set is blank")
            if not path.startswith('/'):
                paths[i] = '/' + path

        create_path = set_config.get('create_path', '')
        if create_path and not create_path.startswith('/'):
            create_path = '/' + create_path

        update_path = set_config.get('update_path', '')
        delete_path = set_config.get('delete_path', '')
        try:
            update_path = parse_path_template(update_path) if update_path else ''
        except ConnectorError as e:
            raise ConnectorError(f"invalid update_path: {e}")
        try:
            delete_path = parse_path_template(delete_path) if delete_path else ''
        except ConnectorError as e:
            raise ConnectorError(f"invalid delete_path: {e}")

        self.paths = paths
        self.create_path = create_path
        self.update_path = update_path
        self.delete_path = delete_path
        self.disable_update = self._base_disable_update or not update_path
        self.disable_delete = self._base_disable_delete or not delete_path

    def list_users(self, desired_attrs: List[str]) -> List[Person]:
        """
        Fetch every configured path concurrently and return the filtered people.

        Raises:
            SyncError: If any page request fails
        """
        attributes = list(desired_attrs)
        for extra in [self.id_attribute, self.compare_attribute] + self.filters.attributes():
            if extra and extra not in attributes:
                attributes.append(extra)

        with ThreadPoolExecutor(max_workers=max(1, len(self.paths))) as executor:
            futures = [executor.submit(self._list_users_for_path, attributes, path) for path in self.paths]

        people = []
        errors = []
        for future in futures:
            try:
                people.extend(future.result())
            except HTTPError as e:
                errors.append(e)

        if errors:
            transient = all(is_transient_status(e.status_code) for e in errors)
            raise SyncError(f"errors listing users from {self.client.base_url}: "
                            f"{', '.join(str(e) for e in errors)}", send_alert=not transient)

        try:
            return self.filters.apply(people)
        except FilterError as e:
            raise SyncError(f"filter failure: {e}")

    def _list_users_for_path(self, attributes: List[str], path: str) -> List[Person]:
        if not self.pagination.scheme:
            return self._request_page(attributes, path)

        people = []
        batch_counter = 0
        for page_number in range(self.pagination.page_limit):
            url = add_params_to_url(path, [
                (self.pagination.number_key, str(self.pagination.index(page_number))),
                (self.pagination.page_size_key, str(self.pagination.page_size)),
            ])

            page = self._request_page(attributes, url)
            if not page:
                break
            people.extend(page)

            batch_counter += 1
            if batch_counter >= self.batch_size:
                logger.info(f"list users waiting {self.batch_delay_seconds} seconds for rate limit")
                time.sleep(self.batch_delay_seconds)
                batch_counter = 0

        return people

    def _request_page(self, attributes: List[str], path: str) -> List[Person]:
        try:
            data = retry_call(
                self.client.request,
                args=(self.list_method, path),
                max_attempts=self.max_retries + 1,
                delay=self.retry_wait_seconds,
                exceptions=(HTTPError,),
                should_retry=is_retryable_error,
                on_retry=create_retry_callback(f"List {path}")
            )
        except MaxRetriesExceeded as e:
            raise e.last_exception

        if self.results_json_container:
            records = get_path(data, self.results_json_container)
        else:
            records = data

        if not isinstance(records, list):
            raise HTTPError(f"expected a list of people at '{self.results_json_container or 'root'}' of {path}")

        return self.people_from_results(records, attributes)

    def people_from_results(self, records: List[Any], attributes: List[str]) -> List[Person]:
        people = []
        for record in records:
            person = Person()
            for key in attributes:
                value = get_path(record, key)
                if value is _MISSING or value is None:
                    continue

                if isinstance(value, list):
                    if not value or value[0] is None:
                        continue
                    if not isinstance(value[0], str):
                        logger.warning(f"not a string, attribute={key}: {value[0]!r}")
                        continue
                    value = value[0]

                person.attributes[key] = format_value(value)

            person.compare_value = person.attributes.get(self.compare_attribute, '')
            if not person.compare_value:
                continue

            person.id = person.attributes.get(self.id_attribute, '')
            people.append(person)

        return people

    def create_person(self, person: Person) -> None:
        self.client.request(self.create_method, self.create_path, attributes_to_json(person.attributes))

    def update_person(self, person: Person) -> None:
        path = self.update_path.replace('{id}', person.id, 1)
        self.client.request(self.update_method, path, attributes_to_json(person.attributes))

    def delete_person(self, person: Person) -> None:
        path = self.delete_path.replace('{id}', person.id, 1)
        self.client.request(self.delete_method, path)
