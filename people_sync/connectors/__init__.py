"""
Connector registry.

Sources and destinations are looked up by the ``type`` string from
configuration and imported lazily, so a deployment only needs the libraries
of the connectors it actually uses.
"""

import importlib
import logging
from typing import Any, Dict

from people_sync.connectors.base import ConnectorError, Destination, Source

logger = logging.getLogger(__name__)

SOURCE_TYPES = {
    'RestAPI': 'people_sync.connectors.restapi:RestAPI',
    'LDAP': 'people_sync.connectors.ldap_directory:LDAPSource',
    'Empty': 'people_sync.connectors.base:EmptySource',
}

DESTINATION_TYPES = {
    'RestAPI': 'people_sync.connectors.restapi:RestAPI',
    'Empty': 'people_sync.connectors.base:EmptyDestination',
}


def _load_class(registry: Dict[str, str], connector_type: str, base: type, kind: str) -> type:
    target = registry.get(connector_type)
    if not target:
        raise ConnectorError(f"unrecognized {kind} type: {connector_type}")

    module_name, class_name = target.split(':')
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConnectorError(f"Failed to import {kind} module {module_name}: {e}")

    connector_class = getattr(module, class_name, None)
    if not (isinstance(connector_class, type) and issubclass(connector_class, base)):
        raise ConnectorError(f"No {base.__name__} subclass {class_name} found in module {module_name}")
    return connector_class


def _create(registry: Dict[str, str], config: Dict[str, Any], base: type, kind: str):
    connector_type = config.get('type', '')
    connector_class = _load_class(registry, connector_type, base, kind)
    try:
        connector = connector_class(config)
    except ConnectorError:
        raise
    except Exception as e:
        raise ConnectorError(f"Unable to initialize {connector_type} {kind}, error: {e}")

    logger.debug(f"Initialized {connector_type} {kind}")
    return connector


def create_source(config: Dict[str, Any]) -> Source:
    """
    Build the source connector named by ``config['type']``.

    Raises:
        ConnectorError: If the type is unknown or the connector rejects its configuration
    """
    return _create(SOURCE_TYPES, config, Source, 'source')


def create_destination(config: Dict[str, Any]) -> Destination:
    """
    Build the destination connector named by ``config['type']``.

    Raises:
        ConnectorError: If the type is unknown or the connector rejects its configuration
    """
    return _create(DESTINATION_TYPES, config, Destination, 'destination')
