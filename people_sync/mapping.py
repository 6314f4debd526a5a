"""
Attribute mapping from source attribute names to destination attribute names.

This module turns raw source people into people carrying only destination
keyed attributes, applying required-field checks and regex substitutions
declared in the ``attribute_map`` configuration.
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional

from people_sync.person import Person

logger = logging.getLogger(__name__)


class AttributeMapError(Exception):
    """Raised when an attribute map entry is invalid."""
    pass


class AttributeMap:
    """
    One attribute mapping entry.

    ``expression`` and ``replace`` describe a regex substitution applied to the
    source value before it is compared or written. ``replace`` follows Python
    ``re`` template syntax (``\\1``, ``\\g<name>``).
    """

    def __init__(self, source: str = '', destination: str = '', required: bool = False,
                 case_sensitive: bool = False, expression: str = '', replace: str = ''):
        self.source = source
        self.destination = destination
        self.required = required
        self.case_sensitive = case_sensitive
        self.expression = expression or ''
        self.replace = replace or ''
        self._pattern = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AttributeMap':
        return cls(
            source=config.get('source', ''),
            destination=config.get('destination', ''),
            required=bool(config.get('required', False)),
            case_sensitive=bool(config.get('case_sensitive', False)),
            expression=config.get('expression', ''),
            replace=config.get('replace', '')
        )

    def compile(self):
        """
        Compile the substitution expression, if any, and check the replace
        template against it.

        Raises:
            AttributeMapError: If the expression is not a valid regular expression
                or the replace template refers to a group the expression lacks
        """
        if not self.expression:
            self._pattern = None
            return
        try:
            pattern = re.compile(self.expression)
        except re.error as e:
            raise AttributeMapError(
                f"invalid regular expression ({self.expression!r}) on attribute {self.destination}: {e}")

        # re parses a non-literal template before searching, even on an empty string
        try:
            pattern.sub(self.replace, '')
        except (re.error, IndexError) as e:
            raise AttributeMapError(
                f"invalid replace template ({self.replace!r}) on attribute {self.destination}: {e}")
        self._pattern = pattern

    def transform(self, value: str) -> str:
        """Apply the configured substitution to a value."""
        if not self.expression:
            return value
        if self._pattern is None:
            self.compile()
        return replace_all(self._pattern, value, self.replace)

    def __repr__(self):
        return f"AttributeMap(source={self.source!r}, destination={self.destination!r})"


def replace_all(pattern, value: str, replacement: str) -> str:
    """
    Replace every match of pattern in value.

    Unlike ``re.sub``, an empty match directly following a previous match is
    skipped, so ``.*`` against ``John`` yields a single replacement.
    """
    parts = []
    last_end = 0
    previous_end = None
    for match in pattern.finditer(value):
        if match.start() == match.end() and match.start() == previous_end:
            continue
        parts.append(value[last_end:match.start()])
        parts.append(match.expand(replacement))
        last_end = previous_end = match.end()
    parts.append(value[last_end:])
    return ''.join(parts)


def load_attribute_map(config: List[Dict[str, Any]]) -> List[AttributeMap]:
    """
    Build and compile attribute map entries from configuration.

    Raises:
        AttributeMapError: If any entry lacks a destination or has a bad expression
    """
    attribute_map = []
    errors = []
    for i, entry in enumerate(config or []):
        attr_map = AttributeMap.from_config(entry)
        if not attr_map.destination:
            errors.append(f"attribute_map[{i}] is missing a destination")
            continue
        try:
            attr_map.compile()
        except AttributeMapError as e:
            errors.append(f"attribute_map[{i}]: {e}")
            continue
        attribute_map.append(attr_map)

    if errors:
        raise AttributeMapError('; '.join(errors))
    return attribute_map


def remap_to_destination_attributes(source_people: List[Person], attribute_map: List[AttributeMap],
                                    log: Optional[logging.Logger] = None) -> List[Person]:
    """
    Return new Person instances carrying only destination keyed attributes.

    A person missing a required source attribute keeps the rest of its record
    but has ``disable_changes`` set so it is never created or updated.

    Args:
        source_people: People as listed by the source
        attribute_map: Compiled attribute map entries
        log: Logger for missing attribute reports

    Returns:
        One remapped person per source person, in the same order
    """
    log = log or logger
    people_for_destination = []

    for person in source_people:
        attrs = {}
        disable_changes = False

        for attr_map in attribute_map:
            if attr_map.source in person.attributes:
                attrs[attr_map.destination] = attr_map.transform(person.attributes[attr_map.source])
            elif attr_map.required:
                log.warning(f"user missing attribute {attr_map.source}. "
                            f"Rest of data: {json.dumps(attrs, sort_keys=True)}")
                disable_changes = True

        people_for_destination.append(Person(
            compare_value=person.compare_value,
            attributes=attrs,
            disable_changes=disable_changes
        ))

    return people_for_destination


def get_source_attributes(attribute_map: List[AttributeMap]) -> List[str]:
    return [attr.source for attr in attribute_map if attr.source]


def get_destination_attributes(attribute_map: List[AttributeMap]) -> List[str]:
    return [attr.destination for attr in attribute_map if attr.destination]


def get_case_sensitivity_list(attribute_map: List[AttributeMap]) -> Dict[str, bool]:
    """Map each destination attribute to its case sensitivity flag."""
    return {attr.destination: attr.case_sensitive for attr in attribute_map}
