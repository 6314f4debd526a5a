"""
Person record shared by sources, destinations and the sync engine.

A person is an open bag of string attributes keyed by destination attribute
names. Repeated sub-records from hierarchical sources (several phone numbers
of the same type, multi-valued directory attributes) are flattened into
compound keys so that no entry is lost:

    phone|work      first work phone
    phone|work~1    second work phone
"""

from typing import Dict, Iterable, Optional

DELIMITER = '|'
REPEAT_MARKER = '~'


def compound_key(prefix: str, discriminator: str = '', index: int = 0) -> str:
    """
    Build an attribute key for a repeated sub-record.

    Args:
        prefix: Attribute family, e.g. ``phone``
        discriminator: Sub-record type, e.g. ``work``; may be empty
        index: Zero-based position among entries sharing prefix and discriminator

    Returns:
        ``prefix``, ``prefix|discriminator`` or either of those followed by ``~index``
    """
    key = f"{prefix}{DELIMITER}{discriminator}" if discriminator else prefix
    if index > 0:
        key = f"{key}{REPEAT_MARKER}{index}"
    return key


def expand_repeated(prefix: str, values: Iterable[str], discriminator: str = '') -> Dict[str, str]:
    """Flatten a list of values into compound keys, skipping None entries."""
    attributes = {}
    index = 0
    for value in values:
        if value is None:
            continue
        attributes[compound_key(prefix, discriminator, index)] = str(value)
        index += 1
    return attributes


class Person:
    """One individual as seen by either side of the sync."""

    def __init__(self, compare_value: str = '', attributes: Optional[Dict[str, str]] = None,
                 id: str = '', disable_changes: bool = False):
        self.compare_value = compare_value
        self.id = id
        self.attributes = {k: v for k, v in (attributes or {}).items() if v is not None}
        self.disable_changes = disable_changes

    def get(self, key: str) -> str:
        """Attribute value, or empty string when missing."""
        return self.attributes.get(key, '')

    def copy(self) -> 'Person':
        return Person(self.compare_value, dict(self.attributes), self.id, self.disable_changes)

    def __eq__(self, other):
        if not isinstance(other, Person):
            return NotImplemented
        return (self.compare_value == other.compare_value and
                self.id == other.id and
                self.attributes == other.attributes and
                self.disable_changes == other.disable_changes)

    def __repr__(self):
        return (f"Person(compare_value={self.compare_value!r}, id={self.id!r}, "
                f"attributes={self.attributes!r}, disable_changes={self.disable_changes})")
