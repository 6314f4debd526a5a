"""
Regex filters used by sources to drop out-of-scope people before diffing.
"""

import re
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class FilterError(Exception):
    """Raised when a filter is invalid or cannot be evaluated."""
    pass


class Filter:
    """
    A single attribute filter.

    A person passes the filter when the attribute value matches the expression,
    or, for an ``exclude`` filter, when it does not match.
    """

    def __init__(self, attribute: str, expression: str, exclude: bool = False):
        self.attribute = attribute
        self.expression = expression
        self.exclude = exclude
        self._compiled = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'Filter':
        return cls(
            attribute=config.get('attribute', ''),
            expression=config.get('expression', ''),
            exclude=bool(config.get('exclude', False))
        )

    def compile(self):
        try:
            self._compiled = re.compile(self.expression)
        except re.error as e:
            raise FilterError(f"invalid filter expression {self.expression}: {e}")

    def matches(self, value: str) -> bool:
        if self._compiled is None:
            self.compile()
        return self.exclude != bool(self._compiled.search(value))


class Filters:
    """An ordered set of filters that must all pass."""

    def __init__(self, filters: Optional[List[Filter]] = None):
        self.filters = list(filters or [])

    @classmethod
    def from_config(cls, config: Optional[List[Dict[str, Any]]]) -> 'Filters':
        return cls([Filter.from_config(f) for f in (config or [])])

    def validate(self):
        """
        Compile every filter expression.

        Raises:
            FilterError: On the first expression that does not compile
        """
        for f in self.filters:
            f.compile()

    def attributes(self) -> List[str]:
        return [f.attribute for f in self.filters]

    def matches(self, person) -> bool:
        """
        Check whether a person passes all filters.

        Raises:
            FilterError: If a filtered attribute is missing from the person
        """
        for f in self.filters:
            if f.attribute not in person.attributes:
                raise FilterError(f"attribute {f.attribute} not present in person {person.compare_value}")
            if not f.matches(person.attributes[f.attribute]):
                return False
        return True

    def apply(self, people: list) -> list:
        """Return only the people passing all filters."""
        if not self.filters:
            return list(people)

        results = []
        for person in people:
            if self.matches(person):
                results.append(person)
        logger.debug(f"Filters kept {len(results)} of {len(people)} people")
        return results

    def __len__(self):
        return len(self.filters)

    def __iter__(self):
        return iter(self.filters)
