"""
Change set computation between source and destination people.

This module contains the comparison rules and the three-way partition into
people to create, update and delete.
"""

import logging
import threading
from typing import Dict, List, Optional

from people_sync.person import Person

logger = logging.getLogger(__name__)

VERBOSITY_LOW = 0
VERBOSITY_MEDIUM = 5
VERBOSITY_HIGH = 10


class ChangeSet:
    """People to create, update and delete in the destination."""

    def __init__(self, create: Optional[List[Person]] = None, update: Optional[List[Person]] = None,
                 delete: Optional[List[Person]] = None):
        self.create = create if create is not None else []
        self.update = update if update is not None else []
        self.delete = delete if delete is not None else []

    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)

    def __eq__(self, other):
        if not isinstance(other, ChangeSet):
            return NotImplemented
        return (self.create == other.create and
                self.update == other.update and
                self.delete == other.delete)

    def __repr__(self):
        return f"ChangeSet(create={self.create!r}, update={self.update!r}, delete={self.delete!r})"


class ChangeResults:
    """
    Counters of successful writes, safe to increment from worker threads.
    """

    def __init__(self, created: int = 0, updated: int = 0, deleted: int = 0):
        self.created = created
        self.updated = updated
        self.deleted = deleted
        self._lock = threading.Lock()

    def add_created(self):
        with self._lock:
            self.created += 1

    def add_updated(self):
        with self._lock:
            self.updated += 1

    def add_deleted(self):
        with self._lock:
            self.deleted += 1

    def as_dict(self) -> Dict[str, int]:
        return {'created': self.created, 'updated': self.updated, 'deleted': self.deleted}

    def __repr__(self):
        return f"ChangeResults(created={self.created}, updated={self.updated}, deleted={self.deleted})"


def strings_are_equal(value1: str, value2: str, case_sensitive: bool) -> bool:
    if case_sensitive:
        return value1 == value2
    return value1.lower() == value2.lower()


def person_attributes_are_equal(source: Person, destination: Person, case_sensitivity: Dict[str, bool],
                                verbosity: int = VERBOSITY_MEDIUM,
                                log: Optional[logging.Logger] = None) -> bool:
    """
    Compare the source person's attributes against the destination person.

    Only keys present on the source are inspected; a key missing from the
    destination compares as an empty string.

    Args:
        source: Remapped source person
        destination: Destination person with the same compare value
        case_sensitivity: Destination attribute name -> case sensitive flag
        verbosity: At medium or above every difference is logged
        log: Logger for difference reports

    Returns:
        True if every source attribute matches
    """
    log = log or logger
    equal = True

    for key, value in source.attributes.items():
        case_sensitive = case_sensitivity.get(key, False)
        dest_value = destination.attributes.get(key, '')
        if strings_are_equal(value, dest_value, case_sensitive):
            continue

        if verbosity < VERBOSITY_MEDIUM:
            log.info(f'User: "{key}" not equal')
            return False

        log.info(f'User: "{source.compare_value}", "{key}" not equal, CaseSensitive: "{case_sensitive}", '
                 f'Source: "{value}", Dest: "{dest_value}"')
        equal = False

    return equal


def index_by_compare_value(people: List[Person]) -> Dict[str, Person]:
    """Index people by lowercased compare value, first occurrence wins."""
    index = {}
    for person in people:
        index.setdefault(person.compare_value.lower(), person)
    return index


def generate_change_set(source_people: List[Person], destination_people: List[Person],
                        case_sensitivity: Dict[str, bool], id_attribute: str = 'id',
                        verbosity: int = VERBOSITY_MEDIUM,
                        log: Optional[logging.Logger] = None) -> ChangeSet:
    """
    Partition people into create, update and delete lists.

    Source people with ``disable_changes`` are never created or updated, but
    their compare value still keeps a matching destination person off the
    delete list.

    Args:
        source_people: Remapped source people
        destination_people: People listed by the destination
        case_sensitivity: Destination attribute name -> case sensitive flag
        id_attribute: Destination attribute holding the destination id
        verbosity: Comparator logging verbosity
        log: Logger for comparator output

    Returns:
        ChangeSet preserving the input ordering within each list
    """
    log = log or logger
    change_set = ChangeSet()

    destination_index = index_by_compare_value(destination_people)
    source_index = index_by_compare_value(source_people)

    for source_person in source_people:
        if source_person.disable_changes:
            continue

        destination_person = destination_index.get(source_person.compare_value.lower())
        if destination_person is None:
            change_set.create.append(source_person)
            continue

        if not person_attributes_are_equal(source_person, destination_person, case_sensitivity,
                                           verbosity=verbosity, log=log):
            to_update = source_person.copy()
            to_update.id = destination_person.attributes.get(id_attribute, '') or destination_person.id
            change_set.update.append(to_update)

    for destination_person in destination_people:
        if destination_person.compare_value.lower() not in source_index:
            change_set.delete.append(destination_person)

    return change_set
