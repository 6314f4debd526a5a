"""
Source and destination connector interfaces.

The sync engine only talks to connectors through the Source and Destination
interfaces, which share the ``Connector`` lifecycle. Each vendor integration
is an independent adapter registered by type name in ``people_sync.connectors``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from people_sync.batch import BatchTimer
from people_sync.changeset import ChangeResults, ChangeSet
from people_sync.events import ERR, WARNING, EventLogItem
from people_sync.person import Person
from people_sync.retry import is_transient_status

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_SECONDS = 3


class ConnectorError(Exception):
    """Raised when a connector is misconfigured or cannot be initialized."""
    pass


class Connector(ABC):
    """Configuration and lifecycle shared by sources and destinations."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.type = self.config.get('type', type(self).__name__)

    @abstractmethod
    def for_set(self, set_config: Dict[str, Any]) -> None:
        """
        Reconfigure this connector for one sync set.

        Must be safe to call repeatedly with different sync sets.

        Raises:
            ConnectorError: If the sync set configuration is invalid
        """
        pass

    @abstractmethod
    def list_users(self, desired_attrs: List[str]) -> List[Person]:
        """
        Return a complete snapshot of people with the requested attributes.

        Raises:
            SyncError: For failures the caller should report
        """
        pass

    def close(self) -> None:
        """Release any held connections."""
        pass


class Source(Connector):
    """A system people are read from."""


class Destination(Connector):
    """
    A system people are written to.

    ``apply_change_set`` runs one worker thread per person and operation,
    paced by a shared ``BatchTimer``; subclasses implement the single-person
    write methods and raise on failure.
    """

    supports_delete = True
    id_attribute = 'id'

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.disable_add = bool(self.config.get('disable_add', False))
        self.disable_update = bool(self.config.get('disable_update', False))
        self.disable_delete = bool(self.config.get('disable_delete', False))
        self.batch_size = int(self.config.get('batch_size') or DEFAULT_BATCH_SIZE)
        self.batch_delay_seconds = int(self.config.get('batch_delay_seconds') or DEFAULT_BATCH_DELAY_SECONDS)

    @abstractmethod
    def create_person(self, person: Person) -> None:
        pass

    @abstractmethod
    def update_person(self, person: Person) -> None:
        pass

    def delete_person(self, person: Person) -> None:
        raise NotImplementedError(f"{self.type} does not support deleting people")

    def apply_change_set(self, change_set: ChangeSet, event_log) -> ChangeResults:
        """
        Apply creates, updates and deletes concurrently.

        Returns only after every dispatched worker has finished. Every attempt,
        successful or not, is reported to ``event_log``.
        """
        results = ChangeResults()
        batch_timer = BatchTimer(self.batch_size, self.batch_delay_seconds)
        workers = []

        operations = [
            ('Creation', self.disable_add, change_set.create, self.create_person, 'Create', results.add_created),
            ('Update', self.disable_update, change_set.update, self.update_person, 'Update', results.add_updated),
            ('Deletion', self.disable_delete or not self.supports_delete, change_set.delete,
             self.delete_person, 'Delete', results.add_deleted),
        ]

        for label, disabled, people, operation, verb, on_success in operations:
            if disabled:
                if people:
                    logger.info(f"{label} is disabled.")
                continue

            for person in people:
                batch_timer.wait_on_batch()
                worker = threading.Thread(
                    target=self._run_operation,
                    args=(operation, verb, person, on_success, event_log),
                    name=f"{verb.lower()}-{person.compare_value}"
                )
                worker.start()
                workers.append(worker)

        for worker in workers:
            worker.join()

        return results

    def _run_operation(self, operation: Callable[[Person], None], verb: str, person: Person,
                       on_success: Callable[[], None], event_log):
        try:
            operation(person)
        except Exception as e:
            level = WARNING if is_transient_status(getattr(e, 'status_code', None)) else ERR
            event_log.put(EventLogItem(f"{verb} {person.compare_value} failed: {e}", level))
            return

        event_log.info(f"{verb} {person.compare_value}")
        on_success()


class EmptySource(Source):
    """A source with nobody in it."""

    def for_set(self, set_config: Dict[str, Any]) -> None:
        pass

    def list_users(self, desired_attrs: List[str]) -> List[Person]:
        return []


class EmptyDestination(Destination):
    """A destination with nobody in it that accepts every write."""

    supports_delete = False

    def for_set(self, set_config: Dict[str, Any]) -> None:
        pass

    def list_users(self, desired_attrs: List[str]) -> List[Person]:
        return []

    def create_person(self, person: Person) -> None:
        pass

    def update_person(self, person: Person) -> None:
        pass
