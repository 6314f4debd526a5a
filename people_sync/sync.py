"""
Lifecycle of a single sync set.

``run_sync_set`` fetches source people, remaps them to destination
attributes, fetches destination people, computes the change set and then
either reports it (dry run) or applies it through the destination.
"""

import logging
from typing import Any, Callable, List, Optional

from people_sync.changeset import ChangeResults, ChangeSet, generate_change_set
from people_sync.events import EventLog
from people_sync.mapping import (
    get_case_sensitivity_list,
    get_destination_attributes,
    get_source_attributes,
    remap_to_destination_attributes,
)
from people_sync.person import Person

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """
    Sync set level failure.

    ``send_alert`` is False for expected, transient conditions that should be
    logged without emailing anyone.
    """

    def __init__(self, message: str, send_alert: bool = True):
        super().__init__(message)
        self.send_alert = send_alert


def _list_people(connector, attributes: List[str], side: str) -> List[Person]:
    try:
        return connector.list_users(attributes)
    except SyncError:
        raise
    except Exception as e:
        raise SyncError(f"error listing people from {side}: {e}")


def run_sync_set(source, destination, config, log: Optional[logging.Logger] = None,
                 alert: Optional[Callable[[str], Any]] = None) -> ChangeResults:
    """
    Run one sync set from fetch to apply.

    Args:
        source: Source connector already configured for this sync set
        destination: Destination connector already configured for this sync set
        config: Application configuration (attribute map and runtime flags)
        log: Logger for this sync set
        alert: Callable sending an email alert for alert-level events

    Returns:
        Counts of applied changes; all zero in dry run mode

    Raises:
        SyncError: If either side cannot be listed or the source is empty
    """
    log = log or logger
    attribute_map = config.attribute_map

    source_people = _list_people(source, get_source_attributes(attribute_map), 'source')
    if not source_people:
        raise SyncError("no people found in source")
    log.info(f"    Found {len(source_people)} people in source")

    source_people = remap_to_destination_attributes(source_people, attribute_map, log=log)

    destination_people = _list_people(destination, get_destination_attributes(attribute_map), 'destination')
    log.info(f"    Found {len(destination_people)} people in destination")

    change_set = generate_change_set(
        source_people,
        destination_people,
        get_case_sensitivity_list(attribute_map),
        id_attribute=getattr(destination, 'id_attribute', 'id'),
        verbosity=config.runtime.verbosity,
        log=log
    )

    log.info(f"ChangeSet Plans: Create {len(change_set.create)}, "
             f"Update {len(change_set.update)}, Delete {len(change_set.delete)}")

    if config.runtime.dry_run_mode:
        log.info("Dry run mode enabled. Change set details follow:")
        print_change_set(change_set, log)
        return ChangeResults()

    with EventLog(log=log, alert=alert) as event_log:
        results = destination.apply_change_set(change_set, event_log)

    if event_log.error_count():
        log.warning(f"{event_log.error_count()} change(s) failed, see errors above")

    log.info(f"Sync results: {results.created} users added, {results.updated} users updated, "
             f"{results.deleted} users removed")
    return results


def print_change_set(change_set: ChangeSet, log: Optional[logging.Logger] = None):
    log = log or logger
    for label, people in (('created', change_set.create),
                          ('updated', change_set.update),
                          ('deleted', change_set.delete)):
        log.info(f"Users to be {label}: {len(people)} ...")
        verb = label[:-1]
        for i, person in enumerate(people, 1):
            log.info(f"  {verb} {i}) {person.compare_value}")
