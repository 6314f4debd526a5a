"""
Main orchestrator for People Sync.

This module runs every enabled sync set in order, keeps run statistics,
batches sync set errors into a single alert, and provides the command line
entry point.
"""

import sys
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from people_sync.config import load_config, ConfigurationError, AppConfig
from people_sync.connectors import create_source, create_destination
from people_sync.connectors.base import ConnectorError
from people_sync.logging_setup import setup_logging, sync_set_logger
from people_sync.notifications import send_alert, send_sync_errors, send_success_summary, format_runtime
from people_sync.sync import SyncError, run_sync_set

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_SYNC_SET_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_CONNECTOR_ERROR = 3
EXIT_UNEXPECTED_ERROR = 4


class SyncOrchestrator:
    """
    Main orchestrator for source to destination synchronization.

    Runs each sync set independently: a failing sync set is recorded and the
    run moves on to the next one.
    """

    def __init__(self, config_path: Optional[str] = None, dry_run: Optional[bool] = None,
                 verbosity: Optional[int] = None):
        """
        Initialize sync orchestrator.

        Args:
            config_path: Path to configuration file
            dry_run: Force dry run mode on, overriding the configuration
            verbosity: Override the configured verbosity
        """
        self.config: Optional[AppConfig] = None
        self.config_path = config_path
        self.dry_run = dry_run
        self.verbosity = verbosity
        self.source = None
        self.destination = None

        self.sync_stats = {
            'sync_sets_processed': 0,
            'sync_sets_failed': 0,
            'sync_sets_skipped': 0,
            'total_created': 0,
            'total_updated': 0,
            'total_deleted': 0,
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0,
            'sync_set_details': {}
        }

        # Alert-worthy errors, sent as one email at the end of the run
        self.sync_errors: List[str] = []

    def run(self) -> int:
        """
        Run the complete synchronization process.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.sync_stats['start_time'] = datetime.now()

            self._load_configuration()
            setup_logging(self.config.logging)

            logger.info("Starting People Sync")
            if self.config.runtime.dry_run_mode:
                logger.info("Dry run mode: no changes will be written to the destination")

            self._create_connectors()
            self._process_sync_sets()

            self.sync_stats['end_time'] = datetime.now()
            self.sync_stats['runtime_seconds'] = (
                self.sync_stats['end_time'] - self.sync_stats['start_time']
            ).total_seconds()

            self._log_sync_summary()
            self._send_sync_errors()

            if self.sync_stats['sync_sets_failed'] > 0:
                logger.warning(f"Sync completed with {self.sync_stats['sync_sets_failed']} sync set failures")
                return EXIT_SYNC_SET_FAILED

            self._send_success_notification()
            logger.info("Sync completed successfully")
            return EXIT_SUCCESS

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR
        except ConnectorError as e:
            logger.error(f"Connector initialization error: {e}")
            self._send_alert(f"Unable to initialize connectors: {e}")
            return EXIT_CONNECTOR_ERROR
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            self._send_alert(f"Sync failed with unexpected error: {e}")
            return EXIT_UNEXPECTED_ERROR
        finally:
            self._cleanup()

    def _load_configuration(self):
        """Load and validate configuration, then apply command line overrides."""
        try:
            self.config = load_config(self.config_path)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

        if self.dry_run:
            self.config.runtime.dry_run_mode = True
        if self.verbosity is not None:
            self.config.runtime.verbosity = self.verbosity
        logger.debug("Configuration loaded successfully")

    def _create_connectors(self):
        """Build source and destination connectors from their registered types."""
        self.source = create_source(self.config.source)
        self.destination = create_destination(self.config.destination)
        logger.info(f"Source: {self.config.source['type']}, Destination: {self.config.destination['type']}")

    def _process_sync_sets(self):
        """Process each configured sync set in order."""
        sync_sets = self.config.sync_sets
        width = self.config.max_sync_set_name_length()

        for i, sync_set in enumerate(sync_sets, 1):
            log = sync_set_logger(sync_set.name, width)

            if not sync_set.enabled:
                log.info(f"({i}/{len(sync_sets)}) Sync set disabled, skipping")
                self.sync_stats['sync_sets_skipped'] += 1
                continue

            log.info(f"({i}/{len(sync_sets)}) Beginning sync set")
            self._process_sync_set(sync_set, log)

    def _process_sync_set(self, sync_set, log: logging.LoggerAdapter):
        """Run a single sync set and record its statistics."""
        set_start_time = datetime.now()
        set_stats = {
            'runtime_seconds': 0,
            'created': 0,
            'updated': 0,
            'deleted': 0,
            'status': 'failed'
        }

        try:
            try:
                self.source.for_set(sync_set.source)
                self.destination.for_set(sync_set.destination)
            except ConnectorError as e:
                self._record_failure(sync_set.name, f"invalid sync set configuration: {e}", log)
                return

            try:
                results = run_sync_set(self.source, self.destination, self.config, log=log, alert=self._send_alert)
            except SyncError as e:
                if e.send_alert:
                    self._record_failure(sync_set.name, str(e), log)
                else:
                    log.warning(f"Sync set failed: {e}")
                    self.sync_stats['sync_sets_failed'] += 1
                return
            except Exception as e:
                self._record_failure(sync_set.name, f"unexpected error: {e}", log, exc_info=True)
                return

            set_stats.update(results.as_dict())
            set_stats['status'] = 'success'
            self.sync_stats['total_created'] += results.created
            self.sync_stats['total_updated'] += results.updated
            self.sync_stats['total_deleted'] += results.deleted
            self.sync_stats['sync_sets_processed'] += 1

        finally:
            set_stats['runtime_seconds'] = (datetime.now() - set_start_time).total_seconds()
            self.sync_stats['sync_set_details'][sync_set.name] = set_stats
            log.info(f"Sync set finished in {set_stats['runtime_seconds']:.2f} seconds")

    def _record_failure(self, name: str, message: str, log: logging.LoggerAdapter, exc_info: bool = False):
        log.error(message, exc_info=exc_info)
        self.sync_errors.append(f"{name}: {message}")
        self.sync_stats['sync_sets_failed'] += 1

    def _notifications_config(self) -> Dict[str, Any]:
        return self.config.notifications if self.config else {}

    def _send_alert(self, body: str):
        """Send an immediate alert email."""
        config = self._notifications_config()
        if not config:
            return
        try:
            send_alert(body, config)
        except Exception as e:
            logger.error(f"Failed to send alert: {e}")

    def _send_sync_errors(self):
        """Send one email listing every sync set error of this run."""
        if not self.sync_errors:
            return
        try:
            send_sync_errors(self.sync_errors, self._notifications_config())
        except Exception as e:
            logger.error(f"Failed to send sync error notification: {e}")

    def _send_success_notification(self):
        """Send email notification for successful sync."""
        try:
            send_success_summary(self.sync_stats, self._notifications_config())
        except Exception as e:
            logger.error(f"Failed to send success notification: {e}")

    def _log_sync_summary(self):
        """Log final synchronization statistics."""
        stats = self.sync_stats

        logger.info("=== Sync Summary ===")
        logger.info(f"Total runtime: {format_runtime(stats['runtime_seconds'])}")
        logger.info(f"Sync sets processed: {stats['sync_sets_processed']}")
        logger.info(f"Sync sets failed: {stats['sync_sets_failed']}")
        logger.info(f"Sync sets skipped: {stats['sync_sets_skipped']}")
        logger.info(f"Total users created: {stats['total_created']}")
        logger.info(f"Total users updated: {stats['total_updated']}")
        logger.info(f"Total users deleted: {stats['total_deleted']}")

        for set_name, set_stats in stats.get('sync_set_details', {}).items():
            logger.info(f"--- {set_name}: {set_stats['status']} in {set_stats['runtime_seconds']:.2f}s, "
                        f"created {set_stats['created']}, updated {set_stats['updated']}, "
                        f"deleted {set_stats['deleted']}")

    def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the sync system.

        Loads configuration and builds both connectors without listing anyone.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        for kind, factory, connector_config in (('source', create_source, self.config.source),
                                                 ('destination', create_destination, self.config.destination)):
            try:
                connector = factory(connector_config)
                connector.close()
                health_status['checks'][kind] = {
                    'status': 'pass',
                    'message': f"{connector_config['type']} {kind} initialized successfully"
                }
            except ConnectorError as e:
                health_status['checks'][kind] = {
                    'status': 'fail',
                    'message': f'{kind.capitalize()} initialization failed: {e}'
                }
                health_status['status'] = 'unhealthy'

        notifications_config = self.config.notifications
        if notifications_config.get('enable_email', False):
            required_fields = ['smtp_server', 'email_from', 'email_to']
            missing_fields = [f for f in required_fields if not notifications_config.get(f)]
            if missing_fields:
                health_status['checks']['notifications'] = {
                    'status': 'fail',
                    'message': f'Notification configuration invalid: missing {missing_fields}'
                }
                health_status['status'] = 'unhealthy'
            else:
                health_status['checks']['notifications'] = {
                    'status': 'pass',
                    'message': 'Email notification configuration valid'
                }
        else:
            health_status['checks']['notifications'] = {
                'status': 'skip',
                'message': 'Email notifications disabled'
            }

        return health_status

    def _cleanup(self):
        """Clean up resources."""
        for connector in (self.source, self.destination):
            if connector is None:
                continue
            try:
                connector.close()
            except Exception as e:
                logger.warning(f"Error closing connector: {e}")


def main():
    """Main entry point for the application."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description='People Sync: keep a destination system in step with a source')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--dry-run', action='store_true',
                        help='Compute and log changes without applying them')
    parser.add_argument('--verbosity', '-v', type=int,
                        help='Comparison log detail: 0 low, 5 medium, 10 high')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of sync')
    parser.add_argument('--test-email', action='store_true',
                        help='Send test email notification')

    args = parser.parse_args()

    orchestrator = SyncOrchestrator(config_path=args.config, dry_run=args.dry_run or None,
                                    verbosity=args.verbosity)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    elif args.test_email:
        try:
            orchestrator._load_configuration()
        except ConfigurationError as e:
            print(f"Error testing email: {e}")
            sys.exit(1)

        from people_sync.notifications import send_test_email
        if send_test_email(orchestrator.config.notifications):
            print("Test email sent successfully")
            sys.exit(0)
        print("Failed to send test email")
        sys.exit(1)

    else:
        sys.exit(orchestrator.run())


if __name__ == "__main__":
    main()
