"""
Email notification utilities for People Sync.

This module provides functionality to send email alerts for sync failures,
alert-level events and, optionally, run summaries.
"""

import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, List, Any
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = 'People Sync Alert'


def _open_smtp(config: Dict[str, Any]) -> smtplib.SMTP:
    smtp_server = config.get('smtp_server')
    smtp_port = config.get('smtp_port', 587)
    smtp_username = config.get('smtp_username')
    smtp_password = config.get('smtp_password')
    timeout = config.get('timeout', 30)

    if smtp_port == 465:
        server = smtplib.SMTP_SSL(smtp_server, smtp_port, timeout=timeout)
    else:
        server = smtplib.SMTP(smtp_server, smtp_port, timeout=timeout)
        if config.get('smtp_tls', True):
            server.starttls()

    if smtp_username and smtp_password:
        server.login(smtp_username, smtp_password)
    return server


def send_email(subject: str, body: str, config: Dict[str, Any]) -> bool:
    """
    Send email notification using SMTP.

    Each recipient gets a separate message so one bad address does not
    prevent delivery to the others.

    Args:
        subject: Email subject line
        body: Email body content
        config: Notification configuration dictionary

    Returns:
        True if every recipient was sent the email, False otherwise
    """
    if not config.get('enable_email', True):
        logger.debug("Email notifications disabled")
        return False

    smtp_server = config.get('smtp_server')
    email_to = config.get('email_to', [])
    email_from = config.get('email_from', config.get('smtp_username'))

    if not smtp_server:
        logger.error("SMTP server not configured")
        return False

    if not email_to:
        logger.error("No email recipients configured")
        return False

    # Ensure email_to is a list
    if isinstance(email_to, str):
        email_to = [email_to]

    logger.debug(f"Sending email to {len(email_to)} recipients via {smtp_server}")

    try:
        server = _open_smtp(config)
    except Exception as e:
        logger.error(f"Failed to send email notification: {e}")
        return False

    last_error = None
    bad_recipients = []
    try:
        for address in email_to:
            msg = MIMEMultipart()
            msg['From'] = email_from
            msg['To'] = address
            msg['Subject'] = subject
            msg.attach(MIMEText(body, 'plain', config.get('charset', 'utf-8')))

            try:
                server.sendmail(email_from, [address], msg.as_string())
                logger.info(f"alert message sent to {address}")
            except smtplib.SMTPException as e:
                last_error = e
                bad_recipients.append(address)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException as e:
            logger.debug(f"Error closing SMTP connection: {e}")

    if last_error is not None:
        logger.error(f"Error sending email from '{email_from}' to '{', '.join(bad_recipients)}': {last_error}")
        return False

    logger.info(f"Email notification sent successfully: {subject}")
    return True


def send_alert(body: str, config: Dict[str, Any]) -> bool:
    """
    Send an alert with the configured subject.

    Args:
        body: Alert text
        config: Notification configuration

    Returns:
        True if notification sent successfully
    """
    if not config.get('email_on_failure', True):
        logger.debug("Failure email notifications disabled")
        return False

    return send_email(config.get('subject', DEFAULT_SUBJECT), body, config)


def send_sync_errors(errors: List[str], config: Dict[str, Any]) -> bool:
    """Send the batched list of sync-set errors collected during a run."""
    if not errors:
        return False
    return send_alert("Sync error(s):\n" + "\n".join(errors), config)


def send_success_summary(
    sync_stats: Dict[str, Any],
    config: Dict[str, Any]
) -> bool:
    """
    Send summary notification for successful sync.

    Args:
        sync_stats: Dictionary containing sync statistics
        config: Notification configuration

    Returns:
        True if notification sent successfully
    """
    if not config.get('email_on_success', False):
        logger.debug("Success email notifications disabled")
        return False

    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    body_lines = [
        "People Sync Summary Report",
        f"Timestamp: {timestamp}",
        "",
        "Overall Statistics:",
        f"  Total runtime: {format_runtime(sync_stats.get('runtime_seconds', 0))}",
        f"  Sync sets processed: {sync_stats.get('sync_sets_processed', 0)}",
        f"  Sync sets failed: {sync_stats.get('sync_sets_failed', 0)}",
        f"  Users created: {sync_stats.get('total_created', 0)}",
        f"  Users updated: {sync_stats.get('total_updated', 0)}",
        f"  Users deleted: {sync_stats.get('total_deleted', 0)}",
        ""
    ]

    set_details = sync_stats.get('sync_set_details', {})
    if set_details:
        body_lines.append("Sync Set Details:")
        for set_name, set_stats in set_details.items():
            body_lines.extend([
                f"  {set_name}:",
                f"    Runtime: {set_stats.get('runtime_seconds', 0):.2f}s",
                f"    Created: {set_stats.get('created', 0)}",
                f"    Updated: {set_stats.get('updated', 0)}",
                f"    Deleted: {set_stats.get('deleted', 0)}",
                ""
            ])

    body_lines.append("This is an automated message from People Sync.")

    return send_email("People Sync: Successful Completion", '\n'.join(body_lines), config)


def format_runtime(runtime_seconds: float) -> str:
    if runtime_seconds > 60:
        minutes = int(runtime_seconds // 60)
        seconds = runtime_seconds % 60
        return f"{minutes}m {seconds:.1f}s"
    return f"{runtime_seconds:.2f} seconds"


def send_test_email(config: Dict[str, Any]) -> bool:
    """
    Test email notification configuration by sending a test email.

    Args:
        config: Notification configuration to test

    Returns:
        True if test email sent successfully
    """
    email_to = config.get('email_to', [])
    if isinstance(email_to, str):
        email_to = [email_to]

    test_subject = "People Sync: Configuration Test"
    test_body = """This is a test email from People Sync.

If you receive this message, your email notification configuration is working correctly.

Test details:
- SMTP Server: {}
- SMTP Port: {}
- From Address: {}
- Recipients: {}

This is an automated test message.""".format(
        config.get('smtp_server', 'not configured'),
        config.get('smtp_port', 'not configured'),
        config.get('email_from', 'not configured'),
        ', '.join(email_to)
    )

    result = send_email(test_subject, test_body, config)
    if result:
        logger.info("Test notification sent successfully")
    else:
        logger.error("Test notification failed")
    return result

