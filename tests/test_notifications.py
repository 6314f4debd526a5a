#!/usr/bin/env python3
"""
Unit tests for email notifications.

smtplib is mocked so no mail is sent.
"""

import os
import sys
import smtplib
import unittest
from unittest.mock import MagicMock, patch

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from people_sync.notifications import (
    format_runtime,
    send_alert,
    send_email,
    send_success_summary,
    send_sync_errors,
    send_test_email,
)


class TestSendEmail(unittest.TestCase):
    """Test cases for SMTP delivery."""

    def setUp(self):
        self.config = {
            'enable_email': True,
            'smtp_server': 'smtp.example.com',
            'smtp_port': 587,
            'smtp_tls': True,
            'smtp_username': 'sync@example.com',
            'smtp_password': 'pw',
            'email_from': 'sync@example.com',
            'email_to': ['ops@example.com', 'it@example.com'],
            'subject': 'Sync trouble'
        }
        patcher = patch('people_sync.notifications.smtplib.SMTP')
        self.mock_smtp_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.server = MagicMock()
        self.mock_smtp_class.return_value = self.server

    def test_sends_one_message_per_recipient(self):
        self.assertTrue(send_email('Subject', 'Body', self.config))

        self.mock_smtp_class.assert_called_once_with('smtp.example.com', 587, timeout=30)
        self.server.starttls.assert_called_once()
        self.server.login.assert_called_once_with('sync@example.com', 'pw')
        recipients = [c[0][1] for c in self.server.sendmail.call_args_list]
        self.assertEqual(recipients, [['ops@example.com'], ['it@example.com']])
        self.server.quit.assert_called_once()

    def test_bad_recipient_does_not_block_others(self):
        self.server.sendmail.side_effect = [smtplib.SMTPRecipientsRefused({}), {}]

        with self.assertLogs('people_sync.notifications', level='ERROR') as captured:
            result = send_email('Subject', 'Body', self.config)

        self.assertFalse(result)
        self.assertEqual(self.server.sendmail.call_count, 2)
        self.assertIn('ops@example.com', captured.output[0])

    def test_ssl_port(self):
        with patch('people_sync.notifications.smtplib.SMTP_SSL') as mock_ssl:
            self.config['smtp_port'] = 465
            send_email('Subject', 'Body', self.config)

        mock_ssl.assert_called_once_with('smtp.example.com', 465, timeout=30)
        self.mock_smtp_class.assert_not_called()

    def test_disabled(self):
        self.config['enable_email'] = False

        self.assertFalse(send_email('Subject', 'Body', self.config))
        self.mock_smtp_class.assert_not_called()

    def test_missing_server_or_recipients(self):
        self.assertFalse(send_email('S', 'B', dict(self.config, smtp_server='')))
        self.assertFalse(send_email('S', 'B', dict(self.config, email_to=[])))

    def test_connection_failure(self):
        self.mock_smtp_class.side_effect = OSError('connection refused')

        self.assertFalse(send_email('Subject', 'Body', self.config))

    def test_single_recipient_string(self):
        self.config['email_to'] = 'ops@example.com'

        self.assertTrue(send_email('Subject', 'Body', self.config))
        self.assertEqual(self.server.sendmail.call_count, 1)


class TestNotificationHelpers(unittest.TestCase):

    def setUp(self):
        self.config = {'subject': 'Sync trouble', 'email_on_failure': True, 'email_on_success': False}

    @patch('people_sync.notifications.send_email', return_value=True)
    def test_alert_uses_configured_subject(self, mock_send):
        self.assertTrue(send_alert('body', self.config))
        mock_send.assert_called_once_with('Sync trouble', 'body', self.config)

    @patch('people_sync.notifications.send_email')
    def test_alert_respects_email_on_failure(self, mock_send):
        self.config['email_on_failure'] = False

        self.assertFalse(send_alert('body', self.config))
        mock_send.assert_not_called()

    @patch('people_sync.notifications.send_email', return_value=True)
    def test_sync_errors_batched(self, mock_send):
        send_sync_errors(['staff: no people found in source', 'faculty: HTTP 500'], self.config)

        mock_send.assert_called_once_with(
            'Sync trouble', 'Sync error(s):\nstaff: no people found in source\nfaculty: HTTP 500', self.config)

    @patch('people_sync.notifications.send_email')
    def test_no_errors_no_email(self, mock_send):
        self.assertFalse(send_sync_errors([], self.config))
        mock_send.assert_not_called()

    @patch('people_sync.notifications.send_email', return_value=True)
    def test_success_summary_opt_in(self, mock_send):
        stats = {
            'runtime_seconds': 75,
            'sync_sets_processed': 1,
            'total_created': 2,
            'sync_set_details': {'staff': {'runtime_seconds': 1.5, 'created': 2}}
        }

        self.assertFalse(send_success_summary(stats, self.config))
        mock_send.assert_not_called()

        self.config['email_on_success'] = True
        self.assertTrue(send_success_summary(stats, self.config))
        body = mock_send.call_args[0][1]
        self.assertIn('Total runtime: 1m 15.0s', body)
        self.assertIn('  staff:', body)
        self.assertIn('Created: 2', body)

    @patch('people_sync.notifications.send_email', return_value=True)
    def test_test_email(self, mock_send):
        config = {'smtp_server': 'smtp.example.com', 'email_to': 'ops@example.com'}

        self.assertTrue(send_test_email(config))
        self.assertIn('ops@example.com', mock_send.call_args[0][1])

    def test_format_runtime(self):
        self.assertEqual(format_runtime(12.345), '12.35 seconds')
        self.assertEqual(format_runtime(125), '2m 5.0s')


if __name__ == '__main__':
    unittest.main()
