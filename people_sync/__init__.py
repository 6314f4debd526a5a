"""
People Sync - Synchronize people records between a source and a destination system.

This package reads people from a configured source (REST API, LDAP directory),
remaps their attributes, computes create/update/delete differences against a
configured destination and applies them with paced concurrency.
"""

__version__ = "1.0.0"
__author__ = "People Sync Team"
