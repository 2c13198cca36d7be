"""Utility functions and shared resources for codenav.

This module provides the file-system collaborators used by the session and
the resolver.
"""

import logging

# Configure logger for this module
logger = logging.getLogger(__name__)
