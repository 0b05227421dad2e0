"""
Centralized logging for streamscribe.

Provides structured JSON logging with service tagging,
log rotation, and one-time native log redirection.
"""

from streamscribe.logging.setup import get_logger, install_logging_hooks, setup_logging

__all__ = ["setup_logging", "get_logger", "install_logging_hooks"]
