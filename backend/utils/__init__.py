"""
Utility functions and decorators.
"""

from .error_handlers import handle_api_errors, to_http_exception
from .logging_utils import configure_logging, JobLogAdapter

__all__ = ["handle_api_errors", "to_http_exception", "configure_logging", "JobLogAdapter"]
