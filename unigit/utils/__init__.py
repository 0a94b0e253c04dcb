"""
Utility modules for providers.
"""

from .errors import (DEFAULT_EXTRACTORS, ErrorMapper, extract_reset_at,
                     is_transport_error)
from .helpers import ClientCell, sanitize_for_logging, split_full_name
from .pagination import AsyncPaginationHandler, Page
from .rest import BitbucketRESTClient, RESTClient
from .retry import (RetryPolicy, compute_delay, default_should_retry,
                    execute_with_retry, retry_with_backoff)

__all__ = [
    "ErrorMapper",
    "DEFAULT_EXTRACTORS",
    "extract_reset_at",
    "is_transport_error",
    "ClientCell",
    "split_full_name",
    "sanitize_for_logging",
    "AsyncPaginationHandler",
    "Page",
    "RESTClient",
    "BitbucketRESTClient",
    "RetryPolicy",
    "compute_delay",
    "default_should_retry",
    "execute_with_retry",
    "retry_with_backoff",
]
