"""Cliente REST del ground-truth store."""

from .client import ApiError, ServerError, UploadApiClient, unwrap_rows
from .retry import RetryConfig, async_retry

__all__ = [
    "ApiError",
    "ServerError",
    "UploadApiClient",
    "unwrap_rows",
    "RetryConfig",
    "async_retry",
]
