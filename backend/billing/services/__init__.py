"""Expose commonly used billing services."""

from .directory import DirectoryConfigurationError, DirectoryServiceError, KeycloakDirectoryClient
from .paddle import (
    PaddleClient,
    PaddleConfigurationError,
    PaddleServiceError,
    PaddleWebhookData,
    extract_webhook_data,
    verify_signature,
)
