"""
Google Cloud credential utilities for templit.

This module provides utilities for:
1. Resolving credentials (service account key file or Application Default Credentials)
2. Checking that the resolved credentials can mint an access token
"""

import logging

import google.auth
from google.auth.credentials import Credentials
from google.auth.exceptions import DefaultCredentialsError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from utils.config import GcpConfig

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def get_credentials(config: GcpConfig | None = None) -> Credentials:
    """
    Resolve credentials for the configured project.

    Args:
        config: GCP configuration. If not provided, will be loaded from
               environment variables.

    Returns:
        Credentials scoped to cloud-platform

    Raises:
        ValueError: If no credentials can be found or the key file is invalid
    """
    if config is None:
        config = GcpConfig()  # type: ignore[call-arg]

    if config.credentials_file:
        logger.info(f"Loading service account credentials from {config.credentials_file}")
        try:
            return service_account.Credentials.from_service_account_file(
                config.credentials_file, scopes=[CLOUD_PLATFORM_SCOPE]
            )
        except (ValueError, OSError) as e:
            logger.error(f"Invalid service account key file: {e}", exc_info=True)
            raise ValueError(f"Invalid service account key file: {e}") from e

    try:
        credentials, detected_project = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError as e:
        logger.error(f"No Application Default Credentials found: {e}")
        raise ValueError(
            "No Google Cloud credentials found. Run `gcloud auth application-default login` "
            "or set GCP_CREDENTIALS_FILE."
        ) from e

    if detected_project and detected_project != config.project:
        logger.debug(
            f"ADC project {detected_project} differs from configured project {config.project}"
        )

    return credentials


def check_credentials(credentials: Credentials) -> bool:
    """
    Check that credentials can obtain an access token.

    Returns:
        True if a token was minted, False otherwise
    """
    try:
        credentials.refresh(Request())
        logger.info("✅ Google Cloud credentials are valid")
        return True
    except RefreshError as e:
        logger.error(f"❌ Credential refresh failed: {e}")
        return False
