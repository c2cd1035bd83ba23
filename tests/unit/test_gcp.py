"""
Tests for Google Cloud credential utilities (src/utils/gcp.py).
"""

from unittest.mock import MagicMock

import pytest
from google.auth.exceptions import DefaultCredentialsError, RefreshError

from utils.config import GcpConfig
from utils.gcp import CLOUD_PLATFORM_SCOPE, check_credentials, get_credentials


class TestGetCredentials:
    """Tests for get_credentials."""

    def test_application_default_credentials(self, mocker, sample_gcp_config):
        """Test that ADC is used when no key file is configured."""
        credentials = MagicMock()
        mock_default = mocker.patch(
            "utils.gcp.google.auth.default", return_value=(credentials, "test-project")
        )

        assert get_credentials(sample_gcp_config) is credentials
        mock_default.assert_called_once_with(scopes=[CLOUD_PLATFORM_SCOPE])

    def test_service_account_key_file(self, mocker, tmp_path):
        """Test that a configured key file takes precedence."""
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")
        config = GcpConfig(project="test-project", credentials_file=str(key_file))
        mock_from_file = mocker.patch(
            "utils.gcp.service_account.Credentials.from_service_account_file"
        )
        mock_default = mocker.patch("utils.gcp.google.auth.default")

        credentials = get_credentials(config)

        assert credentials is mock_from_file.return_value
        mock_from_file.assert_called_once_with(
            str(key_file.resolve()), scopes=[CLOUD_PLATFORM_SCOPE]
        )
        mock_default.assert_not_called()

    def test_invalid_key_file(self, tmp_path):
        """Test that a malformed key file raises ValueError."""
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")
        config = GcpConfig(project="test-project", credentials_file=str(key_file))

        with pytest.raises(ValueError) as exc_info:
            get_credentials(config)

        assert "Invalid service account key file" in str(exc_info.value)

    def test_no_credentials(self, mocker, sample_gcp_config):
        """Test that missing ADC raises ValueError with guidance."""
        mocker.patch(
            "utils.gcp.google.auth.default", side_effect=DefaultCredentialsError("none")
        )

        with pytest.raises(ValueError) as exc_info:
            get_credentials(sample_gcp_config)

        assert "gcloud auth application-default login" in str(exc_info.value)


class TestCheckCredentials:
    """Tests for check_credentials."""

    def test_valid(self):
        credentials = MagicMock()

        assert check_credentials(credentials) is True
        credentials.refresh.assert_called_once()

    def test_refresh_failure(self):
        credentials = MagicMock()
        credentials.refresh.side_effect = RefreshError("expired")

        assert check_credentials(credentials) is False
