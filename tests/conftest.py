"""
Pytest configuration and shared fixtures for templit tests.

This module provides reusable fixtures for mocking Google Cloud clients and
creating configuration objects consistently across all test modules.

Unit tests never call real services (Bigtable, Cloud Storage, Dataflow,
Logfire). Integration tests under tests/integration use the real services
and are skipped unless the environment is configured.
"""

import os

import pytest

from utils.config import (
    BigtableConfig,
    CleanupConfig,
    GcpConfig,
    LogfireConfig,
    OperatorConfig,
    TemplitConfig,
)

pytest_plugins = ["harness.pytest_plugin", "pytester"]

TEMPLIT_ENV_PREFIXES = (
    "GCP_",
    "BIGTABLE_",
    "PIPELINE_",
    "CLEANUP_",
    "LOGFIRE_",
    "TEMPLATE_SPEC_",
)

AVRO_TO_BIGTABLE_SPEC = "gs://dataflow-templates-test/latest/GCS_Avro_to_Cloud_Bigtable"


# ============================================================================
# Fixtures: Environment Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_env_for_unit_tests(request, monkeypatch, tmp_path):
    """
    Automatically isolate the environment for unit tests.

    Unit tests must not pick up a developer's .env file or exported GCP
    settings, so they run from an empty temporary directory with every
    templit variable removed.
    """
    if "tests/unit" not in request.path.as_posix():
        yield
        return

    for key in list(os.environ):
        if key.startswith(TEMPLIT_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def env_setup(monkeypatch):
    """Set up environment variables for testing."""
    test_env = {
        "GCP_PROJECT": "test-project",
        "GCP_REGION": "us-central1",
        "GCP_ARTIFACT_BUCKET": "test-artifacts",
        "BIGTABLE_STATIC_INSTANCE_ID": "test-instance",
        "PIPELINE_POLL_INTERVAL_SECONDS": "5",
        "PIPELINE_TIMEOUT_MINUTES": "10",
        "TEMPLATE_SPEC_AVRO_TO_BIGTABLE": AVRO_TO_BIGTABLE_SPEC,
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)
    return test_env


# ============================================================================
# Fixtures: Configuration Objects
# ============================================================================


@pytest.fixture
def sample_gcp_config() -> GcpConfig:
    """Create a sample GCP configuration for testing."""
    return GcpConfig(
        project="test-project",
        region="us-central1",
        artifact_bucket="test-artifacts",
    )


@pytest.fixture
def sample_bigtable_config() -> BigtableConfig:
    """Create a Bigtable configuration that provisions its own instance."""
    return BigtableConfig(cluster_zone="us-central1-b", num_nodes=1, storage_type="SSD")


@pytest.fixture
def sample_static_bigtable_config() -> BigtableConfig:
    """Create a Bigtable configuration that reuses a static instance."""
    return BigtableConfig(static_instance_id="static-instance")


@pytest.fixture
def sample_templit_config(sample_gcp_config, sample_bigtable_config) -> TemplitConfig:
    """Create a complete configuration with fast polling."""
    return TemplitConfig(
        gcp=sample_gcp_config,
        bigtable=sample_bigtable_config,
        operator=OperatorConfig(poll_interval_seconds=1, timeout_minutes=1),
        cleanup=CleanupConfig(failure_policy="warn"),
        logfire=LogfireConfig(enabled=False, send_to_logfire=False),
        template_specs={"avro-to-bigtable": AVRO_TO_BIGTABLE_SPEC},
    )


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
