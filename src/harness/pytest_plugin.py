"""
Pytest fixtures for template integration tests.

Enable with ``pytest_plugins = ["harness.pytest_plugin"]`` in a root
conftest. Tests select the template they exercise with a marker:

    @pytest.mark.template("avro-to-bigtable")
    def test_avro_to_bigtable(template_run, bigtable_resource_manager):
        ...

Tests are skipped when the environment does not provide a project, a
staging bucket and a spec path for the requested template.
"""

import logging
import os

import pytest
from pydantic import ValidationError

from harness.template_test import TemplateTestRun
from utils.config import load_config
from utils.gcp import get_credentials

logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "template(name): template exercised by the test")


@pytest.fixture(scope="session")
def templit_config():
    """Load configuration, skipping the test session if it is incomplete."""
    try:
        return load_config(os.getenv("TEMPLIT_ENV_FILE"))
    except (ValueError, ValidationError, FileNotFoundError) as e:
        pytest.skip(f"templit is not configured: {e}")


@pytest.fixture(scope="session")
def gcp_credentials(templit_config):
    try:
        return get_credentials(templit_config.gcp)
    except ValueError as e:
        pytest.skip(f"No Google Cloud credentials: {e}")


@pytest.fixture
def template_run(request, templit_config, gcp_credentials):
    """Provide a ``TemplateTestRun`` that is always torn down after the test."""
    marker = request.node.get_closest_marker("template")
    if marker is None or not marker.args:
        pytest.fail("template_run requires @pytest.mark.template('<name>')")

    template_name = marker.args[0]
    if templit_config.get_template_spec(template_name) is None:
        pytest.skip(f"No spec path configured for template {template_name}")
    if not templit_config.gcp.artifact_bucket:
        pytest.skip("GCP_ARTIFACT_BUCKET is not set")

    test_class = request.cls.__name__ if request.cls else request.module.__name__.split(".")[-1]
    run = TemplateTestRun(
        test_name=request.node.originalname or request.node.name,
        template_name=template_name,
        config=templit_config,
        credentials=gcp_credentials,
        test_class=test_class,
    )
    try:
        yield run
    finally:
        run.teardown()


@pytest.fixture
def bigtable_resource_manager(template_run):
    return template_run.bigtable_resource_manager()
