"""
Factory for creating pipeline launchers and operators.

Usage:
    from launcher.factory import create_pipeline_launcher, create_pipeline_operator

    launcher = create_pipeline_launcher(credentials)
    info = launcher.launch(project, region, launch_config)
    result = create_pipeline_operator(launcher).wait_until_done(PollConfig.from_launch_info(info))
"""

import logging

from google.auth.credentials import Credentials

from launcher.base import PipelineLauncher
from launcher.dataflow import DataflowTemplateClient
from launcher.operator import PipelineOperator

logger = logging.getLogger(__name__)


def create_pipeline_launcher(credentials: Credentials | None = None) -> PipelineLauncher:
    """
    Create a Dataflow template launcher.

    Args:
        credentials: Credentials for the Dataflow API (None for ADC)

    Returns:
        DataflowTemplateClient: launcher for classic and flex templates
    """
    logger.debug("Creating Dataflow template launcher")
    return DataflowTemplateClient(credentials=credentials)


def create_pipeline_operator(launcher: PipelineLauncher) -> PipelineOperator:
    """Create an operator that polls jobs started by ``launcher``."""
    return PipelineOperator(launcher)
