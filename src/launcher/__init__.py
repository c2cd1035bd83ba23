"""
Pipeline launcher package for templit.

Launches Dataflow templates and waits for their jobs to finish.
"""

from launcher.base import (
    JobResult,
    JobState,
    LaunchConfig,
    LaunchConfigBuilder,
    LaunchInfo,
    PipelineLauncher,
)
from launcher.operator import PipelineOperator, PollConfig

__all__ = [
    "JobResult",
    "JobState",
    "LaunchConfig",
    "LaunchConfigBuilder",
    "LaunchInfo",
    "PipelineLauncher",
    "PipelineOperator",
    "PollConfig",
]
